"""
chatsync error types — transport, auth, validation and REST failures.
"""

from typing import Any, Optional


class ChatSyncError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class AuthError(ChatSyncError):
    """Missing, invalid or expired credentials. Terminal for the session."""

    def __init__(self, message: str, code: str = "auth_error"):
        super().__init__(code, message)


class AuthRequiredError(AuthError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="auth_required")


class ForbiddenError(ChatSyncError):
    def __init__(self, message: str):
        super().__init__("forbidden", message)


class NotFoundError(ChatSyncError):
    def __init__(self, message: str):
        super().__init__("not_found", message)


class ApiError(ChatSyncError):
    def __init__(self, message: str, code: str = "http_error", status: Optional[int] = None):
        super().__init__(code, message, {"status": status} if status is not None else None)
        self.status = status


class TransportError(ChatSyncError):
    def __init__(self, message: str):
        super().__init__("transport_error", message)


class ValidationError(ChatSyncError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("validation_error", message, details)


class FrameValidationError(ValidationError):
    """Inbound realtime frame did not match the frame schema."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message, {"raw": raw} if raw is not None else None)
        self.raw = raw
