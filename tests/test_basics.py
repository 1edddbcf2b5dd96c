"""Basic unit tests for the chatsync package."""

from chatsync import (
    ApiError,
    AsyncChatClient,
    AuthError,
    AuthRequiredError,
    ChatSyncConfig,
    ChatSyncError,
    FrameType,
    FrameValidationError,
    TransportError,
    ValidationError,
    __version__,
)
from chatsync.config import derive_ws_url


def test_version():
    assert __version__ == "0.1.0"


def test_public_exports():
    assert AsyncChatClient is not None
    assert ChatSyncConfig is not None


def test_error_hierarchy():
    assert issubclass(AuthError, ChatSyncError)
    assert issubclass(AuthRequiredError, AuthError)
    assert issubclass(TransportError, ChatSyncError)
    assert issubclass(FrameValidationError, ValidationError)


def test_error_attributes():
    err = ChatSyncError(code="test_code", message="something broke")
    assert err.code == "test_code"
    assert str(err) == "something broke"
    assert err.details is None

    api = ApiError("HTTP 502: bad gateway", status=502)
    assert api.code == "http_error"
    assert api.details == {"status": 502}

    bad = FrameValidationError("no type", raw="{}")
    assert bad.code == "validation_error"
    assert bad.raw == "{}"


def test_frame_constants():
    assert FrameType.MESSAGE == "message"
    assert FrameType.USER_STATUS == "user_status"
    assert FrameType.CONNECTION == "connection"


def test_ws_url_derivation():
    assert derive_ws_url("http://localhost:8000") == "ws://localhost:8000/ws"
    assert derive_ws_url("https://chat.example.com/") == "wss://chat.example.com/ws"
    assert ChatSyncConfig(ws_url="ws://elsewhere/socket").ws_url == "ws://elsewhere/socket"
