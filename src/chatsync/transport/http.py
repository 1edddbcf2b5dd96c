"""
REST HTTP client — bearer auth from the shared ConnectionSession, status mapping.

401 -> AuthError (and the unauthorized hook fires), 403 -> ForbiddenError,
404 -> NotFoundError, other >= 400 -> ApiError.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

import httpx

from chatsync.errors import ApiError, AuthError, ForbiddenError, NotFoundError
from chatsync.models.session import ConnectionSession

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return resp.text[:200]


class HttpClient:
    def __init__(
        self,
        session: ConnectionSession,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        on_unauthorized: Optional[Callable[[str], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._on_unauthorized = on_unauthorized
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"User-Agent": "chatsync-sdk/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_unauthorized_hook(self, hook: Optional[Callable[[str], None]]) -> None:
        self._on_unauthorized = hook

    def _auth_headers(self, authenticated: bool) -> dict[str, str]:
        headers: dict[str, str] = {}
        if authenticated and self._session.has_token:
            headers["Authorization"] = f"Bearer {self._session.token}"
        return headers

    def _check(self, resp: httpx.Response, authenticated: bool = True) -> Any:
        if resp.status_code < 400:
            if not resp.content:
                return None
            return resp.json()
        detail = _detail(resp)
        if resp.status_code == 401:
            # A rejected login says nothing about the session in use
            if authenticated and self._on_unauthorized:
                self._on_unauthorized(detail)
            raise AuthError(f"Unauthorized: {detail}", code="unauthorized")
        if resp.status_code == 403:
            raise ForbiddenError(f"Access denied: {detail}")
        if resp.status_code == 404:
            raise NotFoundError(f"Not found: {detail}")
        raise ApiError(f"HTTP {resp.status_code}: {detail}", status=resp.status_code)

    async def _request(self, method: str, path: str, authenticated: bool = True, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, headers=self._auth_headers(authenticated), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(f"{method} {path} failed: {e}", code="network_error") from e
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return self._check(resp, authenticated)

    async def get(self, path: str, authenticated: bool = True) -> Any:
        return await self._request("GET", path, authenticated)

    async def post(self, path: str, body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        return await self._request("POST", path, authenticated, json=body)

    async def put(self, path: str, body: Optional[dict[str, Any]] = None, authenticated: bool = True) -> Any:
        return await self._request("PUT", path, authenticated, json=body)

    async def delete(self, path: str, authenticated: bool = True) -> Any:
        return await self._request("DELETE", path, authenticated)

    async def upload(self, path: str, file_path: str, field: str = "file") -> Any:
        """Multipart upload of a single file."""
        p = Path(file_path)
        with p.open("rb") as fh:
            return await self._request("POST", path, files={field: (p.name, fh)})

    async def close(self) -> None:
        await self._client.aclose()
