"""HttpClient status mapping and ConversationsAPI paths via httpx.MockTransport."""

import httpx
import pytest

from chatsync.auth import Auth
from chatsync.conversations import ConversationsAPI
from chatsync.errors import ApiError, AuthError, ForbiddenError, NotFoundError, ValidationError
from chatsync.models.session import ConnectionSession
from chatsync.transport.http import HttpClient

from fakes import M1, ME, PEER


def make_http(handler, session=None, hook=None) -> HttpClient:
    return HttpClient(
        session or ConnectionSession(token="tok-123"),
        base_url="http://chat.test",
        on_unauthorized=hook,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_bearer_token_and_history_path():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["path"] = request.url.path
        return httpx.Response(200, json=[{"message_id": M1}])

    http = make_http(handler)
    records = await ConversationsAPI(http).history(ME, PEER)
    await http.close()

    assert seen == {"auth": "Bearer tok-123", "path": f"/messages/{ME}/{PEER}"}
    assert records == [{"message_id": M1}]


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error", [
    (403, ForbiddenError),
    (404, NotFoundError),
    (500, ApiError),
])
async def test_status_mapping(status, error):
    http = make_http(lambda request: httpx.Response(status, json={"detail": "nope"}))
    with pytest.raises(error) as excinfo:
        await http.get("/users")
    await http.close()
    assert "nope" in str(excinfo.value)


@pytest.mark.asyncio
async def test_401_fires_unauthorized_hook():
    reasons = []
    http = make_http(lambda request: httpx.Response(401, json={"detail": "Token expired"}), hook=reasons.append)
    with pytest.raises(AuthError):
        await http.get("/users/me")
    await http.close()
    assert reasons == ["Token expired"]


@pytest.mark.asyncio
async def test_network_failure_is_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    http = make_http(handler)
    with pytest.raises(ApiError) as excinfo:
        await http.delete(f"/messages/{M1}")
    await http.close()
    assert excinfo.value.code == "network_error"


@pytest.mark.asyncio
async def test_edit_and_delete_requests():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path, request.content))
        return httpx.Response(200, json={"ok": True})

    http = make_http(handler)
    api = ConversationsAPI(http)
    await api.update_message(M1, "  new text ")
    await api.delete_message(M1)
    await http.close()

    assert calls[0][:2] == ("PUT", f"/messages/{M1}")
    assert b'"new text"' in calls[0][2]
    assert calls[1][:2] == ("DELETE", f"/messages/{M1}")


@pytest.mark.asyncio
async def test_malformed_ids_never_hit_the_network():
    http = make_http(lambda request: pytest.fail("request should not be sent"))
    api = ConversationsAPI(http)
    with pytest.raises(ValidationError):
        await api.history(ME, "bob")
    with pytest.raises(ValidationError):
        await api.delete_message("m1")
    await http.close()


@pytest.mark.asyncio
async def test_upload_returns_descriptor(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        assert b'filename="notes.txt"' in request.content
        return httpx.Response(200, json={"url": "https://cdn.test/notes.txt", "media_type": "file", "filename": "notes.txt"})

    path = tmp_path / "notes.txt"
    path.write_text("hello")
    http = make_http(handler)
    upload = await ConversationsAPI(http).upload(str(path))
    await http.close()
    assert upload.to_media().filename == "notes.txt"


@pytest.mark.asyncio
async def test_login_installs_token():
    session = ConnectionSession()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login":
            assert "Authorization" not in request.headers
            return httpx.Response(200, json={"access_token": "fresh"})
        return httpx.Response(200, json={"id": ME, "username": "me"})

    http = make_http(handler, session=session)
    auth = Auth(http, session)
    assert await auth.login("me@example.com", "pw") == "fresh"
    user = await auth.me()
    await http.close()
    assert session.token == "fresh"
    assert session.user_id == ME == user.id


@pytest.mark.asyncio
async def test_me_with_malformed_id_is_auth_error():
    http = make_http(lambda request: httpx.Response(200, json={"id": "1", "username": "x"}))
    with pytest.raises(AuthError):
        await Auth(http, ConnectionSession(token="t")).me()
    await http.close()


@pytest.mark.asyncio
async def test_rejected_login_leaves_live_session_alone():
    session = ConnectionSession(token="good-token")
    reasons = []
    http = make_http(lambda request: httpx.Response(401, json={"detail": "Bad credentials"}), session=session,
                     hook=reasons.append)
    with pytest.raises(AuthError):
        await Auth(http, session).login("a@b.c", "wrong")
    await http.close()
    assert reasons == []
    assert session.token == "good-token"
    assert not session.invalidated
