"""
Tests for the REST client: headers, envelopes, error mapping and the 401 hook.
"""

import asyncio
import json
import httpx
import pytest
from httpx import ASGITransport

from opsconsole.client.api import ApiClient, ApiError, RequestTimeout, TOKEN_KEY, USER_KEY, with_timeout
from opsconsole.client.session import AuthError, AuthSession
from opsconsole.client.storage import MemoryStorage


def _client(handler, store=None, **kwargs):
    return ApiClient(
        base_url="http://test/api",
        store=store or MemoryStorage(),
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.anyio
async def test_sends_bearer_token_and_drops_empty_params():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": []})

    async with _client(handler, store=MemoryStorage({TOKEN_KEY: "abc"})) as api:
        body = await api.get_posts({"page": 2, "search": None})

    assert body == {"success": True, "data": []}
    assert seen[0].url.path == "/api/posts"
    assert dict(seen[0].url.params) == {"page": "2"}
    assert seen[0].headers["Authorization"] == "Bearer abc"


@pytest.mark.anyio
async def test_unauthorized_clears_store_and_fires_hook():
    store = MemoryStorage({TOKEN_KEY: "stale", USER_KEY: "{}", "other": "kept"})
    fired = []

    async def on_unauthorized():
        fired.append(True)

    def handler(request):
        return httpx.Response(401, json={"success": False, "error": "Invalid or expired token"})

    async with _client(handler, store=store, on_unauthorized=on_unauthorized) as api:
        with pytest.raises(ApiError) as exc:
            await api.get_profile()

    assert exc.value.status_code == 401
    assert exc.value.message == "Invalid or expired token"
    assert fired == [True]
    assert store.keys() == ["other"]


@pytest.mark.anyio
async def test_error_envelope_becomes_api_error():
    def handler(request):
        return httpx.Response(409, json={"success": False, "error": "Alias already exists"})

    async with _client(handler) as api:
        with pytest.raises(ApiError) as exc:
            await api.create_push_config({"name": "x"})
    assert exc.value.status_code == 409
    assert exc.value.body == {"success": False, "error": "Alias already exists"}


@pytest.mark.anyio
async def test_non_json_error_uses_text():
    async with _client(lambda request: httpx.Response(502, text="Bad gateway")) as api:
        with pytest.raises(ApiError, match="Bad gateway"):
            await api.get_users()


@pytest.mark.anyio
async def test_transport_failures():
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(timeout, timeout=3) as api:
        with pytest.raises(RequestTimeout, match="3s"):
            await api.get_tags()
    async with _client(refused) as api:
        with pytest.raises(ApiError, match="Network error"):
            await api.get_tags()


@pytest.mark.anyio
async def test_raw_download_returns_bytes():
    def handler(request):
        return httpx.Response(200, content=b"\xef\xbb\xbfdate\r\n", headers={"content-type": "text/csv"})

    async with _client(handler) as api:
        assert await api.export_rating_data({"startDate": "2026-03-01"}) == b"\xef\xbb\xbfdate\r\n"


@pytest.mark.anyio
async def test_sync_favorites_body_omits_missing_lists():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "data": {"favorites": {}}})

    async with _client(handler) as api:
        await api.sync_attribution_favorites(removals=[{"mediaSource": "fb", "adSequence": "a"}])
    assert bodies == [{"removals": [{"mediaSource": "fb", "adSequence": "a"}]}]


@pytest.mark.anyio
async def test_with_timeout():
    with pytest.raises(RequestTimeout, match="0.01s"):
        await with_timeout(asyncio.sleep(1), 0.01)
    assert await with_timeout(asyncio.sleep(0, result="ok"), 1) == "ok"


# ── Session ───────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_session_against_the_app(client, seeded):
    from opsconsole.main import app

    store = MemoryStorage()
    api = ApiClient(base_url="http://test/api", store=store, transport=ASGITransport(app=app))
    async with api:
        session = AuthSession(api)
        user = await session.login("admin", "admin123")
        assert user["username"] == "admin"
        assert session.is_authenticated
        assert store.get(TOKEN_KEY) == session.token

        restored = AuthSession(api)
        assert await restored.restore() is True
        assert restored.user["role"] == "ADMIN"
        assert restored.loading is False

        with pytest.raises(AuthError, match="Invalid username or password"):
            await AuthSession(api).login("admin", "wrong-password")

        session.logout()
        assert store.keys() == []


@pytest.mark.anyio
async def test_restore_without_stored_session():
    async with _client(lambda request: httpx.Response(500)) as api:
        session = AuthSession(api)
        assert await session.restore() is False
        assert session.loading is False


@pytest.mark.anyio
async def test_restore_signs_out_when_token_rejected():
    store = MemoryStorage({TOKEN_KEY: "old", USER_KEY: json.dumps({"username": "admin"})})

    def handler(request):
        return httpx.Response(401, json={"success": False, "error": "Invalid or expired token"})

    async with _client(handler, store=store) as api:
        session = AuthSession(api)
        assert await session.restore() is False
        assert session.user is None
        assert store.keys() == []


@pytest.mark.anyio
async def test_non_json_success_body_raises_api_error():
    async with _client(lambda request: httpx.Response(200, text="<html>proxy page</html>")) as api:
        with pytest.raises(ApiError, match="Invalid JSON response") as exc:
            await api.get_profile()
    assert exc.value.status_code == 200


@pytest.mark.anyio
@pytest.mark.parametrize("response", [
    httpx.Response(200, json={"success": True, "data": None}),
    httpx.Response(200, text="not json"),
])
async def test_restore_signs_out_on_unusable_profile(response):
    store = MemoryStorage({TOKEN_KEY: "old", USER_KEY: json.dumps({"username": "admin"})})

    async with _client(lambda request: response, store=store) as api:
        session = AuthSession(api)
        assert await session.restore() is False
        assert session.user is None
        assert session.loading is False
        assert store.keys() == []
