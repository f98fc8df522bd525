"""
Unit tests for app/client/api.py

The API is faked with httpx.MockTransport so the tests control exactly when
tokens expire and how the refresh endpoint answers.
"""

import asyncio
import json

import httpx
import pytest

from app.client.api import ApiClient, ApiError
from app.core.errors import ErrorCode


def envelope(status_code, data=None, message=None):
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return httpx.Response(status_code, json=body)


def error(status_code, code, message="error"):
    return httpx.Response(status_code, json={"success": False, "error": message, "code": code})


class FakeAuthServer:
    """Minimal stand-in for /api/auth with rotating tokens."""

    def __init__(self, refresh_delay=0.02):
        self.valid_access = "access-0"
        self.valid_refresh = "refresh-0"
        self.refresh_calls = 0
        self.refresh_bodies = []
        self.refresh_delay = refresh_delay
        self.reject_refresh = False
        self.always_expired = False
        self.me_calls = 0
        self.me_delays = []

    def expire_access(self):
        self.valid_access = "no-longer-valid"

    def session_data(self, n):
        return {
            "user": {"id": 1, "name": "Ann", "email": "ann@example.com", "role": "admin"},
            "accessToken": f"access-{n}",
            "refreshToken": f"refresh-{n}",
        }

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/auth/login":
            return envelope(200, self.session_data(0), "Login successful.")

        if path == "/api/auth/refresh-token":
            self.refresh_calls += 1
            self.refresh_bodies.append(json.loads(request.content) if request.content else None)
            await asyncio.sleep(self.refresh_delay)
            if self.reject_refresh:
                return error(401, "INVALID_REFRESH_TOKEN", "Invalid or expired refresh token.")
            data = self.session_data(self.refresh_calls)
            self.valid_access = data["accessToken"]
            self.valid_refresh = data["refreshToken"]
            return envelope(200, data)

        if path == "/api/auth/me":
            self.me_calls += 1
            auth = request.headers.get("authorization", "")
            if self.me_delays:
                await asyncio.sleep(self.me_delays.pop(0))
            if not auth:
                return error(401, "NO_TOKEN")
            if self.always_expired or auth != f"Bearer {self.valid_access}":
                return error(401, "TOKEN_EXPIRED", "Token expired.")
            return envelope(200, {"user": self.session_data(0)["user"]})

        if path == "/api/auth/logout":
            return envelope(200, message="Logged out successfully.")

        if path == "/api/auth/broken":
            return httpx.Response(502, text="Bad Gateway")

        return error(404, "NOT_FOUND", "Not found.")


@pytest.fixture
def server():
    return FakeAuthServer()


@pytest.fixture
async def api(server):
    expired_calls = []

    async def on_session_expired():
        expired_calls.append(True)

    client = ApiClient("http://test", transport=httpx.MockTransport(server), on_session_expired=on_session_expired)
    client.expired_calls = expired_calls
    await client.login("ann@example.com", "longpass1")
    yield client
    await client.aclose()


@pytest.mark.asyncio
class TestSession:

    async def test_login_stores_session(self, api: ApiClient):
        assert api.session.authenticated
        assert api.session.access_token == "access-0"
        assert api.session.refresh_token == "refresh-0"
        assert api.session.user["email"] == "ann@example.com"

    async def test_request_sends_bearer(self, api: ApiClient, server: FakeAuthServer):
        user = await api.me()

        assert user["id"] == 1
        assert server.refresh_calls == 0

    async def test_logout_clears_session(self, api: ApiClient):
        await api.logout()

        assert api.session.access_token is None
        assert api.session.user is None


@pytest.mark.asyncio
class TestExpiredTokenRecovery:

    async def test_expired_token_is_refreshed_and_replayed(self, api: ApiClient, server: FakeAuthServer):
        server.expire_access()

        user = await api.me()

        assert user["email"] == "ann@example.com"
        assert server.refresh_calls == 1
        assert server.me_calls == 2
        assert api.session.access_token == "access-1"
        assert api.session.refresh_token == "refresh-1"

    async def test_refresh_sends_stored_refresh_token(self, api: ApiClient, server: FakeAuthServer):
        server.expire_access()
        await api.me()

        assert server.refresh_bodies == [{"refreshToken": "refresh-0"}]

    async def test_concurrent_expired_requests_refresh_once(self, api: ApiClient, server: FakeAuthServer):
        server.expire_access()

        results = await asyncio.gather(*(api.me() for _ in range(8)))

        assert len(results) == 8
        assert server.refresh_calls == 1
        assert api.refresher.refresh_count == 1
        assert api.session.access_token == "access-1"

    async def test_replay_happens_only_once(self, api: ApiClient, server: FakeAuthServer):
        server.always_expired = True

        with pytest.raises(ApiError) as exc_info:
            await api.me()

        assert exc_info.value.code is ErrorCode.TOKEN_EXPIRED
        assert server.refresh_calls == 1
        assert server.me_calls == 2

    async def test_other_401_is_not_refreshed(self, server: FakeAuthServer):
        async with ApiClient("http://test", transport=httpx.MockTransport(server)) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.me()

        assert exc_info.value.status_code == 401
        assert exc_info.value.code is ErrorCode.NO_TOKEN
        assert server.refresh_calls == 0


@pytest.mark.asyncio
class TestForcedLogout:

    async def test_failed_refresh_ends_session(self, api: ApiClient, server: FakeAuthServer):
        server.expire_access()
        server.reject_refresh = True

        with pytest.raises(ApiError) as exc_info:
            await api.me()

        assert exc_info.value.code is ErrorCode.INVALID_REFRESH_TOKEN
        assert api.session.access_token is None
        assert api.session.refresh_token is None
        assert api.expired_calls == [True]

    async def test_failed_refresh_rejects_all_waiters_once(self, api: ApiClient, server: FakeAuthServer):
        server.expire_access()
        server.reject_refresh = True

        results = await asyncio.gather(*(api.me() for _ in range(5)), return_exceptions=True)

        assert all(isinstance(result, ApiError) for result in results)
        assert server.refresh_calls == 1
        assert api.expired_calls == [True]

    async def test_late_expiry_after_failed_refresh_does_not_refresh_again(self, api: ApiClient, server: FakeAuthServer):
        server.expire_access()
        server.reject_refresh = True
        # a segunda resposta de /me chega depois da falha do refresh
        server.me_delays = [0, 0.2]

        results = await asyncio.gather(api.me(), api.me(), return_exceptions=True)

        assert [result.code for result in results] == [ErrorCode.INVALID_REFRESH_TOKEN] * 2
        assert server.refresh_calls == 1
        assert server.refresh_bodies == [{"refreshToken": "refresh-0"}]
        assert api.expired_calls == [True]
        assert api.session.access_token is None


@pytest.mark.asyncio
class TestErrors:

    async def test_non_json_error(self, api: ApiClient):
        with pytest.raises(ApiError) as exc_info:
            await api.request("GET", "/api/auth/broken")

        assert exc_info.value.status_code == 502
        assert exc_info.value.code is None
        assert "Bad Gateway" in exc_info.value.message

    async def test_error_code_is_parsed(self, api: ApiClient):
        with pytest.raises(ApiError) as exc_info:
            await api.request("GET", "/api/auth/does-not-exist")

        assert exc_info.value.status_code == 404
        assert exc_info.value.code is ErrorCode.NOT_FOUND
