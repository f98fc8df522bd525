"""
Async HTTP client for the auth API.

Keeps the session (access token, refresh token, user) for one caller and
transparently recovers from expired access tokens: a ``401`` tagged
``TOKEN_EXPIRED`` triggers a single coalesced refresh and one replay of the
failed request. Any refresh failure ends the session.

Usage:
    async with ApiClient("http://localhost:8000") as api:
        await api.login("ann@example.com", "longpass1")
        me = await api.me()
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.client.refresh import RefreshCoalescer
from app.core.errors import ErrorCode
from app.logging import get_logger

logger = get_logger("client")


class ApiError(Exception):
    """Error envelope returned by the API (or a non-JSON failure)."""

    def __init__(self, status_code: int, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code

    @property
    def token_expired(self) -> bool:
        return self.status_code == 401 and self.code is ErrorCode.TOKEN_EXPIRED

    def __repr__(self):
        return f"<ApiError(status={self.status_code}, code={self.code}, message='{self.message}')>"


@dataclass
class ClientSession:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None


def _parse_code(value: Any) -> Optional[ErrorCode]:
    try:
        return ErrorCode(value)
    except ValueError:
        return None


def raise_for_envelope(response: httpx.Response) -> Dict[str, Any]:
    """Return the JSON envelope of a successful response, else raise ``ApiError``."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if response.is_success and isinstance(payload, dict):
        return payload

    if isinstance(payload, dict):
        raise ApiError(
            response.status_code,
            payload.get("error") or payload.get("detail") or response.reason_phrase,
            _parse_code(payload.get("code")),
        )
    raise ApiError(response.status_code, response.text or response.reason_phrase)


class ApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        auth_prefix: str = "/api/auth",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_session_expired: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._auth_prefix = auth_prefix.rstrip("/")
        self._on_session_expired = on_session_expired
        self.session = ClientSession()
        self.refresher = RefreshCoalescer(self._refresh_access_token, lambda: self.session.access_token)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_url(self, path: str) -> str:
        return f"{self._auth_prefix}{path}"

    async def _send(self, method: str, url: str, token: Optional[str], **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._http.request(method, url, headers=headers, **kwargs)

    async def request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request with the current access token.

        On ``TOKEN_EXPIRED`` the request waits for a fresh token and is
        replayed exactly once; a second expiry is raised as is.
        """
        token = self.session.access_token
        response = await self._send(method, url, token, **kwargs)
        try:
            return raise_for_envelope(response)
        except ApiError as exc:
            if not exc.token_expired:
                raise

        fresh_token = await self.refresher.get_fresh_token(token)
        response = await self._send(method, url, fresh_token, **kwargs)
        return raise_for_envelope(response)

    def _store_session(self, data: Dict[str, Any]) -> None:
        self.session.access_token = data["accessToken"]
        self.session.refresh_token = data.get("refreshToken")
        self.session.user = data.get("user")

    async def _end_session(self) -> None:
        self.session.clear()
        self._http.cookies.clear()
        if self._on_session_expired is not None:
            await self._on_session_expired()

    async def _refresh_access_token(self) -> str:
        body = {"refreshToken": self.session.refresh_token} if self.session.refresh_token else None
        try:
            response = await self._http.post(self._auth_url("/refresh-token"), json=body)
            data = raise_for_envelope(response)["data"]
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("Session expired, refresh rejected", error=str(exc))
            await self._end_session()
            raise
        self._store_session(data)
        logger.info("Access token refreshed", user_id=(data.get("user") or {}).get("id"))
        return data["accessToken"]

    # Auth API

    async def refresh(self) -> str:
        """Force a refresh now (coalesced with any refresh already running)."""
        return await self.refresher.get_fresh_token(self.session.access_token)

    async def registration_status(self) -> bool:
        payload = await self.request("GET", self._auth_url("/registration-status"))
        return payload["data"]["registrationOpen"]

    async def register(self, name: str, email: str, password: str, confirm_password: str) -> Dict[str, Any]:
        payload = await self.request(
            "POST",
            self._auth_url("/register"),
            json={"name": name, "email": email, "password": password, "confirmPassword": confirm_password},
        )
        self._store_session(payload["data"])
        return payload["data"]["user"]

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        payload = await self.request("POST", self._auth_url("/login"), json={"email": email, "password": password})
        self._store_session(payload["data"])
        return payload["data"]["user"]

    async def logout(self) -> None:
        try:
            await self.request("POST", self._auth_url("/logout"))
        finally:
            self.session.clear()
            self._http.cookies.clear()

    async def me(self) -> Dict[str, Any]:
        payload = await self.request("GET", self._auth_url("/me"))
        self.session.user = payload["data"]["user"]
        return self.session.user

    async def forgot_password(self, email: str) -> str:
        payload = await self.request("POST", self._auth_url("/forgot-password"), json={"email": email})
        return payload.get("message", "")

    async def verify_otp(self, email: str, otp: str) -> str:
        payload = await self.request("POST", self._auth_url("/verify-otp"), json={"email": email, "otp": otp})
        return payload["data"]["resetToken"]

    async def reset_password(self, reset_token: str, password: str, confirm_password: str) -> str:
        payload = await self.request(
            "POST",
            self._auth_url("/reset-password"),
            json={"resetToken": reset_token, "password": password, "confirmPassword": confirm_password},
        )
        return payload.get("message", "")
