"""
Refresh coalescing for API clients.

When an access token expires, every request in flight comes back with
``TOKEN_EXPIRED`` at roughly the same time. Refreshing once per request would
waste calls and, because the server rotates refresh tokens, the calls would
invalidate each other. ``RefreshCoalescer`` makes the first caller run the
refresh and parks every other caller on a future until it completes.

State lives on the instance (one coalescer per client). The lock guards the
flag and the waiter list only; it is never held across an ``await``.
"""
import asyncio
import threading
from typing import Awaitable, Callable, List, Optional

from app.logging import get_logger

logger = get_logger("client.refresh")


class RefreshCancelledError(Exception):
    """The caller running the refresh was cancelled before it finished."""


def _deliver(waiter: asyncio.Future, token: Optional[str], error: Optional[BaseException]) -> None:
    if waiter.done():
        return
    if error is not None:
        waiter.set_exception(error)
    else:
        waiter.set_result(token)


class RefreshCoalescer:
    """
    At most one refresh in flight; everyone else waits for its result.

    Args:
        refresh: coroutine function performing the refresh call and returning
            the new access token. It is responsible for storing the token.
        current_token: returns the access token the client holds right now.
    """

    def __init__(self, refresh: Callable[[], Awaitable[str]], current_token: Callable[[], Optional[str]]):
        self._refresh = refresh
        self._current_token = current_token
        self._lock = threading.Lock()
        self._in_progress = False
        self._waiters: List[asyncio.Future] = []
        # último episódio que falhou: token expirado e o erro devolvido
        self._failed_for: Optional[str] = None
        self._failure: Optional[BaseException] = None
        self.refresh_count = 0

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def get_fresh_token(self, stale_token: Optional[str]) -> str:
        """
        Return an access token newer than ``stale_token``.

        Joins the running refresh if there is one, reuses the result of a
        refresh that already finished for this expiry, or starts a new one.
        A refresh failure is raised to the caller and to every waiter. A late
        caller of an expiry whose refresh failed gets the same error, as long
        as no new session was stored since.
        """
        loop = asyncio.get_running_loop()
        waiter: Optional[asyncio.Future] = None
        failure: Optional[BaseException] = None

        with self._lock:
            current = self._current_token()
            if not self._in_progress and current is not None and current != stale_token:
                return current
            if self._in_progress:
                waiter = loop.create_future()
                self._waiters.append(waiter)
            elif current is None and stale_token is not None and stale_token == self._failed_for:
                failure = self._failure
            else:
                self._in_progress = True
                self.refresh_count += 1

        if waiter is not None:
            try:
                return await waiter
            except asyncio.CancelledError:
                self._discard(waiter)
                raise

        if failure is not None:
            logger.info("Expiry already answered by a failed refresh", waiters=self.pending)
            raise failure

        try:
            token = await self._refresh()
        except asyncio.CancelledError:
            self._settle(None, RefreshCancelledError("Token refresh was cancelled"))
            raise
        except Exception as exc:
            logger.warning("Token refresh failed", error=str(exc), waiters=self.pending)
            self._settle(None, exc, stale_token)
            raise

        self._settle(token, None)
        return token

    def _discard(self, waiter: asyncio.Future) -> None:
        with self._lock:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def _settle(
        self,
        token: Optional[str],
        error: Optional[BaseException],
        failed_for: Optional[str] = None,
    ) -> None:
        with self._lock:
            waiters, self._waiters = self._waiters, []
            self._in_progress = False
            self._failed_for = failed_for
            self._failure = error if failed_for is not None else None

        for waiter in waiters:
            # o future pode pertencer ao loop de outra thread
            waiter.get_loop().call_soon_threadsafe(_deliver, waiter, token, error)
