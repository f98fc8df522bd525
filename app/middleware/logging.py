"""
Access Logging Middleware

Logs every API request with timing, status and the authenticated user (when
the session dependency attached one). Slow requests are flagged separately.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.config import settings
from app.logging import get_logger

logger = get_logger("access")

SKIPPED_PATHS = ["/", "/health", "/docs", "/openapi.json"]


class AccessLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all API access.

    Captures:
    - User context (user_id set by get_current_user)
    - Request details (endpoint, method, IP, user agent)
    - Performance metrics (duration)
    - Request tracking (X-Request-ID header)
    """

    def __init__(self, app: ASGIApp, enabled: bool = True, slow_threshold: float = 1.0):
        """
        Initialize the middleware.

        Args:
            app: FastAPI application
            enabled: Whether logging is enabled
            slow_threshold: Seconds above which a request is also logged as slow
        """
        super().__init__(app)
        self.enabled = enabled
        self.slow_threshold = slow_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        if not self.enabled or request.url.path in SKIPPED_PATHS:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        user = getattr(request.state, "user", None)
        context = {
            "request_id": request_id,
            "ip": self._get_client_ip(request),
            "user_agent": request.headers.get("user-agent", ""),
        }
        if user is not None:
            context["user_id"] = user.id

        logger.request(
            "API request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=round(duration, 4),
            **context
        )
        if duration > self.slow_threshold:
            logger.slow("Slow request", duration=round(duration, 4), threshold=self.slow_threshold, path=request.url.path)

        response.headers["X-Request-ID"] = request_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        """
        Extract client IP address from request.

        Checks X-Forwarded-For header first (for proxied requests),
        then falls back to direct client IP.
        """
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"


def build_access_logging_kwargs() -> dict:
    return {
        "enabled": settings.ACCESS_LOG_ENABLED,
        "slow_threshold": settings.SLOW_REQUEST_THRESHOLD_SECONDS,
    }
