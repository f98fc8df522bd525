"""
Centralized logging configuration with Sentry integration.

Root logger setup for third-party libraries (our own modules log through
``app.logging``), Sentry initialization and error capture. Sentry only runs
when ``SENTRY_DSN`` is set; every event is scrubbed of credentials first.
"""

import logging
import sys
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.core.config import settings
from app.helpers.getters import isDebugMode

FILTERED = "[FILTERED]"

# Comparação em minúsculas: cobre camelCase e snake_case do corpo
SENSITIVE_FIELDS = frozenset({
    "password", "confirmpassword", "confirm_password", "otp", "token", "secret",
    "accesstoken", "refreshtoken", "resettoken",
    "access_token", "refresh_token", "reset_token",
})

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})

# Bibliotecas verbosas demais fora do modo debug
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "aiosqlite", "asyncio")


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: FILTERED if str(key).lower() in SENSITIVE_FIELDS else _scrub(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def filter_sensitive_data(event: Dict[str, Any], hint: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """
    Filter sensitive data before sending to Sentry.

    Body fields (nested too), auth headers and cookies are replaced with
    ``[FILTERED]``. The event itself is never dropped.
    """
    request = event.get("request")
    if not isinstance(request, dict):
        return event

    if "data" in request:
        request["data"] = _scrub(request["data"])

    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            key: FILTERED if key.lower() in SENSITIVE_HEADERS else value
            for key, value in headers.items()
        }

    if request.get("cookies"):
        request["cookies"] = FILTERED

    # refresh token pode chegar na query string de clientes antigos
    query = request.get("query_string")
    if isinstance(query, str) and "token" in query.lower():
        request["query_string"] = FILTERED

    return event


def init_sentry() -> bool:
    """
    Initialize Sentry for error tracking and performance monitoring.

    Returns:
        True if Sentry was initialized
    """
    if not settings.SENTRY_DSN:
        logging.info("SENTRY_DSN not configured. Sentry disabled.")
        return False

    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.SENTRY_ENVIRONMENT or settings.MODE,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            integrations=[
                FastApiIntegration(),
                SqlalchemyIntegration(),
                RedisIntegration(),
            ],
            before_send=filter_sensitive_data,
            send_default_pii=False,
            attach_stacktrace=True,
            max_breadcrumbs=50,
        )
    except Exception as e:
        # DSN inválido não pode derrubar a API
        logging.error(f"Failed to initialize Sentry: {e}")
        return False

    logging.info(f"Sentry initialized for environment: {settings.SENTRY_ENVIRONMENT or settings.MODE}")
    return True


def capture_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    user: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None
) -> Optional[str]:
    """
    Log an unhandled error and report it to Sentry with request context.

    Args:
        error: Exception to capture
        context: Named context blocks (e.g. {"request": {...}})
        user: Authenticated user (id, email, name), if any
        tags: Searchable tags (e.g. request_id)

    Returns:
        Sentry event ID if sent, None otherwise
    """
    logging.error(f"Unhandled error: {error!r}", exc_info=error)

    if not settings.SENTRY_DSN:
        return None

    with sentry_sdk.new_scope() as scope:
        if user:
            scope.set_user({"id": user.get("id"), "email": user.get("email"), "username": user.get("name")})
        for key, value in (context or {}).items():
            scope.set_context(key, _scrub(value))
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return sentry_sdk.capture_exception(error)


def setup_logging() -> None:
    """
    Configure the root logger (stdout) for libraries and uvicorn.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    if not isDebugMode():
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.info(f"Logging configured with level: {settings.LOG_LEVEL} (mode: {settings.MODE})")
