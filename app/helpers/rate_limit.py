from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.logging import get_logger

logger = get_logger(__name__)


async def allow(
    redis: Redis,
    scope: str,
    identifier: str,
    client_ip: str,
    max_attempts: int,
    window_sec: int,
) -> bool:
    """
    Fixed-window counter per (scope, identifier, ip).

    Returns False once ``max_attempts`` is exceeded inside ``window_sec``.
    A Redis outage lets the request through (logged as a warning).
    """
    if not settings.RATE_LIMIT_ENABLED:
        return True

    key = f"rl:{scope}:{identifier.strip().lower()}:{client_ip}"
    try:
        attempts = await redis.incr(key)
        if attempts == 1:
            await redis.expire(key, window_sec)
    except RedisError as e:
        logger.warning("Rate limit check skipped, Redis unavailable", scope=scope, error=str(e))
        return True

    return attempts <= max_attempts
