from typing import Optional
import logging

from redis import Redis, ConnectionPool
from redis.exceptions import RedisError

from waitlist.core.config import settings

logger = logging.getLogger(__name__)

# Simple Redis-based fixed-window rate limiter
_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


def get_client() -> Redis:
    global _pool, _client
    if _client is None:
        _pool = ConnectionPool.from_url(settings.REDIS_URL, decode_responses=True)
        _client = Redis(connection_pool=_pool)
    return _client


def allow(key: str, limit: int, window_seconds: int) -> bool:
    """Return True if action under key is allowed within window, else False.

    Uses INCR + EXPIRE (nx) so the window starts at the first hit. When Redis
    is unreachable the request is let through and a warning is logged.
    """
    if not settings.RATE_LIMIT_ENABLED:
        return True
    try:
        r = get_client()
        with r.pipeline() as pipe:
            pipe.incr(key, 1)
            pipe.expire(key, window_seconds, nx=True)
            count, _ = pipe.execute()
    except RedisError as e:
        logger.warning(f"Rate limiter unavailable, allowing {key}: {e}")
        return True
    return int(count) <= limit


def allow_for_email(action: str, email: str, limit: int, window_seconds: int = 60) -> bool:
    safe_email = (email or "").lower().strip()
    return allow(f"ratelimit:{action}:email:{safe_email}", limit, window_seconds)


def allow_for_client(action: str, client_host: Optional[str], limit: int, window_seconds: int = 60) -> bool:
    return allow(f"ratelimit:{action}:ip:{client_host or 'unknown'}", limit, window_seconds)
