"""
Burst throttle for the chat endpoint: Redis sliding window per client IP.

CHAT_RATE_LIMIT_PER_MIN requests per minute (default 10). The Redis client is
owned by the service container (opened with it, closed on shutdown). Without
REDIS_URL, or when Redis errors, requests pass through. The daily free-tier
quota is a separate concern enforced by the chat service.
"""
import time
import uuid
from typing import Any, Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from portfolio_ai.config import Settings
from portfolio_ai.logging_config import get_logger
from portfolio_ai.utils.request_identity import client_ip

logger = get_logger(__name__)

REDIS_KEY_PREFIX = "rl:chat:"
WINDOW_SECONDS = 60
THROTTLED_PATHS = ("/chat",)


def build_throttle_client(settings: Settings) -> Optional[Any]:
    """Redis client for the throttle, or None when REDIS_URL is unset."""
    if not settings.redis_url:
        return None
    from redis.asyncio import Redis

    return Redis.from_url(settings.redis_url, decode_responses=True)


async def sliding_window_allows(client: Any, key: str, limit: int, now: Optional[float] = None) -> bool:
    """Record one hit and count the hits of the last WINDOW_SECONDS. True while count <= limit."""
    now = time.time() if now is None else now
    rkey = REDIS_KEY_PREFIX + key
    pipe = client.pipeline()
    pipe.zadd(rkey, {str(uuid.uuid4()): now})
    pipe.zremrangebyscore(rkey, "-inf", now - WINDOW_SECONDS)
    pipe.zcard(rkey)
    pipe.expire(rkey, WINDOW_SECONDS + 10)
    _, _, count, _ = await pipe.execute()
    return count <= limit


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle POST /chat per client IP."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "POST" or request.url.path not in THROTTLED_PATHS:
            return await call_next(request)
        container = getattr(request.app.state, "container", None)
        client = getattr(container, "throttle_client", None)
        if client is None:
            return await call_next(request)
        key = client_ip(request)
        limit = container.throttle_limit
        try:
            allowed = await sliding_window_allows(client, key, limit)
        except Exception as e:
            logger.warning("rate_limit.redis_error", key=key, error=str(e))
            allowed = True
        if not allowed:
            logger.info("rate_limit.exceeded", key=key, limit=limit)
            return Response(
                content='{"detail":"Too many requests, slow down."}',
                status_code=429,
                media_type="application/json",
            )
        return await call_next(request)
