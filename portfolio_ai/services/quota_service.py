"""
Free-tier quota limiter with durable backend + in-process fallback.

Connection state machine (per process):

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> DISCONNECTED   on a lost connection (probe failure or connection error)
    CONNECTING -> DEGRADED      after connect_attempts failed pings (backoff between them)

DEGRADED is final for the process lifetime: every call uses the fallback.
Any other error from the durable backend while CONNECTED only sends that one
call to the fallback; nothing is raised to the caller.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from portfolio_ai.config import Settings
from portfolio_ai.infrastructure.quota_backends import (
    DurableQuotaBackend,
    MemoryQuotaBackend,
    QuotaBackend,
    QuotaDecision,
    RedisQuotaBackend,
)
from portfolio_ai.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


class QuotaLimiter:
    """check_limit / increment_usage over whichever backend is currently usable."""

    def __init__(
        self,
        fallback: MemoryQuotaBackend,
        durable: Optional[DurableQuotaBackend] = None,
        key_prefix: str = "ratelimit:chat:",
        connect_attempts: int = 3,
        backoff_step_seconds: float = 0.1,
        backoff_max_seconds: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._fallback = fallback
        self._durable = durable
        self._key_prefix = key_prefix
        self._connect_attempts = max(1, connect_attempts)
        self._backoff_step = backoff_step_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep
        self._state = ConnectionState.DISCONNECTED if durable is not None else ConnectionState.DEGRADED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def limit(self) -> int:
        return self._fallback.limit

    @property
    def fallback(self) -> MemoryQuotaBackend:
        return self._fallback

    def is_using_durable_backend(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def _key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    def _backoff(self, attempt: int) -> float:
        return min(attempt * self._backoff_step, self._backoff_max)

    async def connect(self) -> ConnectionState:
        """Bounded connect: up to connect_attempts pings, then DEGRADED for good."""
        if self._durable is None or self._state in (ConnectionState.CONNECTED, ConnectionState.DEGRADED):
            return self._state
        if self._state == ConnectionState.CONNECTING:
            return self._state
        self._state = ConnectionState.CONNECTING
        for attempt in range(1, self._connect_attempts + 1):
            try:
                await self._durable.ping()
            except Exception as e:
                logger.warning("quota.connect_failed", attempt=attempt, error=str(e))
                if attempt < self._connect_attempts:
                    await self._sleep(self._backoff(attempt))
                continue
            self._state = ConnectionState.CONNECTED
            logger.info("quota.connected", attempt=attempt)
            return self._state
        self._state = ConnectionState.DEGRADED
        logger.warning("quota.degraded", attempts=self._connect_attempts)
        return self._state

    async def probe(self) -> bool:
        """Liveness probe of the durable backend. A failure drops the connection."""
        if self._durable is None or self._state != ConnectionState.CONNECTED:
            return False
        try:
            await self._durable.ping()
            return True
        except Exception as e:
            logger.warning("quota.probe_failed", error=str(e))
            self._state = ConnectionState.DISCONNECTED
            return False

    async def _backend(self) -> QuotaBackend:
        if self._state == ConnectionState.DISCONNECTED:
            await self.connect()
        if self._state == ConnectionState.CONNECTED and self._durable is not None:
            return self._durable
        return self._fallback

    def _on_durable_error(self, op: str, identity: str, exc: Exception) -> None:
        logger.warning("quota.redis_error", op=op, identity=identity, error=str(exc))
        if self._durable is not None and self._durable.is_connection_error(exc):
            self._state = ConnectionState.DISCONNECTED

    async def check_limit(self, identity: str) -> QuotaDecision:
        key = self._key(identity)
        backend = await self._backend()
        if backend is self._fallback:
            return await self._fallback.check_limit(key)
        try:
            return await backend.check_limit(key)
        except Exception as e:
            self._on_durable_error("check", identity, e)
            return await self._fallback.check_limit(key)

    async def increment_usage(self, identity: str) -> None:
        key = self._key(identity)
        backend = await self._backend()
        if backend is self._fallback:
            await self._fallback.increment_usage(key)
            return
        try:
            await backend.increment_usage(key)
        except Exception as e:
            self._on_durable_error("increment", identity, e)
            await self._fallback.increment_usage(key)

    async def close(self) -> None:
        if self._durable is not None:
            try:
                await self._durable.close()
            except Exception as e:
                logger.warning("quota.close_failed", error=str(e))
        if self._state != ConnectionState.DEGRADED:
            self._state = ConnectionState.DISCONNECTED


def build_quota_limiter(settings: Settings) -> QuotaLimiter:
    """Limiter from config. Without REDIS_URL it starts DEGRADED (memory only)."""
    fallback = MemoryQuotaBackend(
        limit=settings.free_tier_limit,
        window_seconds=settings.free_tier_window_seconds,
    )
    durable: Optional[DurableQuotaBackend] = None
    if settings.redis_url:
        durable = RedisQuotaBackend.from_url(
            settings.redis_url,
            limit=settings.free_tier_limit,
            window_seconds=settings.free_tier_window_seconds,
        )
    else:
        logger.info("quota.memory_only")
    return QuotaLimiter(
        fallback=fallback,
        durable=durable,
        key_prefix=settings.quota_key_prefix,
        connect_attempts=settings.redis_connect_attempts,
        backoff_step_seconds=settings.redis_backoff_step_ms / 1000,
        backoff_max_seconds=settings.redis_backoff_max_ms / 1000,
    )
