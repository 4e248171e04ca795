"""
Quota backends: durable (Redis) and in-process (memory).

Both implement the same fixed-window semantics so callers never branch on
which one is active:
- a window opens on the first increment and lasts window_seconds
  (anchored to first use, not midnight);
- check never creates a record; an expired record reads as absent;
- the next increment after expiry opens a new window at count 1.
"""
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from portfolio_ai.exceptions import BackendUnavailable
from portfolio_ai.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    """Result of an admission check."""

    allowed: bool
    remaining: int
    reset_in: Optional[int] = None


@dataclass
class QuotaRecord:
    """In-process usage record for one identity."""

    count: int
    window_reset_at: float


class QuotaBackend(ABC):
    """Counter store for one fixed quota per rolling window."""

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window_seconds = window_seconds

    def _decision(self, count: int, reset_in: Optional[int]) -> QuotaDecision:
        remaining = max(0, self.limit - count)
        return QuotaDecision(
            allowed=count < self.limit,
            remaining=remaining,
            reset_in=reset_in if reset_in is not None and reset_in > 0 else None,
        )

    @abstractmethod
    async def check_limit(self, key: str) -> QuotaDecision:
        """Current decision for key. Must not create a record."""

    @abstractmethod
    async def increment_usage(self, key: str) -> None:
        """Count one use; opens a new window when none is live."""


class DurableQuotaBackend(QuotaBackend):
    """Backend with a connection lifecycle (open/probe/close)."""

    @abstractmethod
    async def ping(self) -> None:
        """Liveness probe. Raises when the store is unreachable."""

    async def close(self) -> None:
        return None

    def is_connection_error(self, exc: BaseException) -> bool:
        """True when exc means the connection itself is lost (not a single bad call)."""
        return False


class MemoryQuotaBackend(QuotaBackend):
    """
    In-process fallback store. Safe for a single process; several processes
    sharing only this store will each count separately.
    Expired records are swept at most once per window, on increment.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(limit, window_seconds)
        self._clock = clock
        self._records: Dict[str, QuotaRecord] = {}
        self._next_sweep_at = clock() + window_seconds

    def _live_record(self, key: str, now: float) -> Optional[QuotaRecord]:
        record = self._records.get(key)
        if record is None or now > record.window_reset_at:
            return None
        return record

    async def check_limit(self, key: str) -> QuotaDecision:
        now = self._clock()
        record = self._live_record(key, now)
        if record is None:
            return QuotaDecision(allowed=True, remaining=self.limit)
        return self._decision(record.count, math.floor(record.window_reset_at - now))

    async def increment_usage(self, key: str) -> None:
        now = self._clock()
        if now >= self._next_sweep_at:
            removed = self.cleanup_expired()
            self._next_sweep_at = now + self.window_seconds
            logger.debug("quota.memory_swept", removed=removed, held=len(self._records))
        record = self._live_record(key, now)
        if record is None:
            # last-writer-wins replacement
            self._records[key] = QuotaRecord(count=1, window_reset_at=now + self.window_seconds)
        else:
            record.count += 1

    def cleanup_expired(self) -> int:
        """Drop expired records; returns how many were removed."""
        now = self._clock()
        expired = [k for k, r in self._records.items() if now > r.window_reset_at]
        for k in expired:
            del self._records[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class RedisQuotaBackend(DurableQuotaBackend):
    """Redis counter: SET NX EX opens the window and INCR counts in one transaction; TTL reports the reset."""

    def __init__(self, client: Any, limit: int, window_seconds: int) -> None:
        super().__init__(limit, window_seconds)
        self._client = client

    @classmethod
    def from_url(cls, redis_url: str, limit: int, window_seconds: int) -> "RedisQuotaBackend":
        from redis.asyncio import Redis

        client = Redis.from_url(redis_url, decode_responses=True)
        return cls(client, limit, window_seconds)

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except Exception as e:
            raise BackendUnavailable(f"redis ping failed: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()

    def is_connection_error(self, exc: BaseException) -> bool:
        from redis.exceptions import ConnectionError as RedisConnectionError
        from redis.exceptions import TimeoutError as RedisTimeoutError

        return isinstance(
            exc, (BackendUnavailable, RedisConnectionError, RedisTimeoutError, ConnectionError, TimeoutError)
        )

    async def check_limit(self, key: str) -> QuotaDecision:
        count = await self._client.get(key)
        if count is None:
            return QuotaDecision(allowed=True, remaining=self.limit)
        ttl = await self._client.ttl(key)
        return self._decision(int(count), int(ttl) if ttl is not None else None)

    async def increment_usage(self, key: str) -> None:
        # One MULTI: the key cannot expire between opening the window and counting,
        # so INCR never creates a key without a TTL
        pipe = self._client.pipeline(transaction=True)
        pipe.set(key, 0, ex=self.window_seconds, nx=True)
        pipe.incr(key)
        await pipe.execute()
