"""
Tenant settings cache + {{placeholder}} hydration.

One instance per process (created in the app lifespan, passed explicitly to
consumers). Each tenant has its own entry refreshed from the settings
repository when missing or older than the TTL. A refresh builds a new map
and swaps it in, so readers never see a partially-populated map.
Store read failures propagate: there is no stale-serve-on-error fallback.
"""
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional
from uuid import UUID

from portfolio_ai.logging_config import get_logger
from portfolio_ai.repositories.base import SettingsRepository

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 60.0
PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


def substitute_placeholders(text: Optional[str], values: Mapping[str, str]) -> Optional[str]:
    """Replace {{key}} with values[key]; unknown keys stay as literal {{key}}."""
    if not text:
        return text

    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1)
        return values[key] if key in values else match.group(0)

    return PLACEHOLDER_RE.sub(_sub, text)


@dataclass(frozen=True)
class CacheEntry:
    """Immutable snapshot of one tenant's settings."""

    values: Mapping[str, str]
    loaded_at: float


class TenantSettingsCache:
    """Per-tenant key -> value map with a fixed TTL."""

    def __init__(
        self,
        repository: SettingsRepository,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository = repository
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[UUID, CacheEntry] = {}

    async def get(self, tenant_id: UUID) -> Mapping[str, str]:
        """Settings map for tenant_id, reloaded on miss or expiry."""
        now = self._clock()
        entry = self._entries.get(tenant_id)
        if entry is not None and now - entry.loaded_at < self._ttl:
            return entry.values
        values = dict(await self._repository.load_map(tenant_id))
        self._entries[tenant_id] = CacheEntry(values=values, loaded_at=now)
        logger.debug("settings_cache.refreshed", tenant_id=str(tenant_id), keys=len(values))
        return values

    async def hydrate(self, text: Optional[str], tenant_id: UUID) -> Optional[str]:
        """Replace every {{key}} in text with the tenant's cached value."""
        if not text or "{{" not in text:
            return text
        values = await self.get(tenant_id)
        return substitute_placeholders(text, values)

    def invalidate(self, tenant_id: Optional[UUID] = None) -> None:
        """Drop one tenant's entry (or all of them). Next get() reloads."""
        if tenant_id is None:
            self._entries.clear()
        else:
            self._entries.pop(tenant_id, None)
