"""
Relevance matcher: picks knowledge entries for a free-text question.

Tag-in-query substring containment over the tenant's active keyword tags.
No match (including an empty query) falls back to the active meta + index
entries. Results are ordered by priority desc, then slug, and are always
returned hydrated.
"""
from typing import List, Sequence
from uuid import UUID

from portfolio_ai.logging_config import get_logger
from portfolio_ai.repositories.base import KnowledgeRepository
from portfolio_ai.schemas.knowledge import FALLBACK_KINDS, KnowledgeEntryOut
from portfolio_ai.services.settings_cache import TenantSettingsCache, substitute_placeholders

logger = get_logger(__name__)


def sort_entries(entries: Sequence[KnowledgeEntryOut]) -> List[KnowledgeEntryOut]:
    """Priority desc; equal priority broken by slug (unique per tenant)."""
    return sorted(entries, key=lambda e: (-e.priority, e.slug))


async def hydrate_entries(
    cache: TenantSettingsCache,
    tenant_id: UUID,
    entries: Sequence[KnowledgeEntryOut],
) -> List[KnowledgeEntryOut]:
    """Copies of entries with title/body/summary hydrated. Stored rows are untouched."""
    if not entries:
        return []
    values = await cache.get(tenant_id)
    return [
        e.model_copy(
            update={
                "title": substitute_placeholders(e.title, values),
                "body": substitute_placeholders(e.body, values),
                "summary": substitute_placeholders(e.summary, values),
            }
        )
        for e in entries
    ]


class RelevanceMatcher:
    """find_relevant(tenant, query) -> ordered, hydrated entries."""

    def __init__(self, repository: KnowledgeRepository, settings_cache: TenantSettingsCache) -> None:
        self._repository = repository
        self._settings_cache = settings_cache

    async def matching_entry_ids(self, tenant_id: UUID, query: str) -> List[UUID]:
        """Distinct ids of entries with at least one tag contained in the lowercased query."""
        query_lower = (query or "").lower()
        if not query_lower.strip():
            return []
        ids: List[UUID] = []
        seen: set[UUID] = set()
        for entry_id, token in await self._repository.list_active_tags(tenant_id):
            # An empty token would match every query
            if token and token in query_lower and entry_id not in seen:
                seen.add(entry_id)
                ids.append(entry_id)
        return ids

    async def find_relevant(self, tenant_id: UUID, query: str) -> List[KnowledgeEntryOut]:
        ids = await self.matching_entry_ids(tenant_id, query)
        entries: List[KnowledgeEntryOut] = []
        if ids:
            entries = await self._repository.get_entries(tenant_id, ids, active_only=True)
        if not entries:
            entries = await self._repository.list_entries(tenant_id, kinds=FALLBACK_KINDS, active_only=True)
            logger.debug("relevance.fallback", tenant_id=str(tenant_id), count=len(entries))
        else:
            logger.debug("relevance.matched", tenant_id=str(tenant_id), count=len(entries))
        return await hydrate_entries(self._settings_cache, tenant_id, sort_entries(entries))
