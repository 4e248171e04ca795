"""
Knowledge administration: entry CRUD, project summaries, automated enrichment.

Reads return hydrated copies by default; stored text keeps its {{placeholders}}.
"""
import json
import re
import unicodedata
from typing import List, Optional
from uuid import UUID

from portfolio_ai.exceptions import EntityConflict, EntityNotFound
from portfolio_ai.logging_config import get_logger
from portfolio_ai.repositories.base import KnowledgeRepository
from portfolio_ai.schemas.knowledge import (
    KnowledgeEntryCreate,
    KnowledgeEntryOut,
    KnowledgeEntryUpdate,
    KnowledgeKind,
    ProjectSummary,
)
from portfolio_ai.services.generation_service import GenerationGateway
from portfolio_ai.services.prompt_service import build_keywords_prompt, build_summary_prompt
from portfolio_ai.services.relevance_service import hydrate_entries
from portfolio_ai.services.settings_cache import TenantSettingsCache

logger = get_logger(__name__)

SUMMARY_UNAVAILABLE = "Summary unavailable"
MAX_GENERATED_KEYWORDS = 15
KEYWORDS_TEMPERATURE = 0.1

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*?\]")
_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def parse_generated_keywords(text: str, limit: int = MAX_GENERATED_KEYWORDS) -> List[str]:
    """
    Extract the first JSON array of strings from model output.
    Tokens are lowercased, accent-stripped, 2..49 chars, de-duplicated, at most limit.
    Unparseable output gives [].
    """
    clean = _CODE_FENCE_RE.sub("", text or "").strip()
    match = _JSON_ARRAY_RE.search(clean)
    if not match:
        logger.warning("knowledge.keywords_unparseable", sample=clean[:100])
        return []
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("knowledge.keywords_json_failed", error=str(e), sample=match.group(0)[:100])
        return []
    out: List[str] = []
    for raw in data:
        if not isinstance(raw, str):
            continue
        token = strip_accents(raw.lower().strip())
        if 1 < len(token) < 50 and token not in out:
            out.append(token)
    return out[:limit]


class KnowledgeService:
    """Tenant-scoped knowledge entries."""

    def __init__(
        self,
        repository: KnowledgeRepository,
        settings_cache: TenantSettingsCache,
        gateway: Optional[GenerationGateway] = None,
    ) -> None:
        self._repository = repository
        self._settings_cache = settings_cache
        self._gateway = gateway

    async def _hydrated(self, tenant_id: UUID, entries: List[KnowledgeEntryOut]) -> List[KnowledgeEntryOut]:
        return await hydrate_entries(self._settings_cache, tenant_id, entries)

    async def list_entries(
        self,
        tenant_id: UUID,
        kind: Optional[KnowledgeKind] = None,
        active_only: bool = False,
        hydrate: bool = True,
    ) -> List[KnowledgeEntryOut]:
        kinds = [kind] if kind is not None else None
        entries = await self._repository.list_entries(tenant_id, kinds=kinds, active_only=active_only)
        return await self._hydrated(tenant_id, entries) if hydrate else entries

    async def get(self, tenant_id: UUID, entry_id: UUID, hydrate: bool = True) -> KnowledgeEntryOut:
        entry = await self._repository.get_entry(tenant_id, entry_id)
        if entry is None:
            raise EntityNotFound(f"knowledge entry {entry_id} not found")
        return (await self._hydrated(tenant_id, [entry]))[0] if hydrate else entry

    async def get_by_slug(self, tenant_id: UUID, slug: str, hydrate: bool = True) -> KnowledgeEntryOut:
        entry = await self._repository.get_by_slug(tenant_id, slug)
        if entry is None:
            raise EntityNotFound(f"knowledge entry '{slug}' not found")
        return (await self._hydrated(tenant_id, [entry]))[0] if hydrate else entry

    async def create(self, tenant_id: UUID, payload: KnowledgeEntryCreate) -> KnowledgeEntryOut:
        if await self._repository.get_by_slug(tenant_id, payload.slug) is not None:
            raise EntityConflict(f"knowledge entry '{payload.slug}' already exists")
        fields = payload.model_dump(mode="json", exclude={"keywords"})
        created = await self._repository.create_entry(tenant_id, fields, payload.keywords)
        logger.info(
            "knowledge.created",
            tenant_id=str(tenant_id),
            id=str(created.id),
            slug=created.slug,
            keywords=len(created.keywords),
        )
        return created

    async def update(self, tenant_id: UUID, entry_id: UUID, payload: KnowledgeEntryUpdate) -> KnowledgeEntryOut:
        changes = payload.model_dump(mode="json", exclude_unset=True, exclude={"keywords"})
        keywords = payload.keywords if "keywords" in payload.model_fields_set else None
        updated = await self._repository.update_entry(tenant_id, entry_id, changes, keywords=keywords)
        if updated is None:
            raise EntityNotFound(f"knowledge entry {entry_id} not found")
        logger.info(
            "knowledge.updated",
            tenant_id=str(tenant_id),
            id=str(entry_id),
            fields=sorted(changes),
            keywords_replaced=keywords is not None,
        )
        return updated

    async def deactivate(self, tenant_id: UUID, entry_id: UUID) -> KnowledgeEntryOut:
        """Logical delete: the entry stays stored but is never matched again."""
        updated = await self._repository.update_entry(tenant_id, entry_id, {"active": False})
        if updated is None:
            raise EntityNotFound(f"knowledge entry {entry_id} not found")
        logger.info("knowledge.deactivated", tenant_id=str(tenant_id), id=str(entry_id))
        return updated

    async def delete(self, tenant_id: UUID, entry_id: UUID) -> None:
        """Hard delete; tags go with it."""
        if not await self._repository.delete_entry(tenant_id, entry_id):
            raise EntityNotFound(f"knowledge entry {entry_id} not found")
        logger.info("knowledge.deleted", tenant_id=str(tenant_id), id=str(entry_id))

    async def project_summaries(self, tenant_id: UUID) -> List[ProjectSummary]:
        entries = await self.list_entries(tenant_id, kind=KnowledgeKind.PROJECT, active_only=True)
        return [
            ProjectSummary(slug=e.slug, title=e.title, summary=e.summary or SUMMARY_UNAVAILABLE)
            for e in entries
        ]

    def _require_gateway(self) -> GenerationGateway:
        if self._gateway is None:
            raise RuntimeError("KnowledgeService was built without a generation gateway")
        return self._gateway

    async def summarize_entry(self, tenant_id: UUID, entry_id: UUID) -> KnowledgeEntryOut:
        """
        Generate and store a summary from the entry body.
        Generation errors (ConfigurationMissing, CredentialInvalid, ProviderTransient) propagate.
        """
        gateway = self._require_gateway()
        entry = await self.get(tenant_id, entry_id, hydrate=False)
        summary = await gateway.complete(build_summary_prompt(entry.body))
        if not summary:
            logger.warning("knowledge.summary_empty", tenant_id=str(tenant_id), id=str(entry_id))
            return entry
        updated = await self._repository.update_entry(tenant_id, entry_id, {"summary": summary})
        if updated is None:
            raise EntityNotFound(f"knowledge entry {entry_id} not found")
        logger.info("knowledge.summarized", tenant_id=str(tenant_id), id=str(entry_id))
        return updated

    async def regenerate_keywords(self, tenant_id: UUID, entry_id: UUID) -> List[str]:
        """
        Replace the entry's tags with freshly generated keywords.
        Empty generation keeps the existing tags and returns [].
        """
        gateway = self._require_gateway()
        entry = await self.get(tenant_id, entry_id, hydrate=False)
        text = await gateway.complete(
            build_keywords_prompt(entry.title, entry.body, count=MAX_GENERATED_KEYWORDS),
            temperature=KEYWORDS_TEMPERATURE,
        )
        keywords = parse_generated_keywords(text)
        if not keywords:
            logger.warning("knowledge.keywords_empty", tenant_id=str(tenant_id), id=str(entry_id))
            return []
        await self._repository.update_entry(tenant_id, entry_id, {}, keywords=keywords)
        logger.info("knowledge.keywords_regenerated", tenant_id=str(tenant_id), id=str(entry_id), count=len(keywords))
        return keywords
