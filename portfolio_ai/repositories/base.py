"""
Repository interfaces consumed by the services.

Services depend only on these protocols; the SQLAlchemy implementations live in
portfolio_ai.repositories.sql. All methods are tenant-scoped except where a
tenant_id of None explicitly addresses global (shared) personality templates.
"""
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from portfolio_ai.schemas.knowledge import KnowledgeEntryOut
from portfolio_ai.schemas.personality import PersonalityOut
from portfolio_ai.schemas.settings import SettingOut


class KnowledgeRepository(Protocol):
    async def list_active_tags(self, tenant_id: UUID) -> List[Tuple[UUID, str]]:
        """(entry_id, token) for every tag of an active entry of the tenant."""
        ...

    async def get_entries(self, tenant_id: UUID, entry_ids: Sequence[UUID], active_only: bool = True) -> List[KnowledgeEntryOut]:
        ...

    async def list_entries(
        self,
        tenant_id: UUID,
        kinds: Optional[Sequence[str]] = None,
        active_only: bool = True,
    ) -> List[KnowledgeEntryOut]:
        ...

    async def get_entry(self, tenant_id: UUID, entry_id: UUID) -> Optional[KnowledgeEntryOut]:
        ...

    async def get_by_slug(self, tenant_id: UUID, slug: str) -> Optional[KnowledgeEntryOut]:
        ...

    async def create_entry(self, tenant_id: UUID, fields: Mapping[str, Any], keywords: Sequence[str]) -> KnowledgeEntryOut:
        ...

    async def update_entry(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        changes: Mapping[str, Any],
        keywords: Optional[Sequence[str]] = None,
    ) -> Optional[KnowledgeEntryOut]:
        """Apply changes; when keywords is not None the old tags are fully replaced."""
        ...

    async def delete_entry(self, tenant_id: UUID, entry_id: UUID) -> bool:
        """Hard delete (tags cascade). False if nothing was deleted."""
        ...


class SettingsRepository(Protocol):
    async def load_map(self, tenant_id: UUID) -> Dict[str, str]:
        """Whole key -> value map for one tenant."""
        ...

    async def list_settings(self, tenant_id: UUID, category: Optional[str] = None) -> List[SettingOut]:
        ...

    async def get_setting(self, tenant_id: UUID, key: str) -> Optional[SettingOut]:
        ...

    async def create_setting(self, tenant_id: UUID, fields: Mapping[str, Any]) -> SettingOut:
        ...

    async def update_value(self, tenant_id: UUID, key: str, value: str) -> Optional[SettingOut]:
        ...

    async def upsert_value(self, tenant_id: UUID, key: str, value: str, category: Optional[str] = None) -> SettingOut:
        ...

    async def delete_setting(self, tenant_id: UUID, key: str) -> bool:
        ...


class PersonalityRepository(Protocol):
    async def list_templates(self, tenant_id: Optional[UUID]) -> List[PersonalityOut]:
        """Templates owned by tenant_id (None = globals only)."""
        ...

    async def get_template(self, template_id: UUID) -> Optional[PersonalityOut]:
        ...

    async def find_by_mode(self, tenant_id: Optional[UUID], mode: str) -> Optional[PersonalityOut]:
        """Active template with this mode in exactly this scope."""
        ...

    async def find_default(self, tenant_id: Optional[UUID]) -> Optional[PersonalityOut]:
        """Active is_default template in exactly this scope."""
        ...

    async def create_template(self, tenant_id: Optional[UUID], fields: Mapping[str, Any]) -> PersonalityOut:
        ...

    async def update_template(self, template_id: UUID, changes: Mapping[str, Any]) -> Optional[PersonalityOut]:
        ...

    async def clear_default(self, tenant_id: Optional[UUID]) -> None:
        """Unset is_default on every template in this scope."""
        ...

    async def delete_template(self, template_id: UUID) -> bool:
        ...
