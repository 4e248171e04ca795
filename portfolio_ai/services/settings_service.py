"""
Tenant settings administration.

Every write invalidates the tenant's cache entry so the next hydration sees it.
Writing owner_name or owner_role recomputes the stored ascii_banner setting.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from portfolio_ai.exceptions import EntityConflict, EntityNotFound
from portfolio_ai.logging_config import get_logger
from portfolio_ai.repositories.base import SettingsRepository
from portfolio_ai.schemas.settings import SettingCreate, SettingOut
from portfolio_ai.services.settings_cache import TenantSettingsCache

logger = get_logger(__name__)

BANNER_KEY = "ascii_banner"
BANNER_SOURCE_KEYS = frozenset({"owner_name", "owner_role"})
BANNER_FALLBACK_NAME = "Portfolio"

# Categories safe to expose without authentication.
PUBLIC_CATEGORIES = ("branding", "social", "owner", "ai", "contact")

# Seeded at onboarding; existing keys are never overwritten.
DEFAULT_SETTINGS: Tuple[Dict[str, Any], ...] = (
    {"key": "owner_name", "value": "", "category": "owner", "description": "Full name of the portfolio owner"},
    {"key": "owner_first_name", "value": "", "category": "owner", "description": "Owner first name"},
    {"key": "owner_role", "value": "", "category": "owner", "description": "Main professional role"},
    {"key": "owner_role_short", "value": "", "category": "owner", "description": "Short role for placeholders"},
    {"key": "owner_location", "value": "", "category": "owner", "description": "Location"},
    {"key": "owner_philosophy", "value": "", "category": "owner", "description": "Professional philosophy"},
    {"key": "contact_email_primary", "value": "", "category": "contact", "description": "Primary contact email"},
    {"key": "contact_availability", "value": "", "category": "contact", "description": "Availability"},
    {"key": "social_github", "value": "", "category": "social", "description": "GitHub profile URL"},
    {"key": "social_linkedin", "value": "", "category": "social", "description": "LinkedIn profile URL"},
    {"key": "branding_site_title", "value": "", "category": "branding", "description": "Site title"},
    {"key": "branding_terminal_prompt", "value": "visitor@portfolio:~$", "category": "branding", "description": "Terminal prompt"},
    {"key": "tech_stack", "value": "[]", "kind": "json", "category": "tech", "description": "Technologies (JSON array)"},
)


def render_banner(owner_name: Optional[str], owner_role: Optional[str] = None) -> str:
    """Framed plain-text banner with the owner name and role."""
    lines = [(owner_name or BANNER_FALLBACK_NAME).strip().upper()]
    if owner_role and owner_role.strip():
        lines.append(owner_role.strip())
    width = max(len(line) for line in lines)
    border = "+" + "-" * (width + 2) + "+"
    body = [f"| {line.ljust(width)} |" for line in lines]
    return "\n".join([border, *body, border])


def banner_needs_regeneration(owner_name: Optional[str], banner: Optional[str]) -> bool:
    """True when the banner is missing or no longer mentions every name part (>2 chars)."""
    if not banner:
        return True
    banner_lower = banner.lower()
    parts = (owner_name or BANNER_FALLBACK_NAME).lower().split()
    return any(len(part) > 2 and part not in banner_lower for part in parts)


class SettingsService:
    """CRUD over tenant settings with cache invalidation and banner upkeep."""

    def __init__(self, repository: SettingsRepository, settings_cache: TenantSettingsCache) -> None:
        self._repository = repository
        self._settings_cache = settings_cache

    async def list_settings(self, tenant_id: UUID, category: Optional[str] = None) -> List[SettingOut]:
        return await self._repository.list_settings(tenant_id, category=category)

    async def list_public(self, tenant_id: UUID) -> List[SettingOut]:
        settings = await self._repository.list_settings(tenant_id)
        return [s for s in settings if s.category in PUBLIC_CATEGORIES]

    async def get(self, tenant_id: UUID, key: str) -> SettingOut:
        setting = await self._repository.get_setting(tenant_id, key)
        if setting is None:
            raise EntityNotFound(f"setting '{key}' not found")
        return setting

    async def get_value(self, tenant_id: UUID, key: str) -> Optional[str]:
        """Cached value; empty values read as None."""
        values = await self._settings_cache.get(tenant_id)
        return values.get(key) or None

    async def create(self, tenant_id: UUID, payload: SettingCreate) -> SettingOut:
        if await self._repository.get_setting(tenant_id, payload.key) is not None:
            raise EntityConflict(f"setting '{payload.key}' already exists")
        created = await self._repository.create_setting(tenant_id, payload.model_dump(mode="json"))
        await self._after_write(tenant_id, {payload.key})
        logger.info("settings.created", tenant_id=str(tenant_id), key=payload.key)
        return created

    async def update(self, tenant_id: UUID, key: str, value: str) -> SettingOut:
        updated = await self._repository.update_value(tenant_id, key, value)
        if updated is None:
            raise EntityNotFound(f"setting '{key}' not found")
        await self._after_write(tenant_id, {key})
        logger.info("settings.updated", tenant_id=str(tenant_id), key=key)
        return updated

    async def delete(self, tenant_id: UUID, key: str) -> None:
        if not await self._repository.delete_setting(tenant_id, key):
            raise EntityNotFound(f"setting '{key}' not found")
        self._settings_cache.invalidate(tenant_id)
        logger.info("settings.deleted", tenant_id=str(tenant_id), key=key)

    async def seed_defaults(self, tenant_id: UUID, overrides: Optional[Mapping[str, str]] = None) -> int:
        """Create missing default settings (overrides replace default values). Returns how many were created."""
        overrides = overrides or {}
        existing = await self._repository.load_map(tenant_id)
        created = 0
        for default in DEFAULT_SETTINGS:
            if default["key"] in existing:
                continue
            fields = dict(default)
            if default["key"] in overrides:
                fields["value"] = overrides[default["key"]]
            await self._repository.create_setting(tenant_id, fields)
            created += 1
        await self._after_write(tenant_id, set(BANNER_SOURCE_KEYS))
        logger.info("settings.seeded", tenant_id=str(tenant_id), created=created)
        return created

    async def _after_write(self, tenant_id: UUID, keys: set) -> None:
        self._settings_cache.invalidate(tenant_id)
        if keys & BANNER_SOURCE_KEYS:
            await self.regenerate_banner(tenant_id)

    async def regenerate_banner(self, tenant_id: UUID) -> str:
        values = await self._settings_cache.get(tenant_id)
        banner = render_banner(values.get("owner_name"), values.get("owner_role"))
        await self._repository.upsert_value(tenant_id, BANNER_KEY, banner, category="branding")
        self._settings_cache.invalidate(tenant_id)
        logger.info("settings.banner_regenerated", tenant_id=str(tenant_id))
        return banner

    async def banner(self, tenant_id: UUID) -> str:
        """Stored banner, regenerated first if it no longer matches owner_name."""
        values = await self._settings_cache.get(tenant_id)
        current = values.get(BANNER_KEY)
        if banner_needs_regeneration(values.get("owner_name"), current):
            return await self.regenerate_banner(tenant_id)
        return current or ""
