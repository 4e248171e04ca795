"""
Personality templates: resolution for prompt assembly + tenant administration.

Global templates (tenant_id None) are shared read-only fallbacks. Any
tenant-scoped write that targets a global template goes through
materialize(), which clones it into the tenant with a fresh id first.
"""
from typing import List, Optional
from uuid import UUID

from portfolio_ai.exceptions import EntityConflict, EntityNotFound
from portfolio_ai.logging_config import get_logger
from portfolio_ai.repositories.base import PersonalityRepository
from portfolio_ai.schemas.personality import PersonalityCreate, PersonalityOut, PersonalityUpdate
from portfolio_ai.services.settings_cache import TenantSettingsCache

logger = get_logger(__name__)

# Used only when neither the tenant nor the global scope has a usable template.
DEFAULT_SYSTEM_PROMPT = (
    "You are the technical assistant of {{owner_name}}'s portfolio. "
    "Answer questions about {{owner_name}}'s projects, skills and experience "
    "using only the context below. If something is not in the context, say so honestly."
)


class PersonalityService:
    """Tenant-scoped CRUD and mode/default resolution over personality templates."""

    def __init__(self, repository: PersonalityRepository, settings_cache: TenantSettingsCache) -> None:
        self._repository = repository
        self._settings_cache = settings_cache

    async def resolve(self, tenant_id: UUID, mode: Optional[str] = None) -> Optional[PersonalityOut]:
        """
        Order: tenant template for mode, tenant default, global template for
        mode, global default. None when nothing matches.
        """
        for scope in (tenant_id, None):
            if mode:
                found = await self._repository.find_by_mode(scope, mode)
                if found is not None:
                    return found
            found = await self._repository.find_default(scope)
            if found is not None:
                return found
        return None

    async def system_prompt(self, tenant_id: UUID, mode: Optional[str] = None) -> str:
        """Hydrated system prompt for this tenant and mode."""
        template = await self.resolve(tenant_id, mode)
        if template is None:
            logger.warning("personality.builtin_default", tenant_id=str(tenant_id), mode=mode)
            text = DEFAULT_SYSTEM_PROMPT
        else:
            text = template.system_prompt_template
        return await self._settings_cache.hydrate(text, tenant_id) or ""

    async def list_templates(self, tenant_id: UUID) -> List[PersonalityOut]:
        """Tenant templates first, then globals."""
        own = await self._repository.list_templates(tenant_id)
        shared = await self._repository.list_templates(None)
        return own + shared

    async def get(self, tenant_id: UUID, template_id: UUID) -> PersonalityOut:
        """Template owned by the tenant or global; anything else is not found."""
        template = await self._repository.get_template(template_id)
        if template is None or (template.tenant_id is not None and template.tenant_id != tenant_id):
            raise EntityNotFound(f"personality {template_id} not found")
        return template

    async def create(self, tenant_id: UUID, payload: PersonalityCreate) -> PersonalityOut:
        fields = payload.model_dump()
        if payload.is_default:
            await self._repository.clear_default(tenant_id)
        created = await self._repository.create_template(tenant_id, fields)
        logger.info("personality.created", tenant_id=str(tenant_id), id=str(created.id), mode=created.mode)
        return created

    async def materialize(self, tenant_id: UUID, template_id: UUID) -> PersonalityOut:
        """
        Tenant-owned version of template_id. A global template is cloned into the
        tenant (fresh id, not default); an existing clone with the same slug is reused.
        """
        template = await self.get(tenant_id, template_id)
        if template.tenant_id == tenant_id:
            return template
        for own in await self._repository.list_templates(tenant_id):
            if own.slug == template.slug:
                return own
        clone = await self._repository.create_template(
            tenant_id,
            {
                "slug": template.slug,
                "name": template.name,
                "mode": template.mode,
                "system_prompt_template": template.system_prompt_template,
                "greeting": template.greeting,
                "active": template.active,
                "is_default": False,
            },
        )
        logger.info("personality.materialized", tenant_id=str(tenant_id), source=str(template_id), id=str(clone.id))
        return clone

    async def update(self, tenant_id: UUID, template_id: UUID, payload: PersonalityUpdate) -> PersonalityOut:
        target = await self.materialize(tenant_id, template_id)
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            return target
        updated = await self._repository.update_template(target.id, changes)
        if updated is None:
            raise EntityNotFound(f"personality {target.id} not found")
        return updated

    async def set_default(self, tenant_id: UUID, template_id: UUID) -> PersonalityOut:
        """Make this the tenant's only default (a global template is materialized first)."""
        target = await self.materialize(tenant_id, template_id)
        await self._repository.clear_default(tenant_id)
        updated = await self._repository.update_template(target.id, {"is_default": True, "active": True})
        if updated is None:
            raise EntityNotFound(f"personality {target.id} not found")
        logger.info("personality.default_set", tenant_id=str(tenant_id), id=str(updated.id))
        return updated

    async def delete(self, tenant_id: UUID, template_id: UUID) -> None:
        template = await self.get(tenant_id, template_id)
        if template.tenant_id is None:
            raise EntityConflict("global personalities are read-only")
        if template.is_default:
            raise EntityConflict("the default personality cannot be deleted")
        await self._repository.delete_template(template_id)
        logger.info("personality.deleted", tenant_id=str(tenant_id), id=str(template_id))
