"""Personality administration: copy-on-write globals, single default, protected deletes."""
import uuid

import pytest

from portfolio_ai.exceptions import EntityConflict, EntityNotFound
from portfolio_ai.schemas.personality import PersonalityCreate, PersonalityUpdate
from portfolio_ai.services.personality_service import PersonalityService
from portfolio_ai.services.settings_cache import TenantSettingsCache
from tests.fakes import FakePersonalityRepository, FakeSettingsRepository

TENANT = uuid.uuid4()
OTHER = uuid.uuid4()


def _service():
    repo = FakePersonalityRepository()
    cache = TenantSettingsCache(FakeSettingsRepository({TENANT: {"owner_name": "Ada"}}))
    return PersonalityService(repo, cache), repo


@pytest.mark.asyncio
async def test_update_of_global_materializes_a_tenant_copy() -> None:
    service, repo = _service()
    shared = repo.add(None, "assistant", "GLOBAL", is_default=True, slug="assistant")

    updated = await service.update(TENANT, shared.id, PersonalityUpdate(system_prompt_template="MINE"))

    assert updated.id != shared.id
    assert updated.tenant_id == TENANT
    assert updated.system_prompt_template == "MINE"
    assert repo.templates[shared.id].system_prompt_template == "GLOBAL"
    assert repo.templates[shared.id].tenant_id is None
    # Another tenant still sees the untouched global
    assert await service.system_prompt(OTHER) == "GLOBAL"


@pytest.mark.asyncio
async def test_materialize_reuses_existing_clone() -> None:
    service, repo = _service()
    shared = repo.add(None, "assistant", "GLOBAL", slug="assistant")
    first = await service.materialize(TENANT, shared.id)
    second = await service.materialize(TENANT, shared.id)
    assert first.id == second.id
    assert first.is_default is False
    assert len(await repo.list_templates(TENANT)) == 1


@pytest.mark.asyncio
async def test_set_default_keeps_a_single_default() -> None:
    service, repo = _service()
    a = repo.add(TENANT, "assistant", "A", is_default=True)
    b = repo.add(TENANT, "recruiter", "B")

    await service.set_default(TENANT, b.id)

    defaults = [t for t in await repo.list_templates(TENANT) if t.is_default]
    assert [t.id for t in defaults] == [b.id]
    assert repo.templates[a.id].is_default is False


@pytest.mark.asyncio
async def test_set_default_on_global_copies_it() -> None:
    service, repo = _service()
    shared = repo.add(None, "assistant", "GLOBAL", is_default=True, slug="assistant")
    chosen = await service.set_default(TENANT, shared.id)
    assert chosen.tenant_id == TENANT and chosen.is_default
    assert repo.templates[shared.id].is_default is True


@pytest.mark.asyncio
async def test_create_default_clears_previous_default() -> None:
    service, repo = _service()
    old = repo.add(TENANT, "assistant", "OLD", is_default=True)
    created = await service.create(
        TENANT,
        PersonalityCreate(slug="new", name="New", system_prompt_template="NEW", is_default=True),
    )
    assert created.is_default
    assert repo.templates[old.id].is_default is False
    assert await service.system_prompt(TENANT) == "NEW"


@pytest.mark.asyncio
async def test_delete_rules() -> None:
    service, repo = _service()
    shared = repo.add(None, "assistant", "GLOBAL")
    default = repo.add(TENANT, "assistant", "D", is_default=True)
    other = repo.add(TENANT, "recruiter", "R")

    with pytest.raises(EntityConflict):
        await service.delete(TENANT, shared.id)
    with pytest.raises(EntityConflict):
        await service.delete(TENANT, default.id)

    await service.delete(TENANT, other.id)
    assert other.id not in repo.templates


@pytest.mark.asyncio
async def test_other_tenants_templates_are_not_found() -> None:
    service, repo = _service()
    foreign = repo.add(OTHER, "assistant", "THEIRS")
    with pytest.raises(EntityNotFound):
        await service.get(TENANT, foreign.id)


@pytest.mark.asyncio
async def test_list_templates_returns_own_then_global() -> None:
    service, repo = _service()
    shared = repo.add(None, "assistant", "GLOBAL")
    own = repo.add(TENANT, "recruiter", "OWN")
    repo.add(OTHER, "assistant", "THEIRS")
    assert [t.id for t in await service.list_templates(TENANT)] == [own.id, shared.id]


@pytest.mark.asyncio
async def test_inactive_template_is_skipped_in_resolution() -> None:
    service, repo = _service()
    repo.add(TENANT, "assistant", "OFF", is_default=True, active=False)
    repo.add(None, "assistant", "GLOBAL {{owner_name}}", is_default=True)
    assert await service.system_prompt(TENANT) == "GLOBAL Ada"
