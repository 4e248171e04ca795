"""Tenant settings cache: TTL refresh, per-tenant isolation, placeholder hydration."""
import uuid

import pytest

from portfolio_ai.services.settings_cache import TenantSettingsCache, substitute_placeholders
from tests.fakes import FakeSettingsRepository, ManualClock

TENANT = uuid.uuid4()
OTHER = uuid.uuid4()


def _cache(values=None, ttl: float = 60.0):
    repo = FakeSettingsRepository(values or {TENANT: {"owner_name": "Ada", "owner_role": "Engineer"}})
    clock = ManualClock()
    return TenantSettingsCache(repo, ttl_seconds=ttl, clock=clock), repo, clock


def test_substitute_known_and_unknown_keys() -> None:
    text = "Hi {{owner_name}}, {{nope}} stays"
    assert substitute_placeholders(text, {"owner_name": "Ada"}) == "Hi Ada, {{nope}} stays"


def test_substitute_empty_value_still_replaces() -> None:
    assert substitute_placeholders("[{{owner_name}}]", {"owner_name": ""}) == "[]"


def test_substitute_ignores_malformed_tokens() -> None:
    text = "{{ owner_name }} {owner_name} {{owner-name}}"
    assert substitute_placeholders(text, {"owner_name": "Ada"}) == text


@pytest.mark.asyncio
async def test_hydrate_is_identity_without_placeholders() -> None:
    cache, repo, _ = _cache()
    text = "No placeholders here, only {braces}."
    assert await cache.hydrate(text, TENANT) == text
    assert repo.load_calls == 0


@pytest.mark.asyncio
async def test_hydrate_unknown_key_is_left_literal() -> None:
    cache, _, _ = _cache()
    assert await cache.hydrate("{{nope}}", TENANT) == "{{nope}}"


@pytest.mark.asyncio
async def test_hydrate_replaces_every_occurrence() -> None:
    cache, _, _ = _cache()
    out = await cache.hydrate("{{owner_name}} ({{owner_role}}) - {{owner_name}}", TENANT)
    assert out == "Ada (Engineer) - Ada"


@pytest.mark.asyncio
async def test_get_is_cached_until_ttl_expires() -> None:
    cache, repo, clock = _cache(ttl=60.0)
    await cache.get(TENANT)
    clock.advance(59)
    await cache.get(TENANT)
    assert repo.load_calls == 1

    clock.advance(1)
    await cache.get(TENANT)
    assert repo.load_calls == 2


@pytest.mark.asyncio
async def test_stale_value_served_within_ttl_then_refreshed() -> None:
    cache, repo, clock = _cache()
    assert (await cache.get(TENANT))["owner_name"] == "Ada"
    await repo.update_value(TENANT, "owner_name", "Grace")
    assert (await cache.get(TENANT))["owner_name"] == "Ada"
    clock.advance(61)
    assert (await cache.get(TENANT))["owner_name"] == "Grace"


@pytest.mark.asyncio
async def test_invalidate_forces_reload() -> None:
    cache, repo, _ = _cache()
    await cache.get(TENANT)
    await repo.update_value(TENANT, "owner_name", "Grace")
    cache.invalidate(TENANT)
    assert (await cache.get(TENANT))["owner_name"] == "Grace"
    assert repo.load_calls == 2


@pytest.mark.asyncio
async def test_tenants_are_isolated() -> None:
    cache, _, _ = _cache({TENANT: {"owner_name": "Ada"}, OTHER: {"owner_name": "Linus"}})
    assert await cache.hydrate("{{owner_name}}", TENANT) == "Ada"
    assert await cache.hydrate("{{owner_name}}", OTHER) == "Linus"


@pytest.mark.asyncio
async def test_store_failure_propagates() -> None:
    cache, repo, _ = _cache()
    repo.fail = True
    with pytest.raises(RuntimeError):
        await cache.hydrate("{{owner_name}}", TENANT)
