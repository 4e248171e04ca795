"""
HTTP layer over an in-memory service graph:
- POST /chat streams text/plain and answers 403 (plain text) once the free tier is used up;
- error taxonomy maps to 404/409/413;
- /api/readyz reports DB and quota backend state.
"""
import uuid
from typing import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from portfolio_ai.config import Settings
from portfolio_ai.container import build_container
from portfolio_ai.db import get_db
from portfolio_ai.infrastructure.quota_backends import MemoryQuotaBackend
from portfolio_ai.main import app as main_app
from portfolio_ai.services.quota_service import QuotaLimiter
from tests.fakes import (
    FakeKnowledgeRepository,
    FakePersonalityRepository,
    FakeSettingsRepository,
    FakeTextGenerator,
)

TENANT = uuid.uuid4()
LIMIT = 2


class _Session:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    async def execute(self, statement):  # noqa: ANN001, ANN201
        if self.fail:
            raise ConnectionRefusedError("db down")
        return None


@pytest.fixture
def app() -> Iterator[FastAPI]:
    knowledge = FakeKnowledgeRepository()
    knowledge.add(TENANT, "meta", "about", body="About {{owner_name}}")
    personalities = FakePersonalityRepository()
    personalities.add(None, "assistant", "You speak for {{owner_name}}.", is_default=True, slug="assistant")
    main_app.state.container = build_container(
        Settings(OPENAI_API_KEY="server-key"),
        knowledge_repository=knowledge,
        settings_repository=FakeSettingsRepository({TENANT: {"owner_name": "Ada"}}),
        personality_repository=personalities,
        limiter=QuotaLimiter(MemoryQuotaBackend(LIMIT, 86400)),
        generator=FakeTextGenerator(fragments=["Hi", " there"]),
    )
    yield main_app
    main_app.dependency_overrides.clear()
    main_app.state.container = None


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_chat_streams_and_then_refuses_with_plain_text(app: FastAPI) -> None:
    body = {"tenant_id": str(TENANT), "prompt": "hello"}
    headers = {"X-Forwarded-For": "198.51.100.1"}
    async with _client(app) as client:
        first = await client.post("/chat", json=body, headers=headers)
        assert first.status_code == 200, first.text
        assert first.headers["content-type"].startswith("text/plain")
        assert first.headers["x-free-tier-remaining"] == str(LIMIT)
        assert first.text.startswith("Hi there")
        assert "Free attempts left: 1/2" in first.text

        second = await client.post("/chat", json=body, headers=headers)
        assert second.status_code == 200
        assert "Free attempts left" not in second.text

        third = await client.post("/chat", json=body, headers=headers)
        assert third.status_code == 403
        assert third.headers["content-type"].startswith("text/plain")
        assert "apikey set YOUR_API_KEY" in third.text

        # Quota is per client: another address still has attempts
        other = await client.post("/chat", json=body, headers={"X-Forwarded-For": "198.51.100.2"})
        assert other.status_code == 200


@pytest.mark.asyncio
async def test_chat_with_own_key_skips_quota(app: FastAPI) -> None:
    body = {"tenant_id": str(TENANT), "prompt": "hello"}
    headers = {"X-Forwarded-For": "198.51.100.3", "X-Api-Key": "sk-" + "k" * 40}
    async with _client(app) as client:
        for _ in range(LIMIT + 1):
            resp = await client.post("/chat", json=body, headers=headers)
            assert resp.status_code == 200
            assert "x-free-tier-remaining" not in resp.headers
            assert resp.text == "Hi there"


@pytest.mark.asyncio
async def test_quota_status_does_not_consume(app: FastAPI) -> None:
    headers = {"X-Forwarded-For": "198.51.100.4"}
    async with _client(app) as client:
        for _ in range(3):
            resp = await client.get("/chat/quota", params={"tenant_id": str(TENANT)}, headers=headers)
            assert resp.status_code == 200
            assert resp.json() == {"allowed": True, "remaining": LIMIT, "reset_in": None}


@pytest.mark.asyncio
async def test_oversized_prompt_is_413(app: FastAPI) -> None:
    async with _client(app) as client:
        resp = await client.post("/chat", json={"tenant_id": str(TENANT), "prompt": "x" * 5000})
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_summary_endpoint(app: FastAPI) -> None:
    async with _client(app) as client:
        resp = await client.post("/chat/summary", json={"content": "A project about sensors."})
    assert resp.status_code == 200
    assert resp.json() == {"summary": "generated text"}


@pytest.mark.asyncio
async def test_knowledge_crud_and_error_mapping(app: FastAPI) -> None:
    params = {"tenant_id": str(TENANT)}
    payload = {
        "kind": "project",
        "slug": "iot",
        "title": "IoT for {{owner_name}}",
        "body": "Gateway",
        "keywords": ["MQTT"],
    }
    async with _client(app) as client:
        created = await client.post("/knowledge", json=payload, params=params)
        assert created.status_code == 201, created.text
        entry_id = created.json()["id"]
        assert created.json()["keywords"] == ["mqtt"]

        dup = await client.post("/knowledge", json=payload, params=params)
        assert dup.status_code == 409

        hydrated = await client.get(f"/knowledge/{entry_id}", params=params)
        assert hydrated.json()["title"] == "IoT for Ada"
        raw = await client.get(f"/knowledge/{entry_id}", params={**params, "raw": "true"})
        assert raw.json()["title"] == "IoT for {{owner_name}}"

        patched = await client.patch(f"/knowledge/{entry_id}", json={"keywords": ["lora"]}, params=params)
        assert patched.json()["keywords"] == ["lora"]

        deleted = await client.delete(f"/knowledge/{entry_id}", params=params)
        assert deleted.status_code == 204
        missing = await client.get(f"/knowledge/{entry_id}", params=params)
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_settings_update_refreshes_chat_context(app: FastAPI) -> None:
    generator = app.state.container.generator
    params = {"tenant_id": str(TENANT)}
    async with _client(app) as client:
        resp = await client.patch("/settings/key/owner_name", json={"value": "Grace"}, params=params)
        assert resp.status_code == 200
        banner = await client.get("/settings/banner", params=params)
        assert "GRACE" in banner.json()["ascii_banner"]

        await client.post("/chat", json={"tenant_id": str(TENANT), "prompt": "who?"})
    assert generator.prompts[-1].startswith("You speak for Grace.")
    assert "About Grace" in generator.prompts[-1]


@pytest.mark.asyncio
async def test_deleting_global_personality_is_409(app: FastAPI) -> None:
    params = {"tenant_id": str(TENANT)}
    async with _client(app) as client:
        listed = await client.get("/personalities", params=params)
        global_id = listed.json()[0]["id"]
        resp = await client.delete(f"/personalities/{global_id}", params=params)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_readyz_reports_quota_backend(app: FastAPI) -> None:
    async def _db():
        yield _Session()

    app.dependency_overrides[get_db] = _db
    async with _client(app) as client:
        resp = await client.get("/api/readyz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "db": "ok", "quota_backend": "degraded"}


@pytest.mark.asyncio
async def test_readyz_503_when_db_is_down(app: FastAPI) -> None:
    async def _db():
        yield _Session(fail=True)

    app.dependency_overrides[get_db] = _db
    async with _client(app) as client:
        resp = await client.get("/api/readyz")
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_health(app: FastAPI) -> None:
    async with _client(app) as client:
        assert (await client.get("/api/healthz")).json() == {"status": "ok"}
        assert (await client.get("/health")).json()["status"] == "ok"


def _throttle(count: int) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, 0, count, True])
    client = MagicMock()
    client.pipeline.return_value = pipe
    return client


@pytest.mark.asyncio
async def test_chat_burst_over_the_minute_limit_is_429(app: FastAPI) -> None:
    app.state.container.throttle_client = _throttle(11)
    app.state.container.throttle_limit = 10
    async with _client(app) as client:
        resp = await client.post("/chat", json={"tenant_id": str(TENANT), "prompt": "hello"})
    assert resp.status_code == 429
    assert resp.json() == {"detail": "Too many requests, slow down."}


@pytest.mark.asyncio
async def test_chat_within_the_minute_limit_reaches_the_router(app: FastAPI) -> None:
    throttle = _throttle(3)
    app.state.container.throttle_client = throttle
    app.state.container.throttle_limit = 10
    async with _client(app) as client:
        resp = await client.post(
            "/chat", json={"tenant_id": str(TENANT), "prompt": "hello"}, headers={"X-Forwarded-For": "198.51.100.9"}
        )
        quota = await client.get("/chat/quota", params={"tenant_id": str(TENANT)})
    assert resp.status_code == 200
    assert quota.status_code == 200
    # Only POST /chat is counted
    throttle.pipeline.return_value.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_chat_without_throttle_client_passes_through(app: FastAPI) -> None:
    app.state.container.throttle_client = None
    async with _client(app) as client:
        for _ in range(3):
            resp = await client.post(
                "/chat", json={"tenant_id": str(TENANT), "prompt": "hello"}, headers={"X-Api-Key": "sk-" + "k" * 40}
            )
            assert resp.status_code == 200
