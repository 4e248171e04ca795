"""Chat burst throttle: sliding window arithmetic and pass-through rules."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from portfolio_ai.config import Settings
from portfolio_ai.container import build_container
from portfolio_ai.infrastructure.quota_backends import MemoryQuotaBackend
from portfolio_ai.middleware.rate_limit import (
    REDIS_KEY_PREFIX,
    WINDOW_SECONDS,
    build_throttle_client,
    sliding_window_allows,
)
from portfolio_ai.services.quota_service import QuotaLimiter
from tests.fakes import FakeKnowledgeRepository, FakePersonalityRepository, FakeSettingsRepository, FakeTextGenerator


def _client(count: int) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, 0, count, True])
    client = MagicMock()
    client.pipeline.return_value = pipe
    return client


@pytest.mark.asyncio
async def test_allows_up_to_the_limit() -> None:
    assert await sliding_window_allows(_client(10), "1.2.3.4", limit=10, now=1000.0) is True
    assert await sliding_window_allows(_client(11), "1.2.3.4", limit=10, now=1000.0) is False


@pytest.mark.asyncio
async def test_trims_hits_older_than_the_window() -> None:
    client = _client(1)
    await sliding_window_allows(client, "1.2.3.4", limit=10, now=1000.0)
    pipe = client.pipeline.return_value
    pipe.zremrangebyscore.assert_called_once_with(REDIS_KEY_PREFIX + "1.2.3.4", "-inf", 1000.0 - WINDOW_SECONDS)
    pipe.expire.assert_called_once_with(REDIS_KEY_PREFIX + "1.2.3.4", WINDOW_SECONDS + 10)


@pytest.mark.asyncio
async def test_container_shutdown_closes_the_throttle_client() -> None:
    throttle = MagicMock()
    throttle.aclose = AsyncMock()
    container = build_container(
        Settings(OPENAI_API_KEY="server-key", CHAT_RATE_LIMIT_PER_MIN=4),
        knowledge_repository=FakeKnowledgeRepository(),
        settings_repository=FakeSettingsRepository({}),
        personality_repository=FakePersonalityRepository(),
        limiter=QuotaLimiter(MemoryQuotaBackend(2, 86400)),
        generator=FakeTextGenerator(),
        throttle_client=throttle,
    )
    assert container.throttle_limit == 4
    await container.shutdown()
    throttle.aclose.assert_awaited_once()


def test_no_throttle_client_without_redis_url() -> None:
    assert build_throttle_client(Settings(OPENAI_API_KEY="server-key", REDIS_URL=None)) is None
