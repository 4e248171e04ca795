"""Chat orchestration: admission, own-key bypass, usage accounting, footer, summaries."""
import uuid

import pytest

from portfolio_ai.exceptions import InputTooLarge, QuotaExceeded
from portfolio_ai.infrastructure.quota_backends import MemoryQuotaBackend
from portfolio_ai.services.chat_service import SUMMARY_FALLBACK, ChatService
from portfolio_ai.services.generation_service import ErrorFragment, GenerationErrorKind, GenerationGateway
from portfolio_ai.services.knowledge_service import KnowledgeService
from portfolio_ai.services.personality_service import PersonalityService
from portfolio_ai.services.prompt_service import PROJECT_LIST_INSTRUCTION, PromptAssembler
from portfolio_ai.services.quota_service import QuotaLimiter
from portfolio_ai.services.relevance_service import RelevanceMatcher
from portfolio_ai.services.settings_cache import TenantSettingsCache
from tests.fakes import (
    FakeKnowledgeRepository,
    FakePersonalityRepository,
    FakeSettingsRepository,
    FakeTextGenerator,
    ManualClock,
)

TENANT = uuid.uuid4()
IDENTITY = f"{TENANT}:203.0.113.7"
OWN_KEY = "sk-" + "x" * 40


class Harness:
    def __init__(self, limit: int = 3, generator: FakeTextGenerator = None, server_key: str = "server-key") -> None:
        self.knowledge_repo = FakeKnowledgeRepository()
        self.personalities = FakePersonalityRepository()
        self.generator = generator or FakeTextGenerator()
        self.clock = ManualClock()
        cache = TenantSettingsCache(FakeSettingsRepository({TENANT: {"owner_name": "Ada"}}))
        gateway = GenerationGateway(self.generator, default_api_key=server_key)
        knowledge = KnowledgeService(self.knowledge_repo, cache, gateway)
        assembler = PromptAssembler(
            PersonalityService(self.personalities, cache),
            RelevanceMatcher(self.knowledge_repo, cache),
        )
        self.limiter = QuotaLimiter(MemoryQuotaBackend(limit, 86400, clock=self.clock))
        self.chat = ChatService(assembler, knowledge, gateway, self.limiter, prompt_max_chars=100, summary_max_chars=200)

    async def remaining(self) -> int:
        return (await self.limiter.check_limit(IDENTITY)).remaining

    async def run(self, prompt: str = "hello", api_key: str = None) -> list:
        stream = await self.chat.start_chat(TENANT, prompt, IDENTITY, api_key=api_key)
        return [fragment async for fragment in stream.fragments]


@pytest.mark.asyncio
async def test_free_tier_counts_one_use_and_adds_footer() -> None:
    h = Harness(limit=3)
    fragments = await h.run()
    assert fragments[:2] == ["Hello", " world"]
    assert fragments[-1].endswith("Free attempts left: 2/3_")
    assert await h.remaining() == 2
    assert h.generator.keys == ["server-key"]


@pytest.mark.asyncio
async def test_no_footer_on_last_free_attempt() -> None:
    h = Harness(limit=1)
    assert await h.run() == ["Hello", " world"]
    assert await h.remaining() == 0


@pytest.mark.asyncio
async def test_quota_exceeded_is_raised_before_generation() -> None:
    h = Harness(limit=2)
    await h.run()
    await h.run()
    with pytest.raises(QuotaExceeded) as info:
        await h.chat.start_chat(TENANT, "hello", IDENTITY)
    assert info.value.limit == 2
    assert info.value.remaining == 0
    assert info.value.reset_in == 86400
    assert len(h.generator.prompts) == 2


@pytest.mark.asyncio
async def test_own_key_bypasses_the_free_tier() -> None:
    h = Harness(limit=1)
    await h.run()
    stream = await h.chat.start_chat(TENANT, "hello", IDENTITY, api_key=OWN_KEY)
    assert not stream.free_tier
    assert [f async for f in stream.fragments] == ["Hello", " world"]
    assert h.generator.keys[-1] == OWN_KEY
    assert await h.remaining() == 0


@pytest.mark.asyncio
async def test_short_key_is_ignored_and_server_key_used() -> None:
    h = Harness(limit=3)
    await h.run(api_key="too-short")
    assert h.generator.keys == ["server-key"]
    assert await h.remaining() == 2


@pytest.mark.asyncio
async def test_abandoned_stream_still_counts_once() -> None:
    h = Harness(limit=3, generator=FakeTextGenerator(fragments=["a", "b", "c"]))
    stream = await h.chat.start_chat(TENANT, "hello", IDENTITY)
    assert await stream.fragments.__anext__() == "a"
    await stream.fragments.aclose()
    assert await h.remaining() == 2
    assert h.generator.closed_streams == 1


@pytest.mark.asyncio
async def test_generation_error_still_counts_and_ends_with_error_fragment() -> None:
    h = Harness(limit=3, generator=FakeTextGenerator(fragments=["partial"], error=RuntimeError("boom")))
    fragments = await h.run()
    assert fragments[0] == "partial"
    errors = [f for f in fragments if isinstance(f, ErrorFragment)]
    assert [e.kind for e in errors] == [GenerationErrorKind.PROVIDER_ERROR]
    assert await h.remaining() == 2


@pytest.mark.asyncio
async def test_missing_server_key_yields_error_fragment() -> None:
    h = Harness(server_key=None)
    fragments = await h.run()
    assert fragments[0].kind == GenerationErrorKind.MISSING_CREDENTIAL


@pytest.mark.asyncio
async def test_oversized_prompt_is_rejected_without_consuming_quota() -> None:
    h = Harness(limit=3)
    with pytest.raises(InputTooLarge):
        await h.chat.start_chat(TENANT, "x" * 101, IDENTITY)
    assert await h.remaining() == 3


@pytest.mark.asyncio
async def test_store_failure_surfaces_before_streaming() -> None:
    h = Harness(limit=3)
    h.knowledge_repo.fail_reads = True
    with pytest.raises(RuntimeError):
        await h.chat.start_chat(TENANT, "hello", IDENTITY)
    assert await h.remaining() == 3
    assert h.generator.prompts == []


@pytest.mark.asyncio
async def test_project_list_question_uses_project_summaries() -> None:
    h = Harness()
    h.knowledge_repo.add(TENANT, "project", "iot", title="IoT", summary="Sensors by {{owner_name}}", priority=2)
    h.knowledge_repo.add(TENANT, "project", "shop", title="Shop")
    await h.run("which projects have you done?")
    prompt = h.generator.prompts[0]
    assert PROJECT_LIST_INSTRUCTION in prompt
    assert "IoT\nSensors by Ada" in prompt
    assert "Shop\nSummary unavailable" in prompt


@pytest.mark.asyncio
async def test_summarize() -> None:
    h = Harness(generator=FakeTextGenerator(completion="Tight summary."))
    assert await h.chat.summarize("some project text") == "Tight summary."


@pytest.mark.asyncio
async def test_summarize_falls_back_on_failure() -> None:
    h = Harness(generator=FakeTextGenerator(complete_error=RuntimeError("down")))
    assert await h.chat.summarize("some project text") == SUMMARY_FALLBACK

    h = Harness(server_key=None)
    assert await h.chat.summarize("some project text") == SUMMARY_FALLBACK


@pytest.mark.asyncio
async def test_summarize_rejects_oversized_content() -> None:
    h = Harness()
    with pytest.raises(InputTooLarge):
        await h.chat.summarize("x" * 201)
