"""Prompt assembly: personality resolution, context layout, verbatim question."""
import uuid

import pytest

from portfolio_ai.services.personality_service import DEFAULT_SYSTEM_PROMPT, PersonalityService
from portfolio_ai.services.prompt_service import (
    CONTEXT_SEPARATOR,
    FORMAT_RULES,
    PROJECT_LIST_INSTRUCTION,
    PromptAssembler,
    build_keywords_prompt,
    compose_prompt,
    is_project_list_request,
)
from portfolio_ai.services.relevance_service import RelevanceMatcher
from portfolio_ai.services.settings_cache import TenantSettingsCache
from tests.fakes import FakeKnowledgeRepository, FakePersonalityRepository, FakeSettingsRepository

TENANT = uuid.uuid4()


def _assembler():
    knowledge = FakeKnowledgeRepository()
    personalities = FakePersonalityRepository()
    cache = TenantSettingsCache(FakeSettingsRepository({TENANT: {"owner_name": "Ada"}}))
    assembler = PromptAssembler(PersonalityService(personalities, cache), RelevanceMatcher(knowledge, cache))
    return assembler, knowledge, personalities


@pytest.mark.asyncio
async def test_global_default_is_used_when_tenant_has_none() -> None:
    assembler, _, personalities = _assembler()
    personalities.add(None, "assistant", "GLOBAL {{owner_name}}", is_default=True)
    prompt = await assembler.assemble(TENANT, "hi")
    assert prompt.startswith("GLOBAL Ada")


@pytest.mark.asyncio
async def test_tenant_default_wins_over_global_mode_match() -> None:
    assembler, _, personalities = _assembler()
    personalities.add(None, "recruiter", "GLOBAL RECRUITER")
    personalities.add(TENANT, "assistant", "TENANT DEFAULT", is_default=True)
    prompt = await assembler.assemble(TENANT, "hi", mode="recruiter")
    assert prompt.startswith("TENANT DEFAULT")


@pytest.mark.asyncio
async def test_tenant_mode_match_wins_over_tenant_default() -> None:
    assembler, _, personalities = _assembler()
    personalities.add(TENANT, "assistant", "TENANT DEFAULT", is_default=True)
    personalities.add(TENANT, "recruiter", "TENANT RECRUITER")
    assert (await assembler.assemble(TENANT, "hi", mode="recruiter")).startswith("TENANT RECRUITER")


@pytest.mark.asyncio
async def test_builtin_prompt_when_nothing_is_configured() -> None:
    assembler, _, _ = _assembler()
    prompt = await assembler.assemble(TENANT, "hi")
    assert prompt.startswith(DEFAULT_SYSTEM_PROMPT.replace("{{owner_name}}", "Ada"))


@pytest.mark.asyncio
async def test_context_blocks_are_joined_with_separator_in_order() -> None:
    assembler, knowledge, personalities = _assembler()
    personalities.add(None, "assistant", "P", is_default=True)
    knowledge.add(TENANT, "project", "low", body="LOW BODY", keywords=["python"], priority=1)
    knowledge.add(TENANT, "project", "high", body="HIGH BODY", keywords=["python"], priority=9)
    prompt = await assembler.assemble(TENANT, "python?")
    assert "HIGH BODY" + CONTEXT_SEPARATOR + "LOW BODY" in prompt


@pytest.mark.asyncio
async def test_question_is_appended_verbatim() -> None:
    assembler, _, _ = _assembler()
    question = "What about {{owner_name}} and  spacing?\n"
    prompt = await assembler.assemble(TENANT, question)
    assert "## Visitor question\n" + question in prompt
    assert prompt.endswith("## Your answer")


def test_compose_prompt_layout() -> None:
    prompt = compose_prompt("PERSONA", ["one", "", "two"], "Q?", list_projects=True)
    assert prompt.index("PERSONA") < prompt.index(FORMAT_RULES) < prompt.index(PROJECT_LIST_INSTRUCTION)
    assert "## Context\none" + CONTEXT_SEPARATOR + "two" in prompt


def test_compose_prompt_without_context() -> None:
    prompt = compose_prompt("PERSONA", [], "Q?")
    assert "No context available." in prompt
    assert PROJECT_LIST_INSTRUCTION not in prompt


@pytest.mark.parametrize(
    "question, expected",
    [
        ("What projects have you built?", True),
        ("Show me a LIST OF your work", True),
        ("¿Cuáles son tus proyectos?", True),
        ("Tell me about Kafka", False),
        ("Soy analista de datos", False),
        ("Tell me about the playlist service", False),
        ("Describe your subprojects tooling", False),
        ("Listar todo, por favor", True),
        ("", False),
    ],
)
def test_project_list_detection(question: str, expected: bool) -> None:
    assert is_project_list_request(question) is expected


def test_keywords_prompt_truncates_content() -> None:
    prompt = build_keywords_prompt("Title", "x" * 5000, count=10, max_content_chars=100)
    assert "x" * 100 in prompt
    assert "x" * 101 not in prompt
    assert "Generate 10" in prompt
