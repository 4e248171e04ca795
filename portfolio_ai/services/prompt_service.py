"""
Prompt assembly: personality block + formatting rules + knowledge context + question.

No truncation happens here; callers bound the question size.
"""
import re
from typing import Optional, Sequence
from uuid import UUID

from portfolio_ai.logging_config import get_logger
from portfolio_ai.services.personality_service import PersonalityService
from portfolio_ai.services.relevance_service import RelevanceMatcher

logger = get_logger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

FORMAT_RULES = (
    "## Response format\n"
    "- Do not use headings.\n"
    "- Use bullet lists (\"- \") for any enumeration; no numbered or nested lists.\n"
    "- Use bold or italics sparingly, for a few key words at most.\n"
    "- Use `inline code` for technical terms and fenced blocks only for code.\n"
    "- Keep answers concise but complete; if something is not in the context, say so."
)

PROJECT_LIST_INSTRUCTION = (
    "## Special instruction\n"
    "The visitor is asking for a list of projects. Show every project below "
    "with its name and a short description."
)

# Fixed phrases that mark a project-listing question (English and Spanish).
PROJECT_LIST_KEYWORDS = (
    "projects",
    "project list",
    "list of",
    "which projects",
    "what projects",
    "show projects",
    "all projects",
    "proyectos",
    "lista",
    "listar",
    "cuáles",
    "cuales",
)
_PROJECT_LIST_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(k) for k in PROJECT_LIST_KEYWORDS) + r")\b")

SUMMARY_PROMPT = (
    "Write a technical summary of 2-3 sentences about this project. "
    "Mention the problem it solves, the main technologies and the outcome. "
    "Be concise and professional.\n\n"
    "CONTENT:\n{content}\n\n"
    "SUMMARY:"
)

KEYWORDS_PROMPT = (
    "Generate {count} retrieval keywords for this content.\n"
    "Rules:\n"
    "- 1-3 words per keyword\n"
    "- lowercase, without accents\n"
    "- include technologies and technical concepts\n"
    "- no person names\n\n"
    "Title: {title}\n"
    "Content: {content}\n\n"
    "Reply ONLY with a JSON array of strings, no markdown and no explanation."
)


def is_project_list_request(prompt: str) -> bool:
    # whole words only: "lista" must not fire inside "analista"
    return _PROJECT_LIST_PATTERN.search((prompt or "").lower()) is not None


def build_summary_prompt(content: str) -> str:
    return SUMMARY_PROMPT.format(content=content)


def build_keywords_prompt(title: str, content: str, count: int = 15, max_content_chars: int = 3000) -> str:
    return KEYWORDS_PROMPT.format(count=count, title=title, content=content[:max_content_chars])


def compose_prompt(
    personality: str,
    context_blocks: Sequence[str],
    question: str,
    list_projects: bool = False,
) -> str:
    """Final prompt text. The question is appended verbatim."""
    parts = [personality.strip(), FORMAT_RULES]
    if list_projects:
        parts.append(PROJECT_LIST_INSTRUCTION)
    context = CONTEXT_SEPARATOR.join(b for b in context_blocks if b)
    parts.append("## Context\n" + (context or "No context available."))
    parts.append("## Visitor question\n" + question)
    parts.append("## Your answer")
    return "\n\n".join(parts)


class PromptAssembler:
    """assemble(tenant, question, mode) -> prompt string."""

    def __init__(self, personalities: PersonalityService, matcher: RelevanceMatcher) -> None:
        self._personalities = personalities
        self._matcher = matcher

    async def assemble(
        self,
        tenant_id: UUID,
        question: str,
        mode: Optional[str] = None,
        context_blocks: Optional[Sequence[str]] = None,
        list_projects: bool = False,
    ) -> str:
        """
        Build the prompt for one question.
        Without explicit context_blocks the relevant knowledge entries are looked up
        (already hydrated) and their bodies used as context.
        """
        personality = await self._personalities.system_prompt(tenant_id, mode)
        if context_blocks is None:
            entries = await self._matcher.find_relevant(tenant_id, question)
            context_blocks = [e.body for e in entries]
        logger.debug(
            "prompt.assembled",
            tenant_id=str(tenant_id),
            mode=mode,
            context_blocks=len(context_blocks),
            list_projects=list_projects,
        )
        return compose_prompt(personality, context_blocks, question, list_projects=list_projects)
