"""Pre-research helpers: clarifying questions and report titles."""
from __future__ import annotations

from datetime import datetime, timezone

from research_engine.llm_client import (
    GenerationClient,
    client as llm_client,
    get_fallback_model,
    get_model,
)
from research_engine.models.schemas import ClarifyingQuestions
from research_engine.services.prompt_store import render_prompt
from research_engine.services.resilience import invoke

MAX_CLARIFYING_QUESTIONS = 5
MAX_TITLE_CHARS = 120


async def generate_clarifying_questions(
    query: str,
    *,
    client: GenerationClient | None = None,
) -> list[str]:
    active_client = client or llm_client()
    result = await invoke(
        active_client.generate_structured,
        get_model(),
        get_fallback_model(),
        render_prompt(
            "clarifier.system_prompt",
            today_iso=datetime.now(timezone.utc).isoformat(),
        ),
        query,
        ClarifyingQuestions,
    )
    questions = [q.strip() for q in result.questions if q and q.strip()]
    return questions[:MAX_CLARIFYING_QUESTIONS]


async def summarize_title(
    query: str,
    *,
    client: GenerationClient | None = None,
) -> str:
    active_client = client or llm_client()
    text = await invoke(
        active_client.generate_text,
        get_model(),
        get_fallback_model(),
        render_prompt("clarifier.title_prompt"),
        query,
    )
    title = " ".join(text.split()).strip().strip('"').strip()
    return (title or query)[:MAX_TITLE_CHARS]
