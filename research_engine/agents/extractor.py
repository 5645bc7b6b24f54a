from __future__ import annotations

from research_engine.agents.planner import research_system_prompt
from research_engine.config import settings
from research_engine.llm_client import (
    GenerationClient,
    client as llm_client,
    get_fallback_model,
    get_model,
)
from research_engine.models.research import EvidenceDocument, LearningBatch
from research_engine.models.schemas import bounded_extraction
from research_engine.services.prompt_store import render_prompt
from research_engine.services.resilience import invoke


def format_contents(documents: list[EvidenceDocument]) -> str:
    """Wrap every non-empty document body in its own <content> block."""
    bodies = [doc.content for doc in documents if doc.content and doc.content.strip()]
    return "\n".join(f"<content>\n{body}\n</content>" for body in bodies)


async def process_serp_result(
    query: str,
    documents: list[EvidenceDocument],
    *,
    num_learnings: int = 5,
    num_follow_up_questions: int = 5,
    client: GenerationClient | None = None,
) -> LearningBatch:
    """Turn the documents found for one query into learnings and follow-ups."""
    user_prompt = render_prompt(
        "extractor.user_prompt",
        query=query,
        num_learnings=num_learnings,
        num_follow_up_questions=num_follow_up_questions,
        contents=format_contents(documents),
    )

    active_client = client or llm_client()
    extraction = await invoke(
        active_client.generate_structured,
        get_model(),
        get_fallback_model(),
        research_system_prompt(),
        user_prompt,
        bounded_extraction(max(num_learnings, 0), max(num_follow_up_questions, 0)),
        timeout=settings.extraction_timeout_seconds,
    )
    return LearningBatch(
        learnings=extraction.learnings[: max(num_learnings, 0)],
        follow_up_questions=extraction.follow_up_questions[: max(num_follow_up_questions, 0)],
    )
