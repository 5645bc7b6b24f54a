from __future__ import annotations

from datetime import datetime, timezone

from research_engine.llm_client import (
    GenerationClient,
    client as llm_client,
    get_fallback_model,
    get_model,
)
from research_engine.models.research import PlannedQuery
from research_engine.models.schemas import bounded_query_plan
from research_engine.services.prompt_store import render_prompt
from research_engine.services.resilience import invoke


def research_system_prompt() -> str:
    return render_prompt(
        "research.system_prompt",
        today_iso=datetime.now(timezone.utc).isoformat(),
    )


async def generate_serp_queries(
    prompt: str,
    *,
    learnings: list[str] | None = None,
    num_queries: int = 5,
    client: GenerationClient | None = None,
) -> list[PlannedQuery]:
    """Expand a research prompt into at most `num_queries` search queries."""
    learnings_block = ""
    if learnings:
        learnings_block = render_prompt(
            "planner.learnings_block", learnings="\n".join(learnings)
        )
    user_prompt = render_prompt(
        "planner.user_prompt",
        num_queries=num_queries,
        prompt=prompt,
        learnings_block=learnings_block,
    )

    active_client = client or llm_client()
    plan = await invoke(
        active_client.generate_structured,
        get_model(),
        get_fallback_model(),
        research_system_prompt(),
        user_prompt,
        bounded_query_plan(max(num_queries, 0)),
    )
    return [
        PlannedQuery(query=item.query, research_goal=item.research_goal)
        for item in plan.queries[: max(num_queries, 0)]
    ]
