from __future__ import annotations

from research_engine.agents.planner import research_system_prompt
from research_engine.llm_client import (
    GenerationClient,
    client as llm_client,
    get_deep_model,
    get_fallback_model,
)
from research_engine.services.prompt_store import render_prompt
from research_engine.services.resilience import invoke

SOURCES_HEADER = "\n\n\n\n## Sources\n\n"


def dedupe_sources(sources: list[str]) -> list[str]:
    """Drop repeated source ids, keeping the first occurrence of each."""
    return list(dict.fromkeys(sources))


def format_sources_section(sources: list[str]) -> str:
    return SOURCES_HEADER + "\n".join(f"- {source}" for source in dedupe_sources(sources))


async def write_final_report(
    prompt: str,
    learnings: list[str],
    visited_sources: list[str],
    *,
    client: GenerationClient | None = None,
) -> str:
    """Write the long-form report and append the deduplicated source list."""
    user_prompt = render_prompt(
        "reporter.user_prompt",
        prompt=prompt,
        learnings="\n".join(f"<learning>\n{item}\n</learning>" for item in learnings),
    )

    active_client = client or llm_client()
    text = await invoke(
        active_client.generate_text,
        get_deep_model(),
        get_fallback_model(),
        research_system_prompt(),
        user_prompt,
    )
    return text + format_sources_section(visited_sources)
