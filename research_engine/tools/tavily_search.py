from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from research_engine.config import settings


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float
    raw_content: str = ""


async def search(
    query: str,
    *,
    max_results: int = 5,
    search_depth: str = "advanced",
    include_raw_content: bool = False,
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "include_raw_content": include_raw_content,
    }
    response = await client.search(**kwargs)

    return [
        SearchResult(
            title=r.get("title", "") or "",
            url=r.get("url", "") or "",
            content=r.get("content", "") or "",
            score=r.get("score", 0.0) or 0.0,
            raw_content=r.get("raw_content", "") or "",
        )
        for r in response.get("results", [])
    ]
