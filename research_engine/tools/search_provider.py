from __future__ import annotations

from dataclasses import dataclass

import httpx

from research_engine.config import settings
from research_engine.services.logger import logger
from research_engine.tools import brave_search, tavily_search
from research_engine.tools.tavily_search import SearchResult


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


async def search(
    query: str,
    *,
    max_results: int = 5,
    http_client: httpx.AsyncClient | None = None,
) -> SearchResponse:
    provider = settings.search_provider.lower().strip()
    use_fallback = settings.search_fallback_to_tavily

    if provider == "tavily":
        results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(results=results, provider="tavily")

    if provider == "brave":
        try:
            results = await brave_search.search(
                query=query,
                max_results=max_results,
                http_client=http_client,
            )
        except Exception as e:
            if not use_fallback:
                raise
            logger.warning("Brave search failed for %r, falling back to Tavily: %s", query, e)
            fallback_results = await tavily_search.search(query=query, max_results=max_results)
            return SearchResponse(
                results=fallback_results,
                provider="tavily",
                fallback_from="brave",
                fallback_reason=str(e),
            )

        if results or not use_fallback:
            return SearchResponse(results=results, provider="brave")

        fallback_results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(
            results=fallback_results,
            provider="tavily",
            fallback_from="brave",
            fallback_reason="brave returned zero results",
        )

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")
