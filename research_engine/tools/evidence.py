"""Evidence sources: where the research driver gets documents for a query."""
from __future__ import annotations

import asyncio
from typing import Protocol

import httpx

from research_engine.config import settings
from research_engine.models.research import EvidenceDocument
from research_engine.services.logger import logger
from research_engine.services.retrieval_index import RetrievalIndex, get_retrieval_index
from research_engine.tools import search_provider
from research_engine.tools.page_reader import PageReader
from research_engine.tools.tavily_search import SearchResult


class EvidenceSource(Protocol):
    name: str

    async def search(self, query: str, limit: int) -> list[EvidenceDocument]: ...
    async def aclose(self) -> None: ...
    async def __aenter__(self) -> "EvidenceSource": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...


class WebEvidenceSource:
    """Web search followed by page reading.

    One HTTP session is shared by every query of a job. A page that cannot be
    read falls back to the snippet returned by the search provider; a failing
    search call raises.
    """

    name = "web"

    def __init__(
        self,
        *,
        reader: PageReader | None = None,
        http_client: httpx.AsyncClient | None = None,
        max_parallel_reads: int | None = None,
    ):
        self.reader = reader or PageReader()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.scrape_timeout_seconds)
        self._read_semaphore = asyncio.Semaphore(
            max(int(max_parallel_reads or settings.scrape_max_parallel_requests), 1)
        )

    async def __aenter__(self) -> "WebEvidenceSource":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def search(self, query: str, limit: int) -> list[EvidenceDocument]:
        response = await search_provider.search(
            query,
            max_results=limit,
            http_client=self._client,
        )
        results = [r for r in response.results if r.url][:limit]
        if not results:
            return []
        if not self.reader.enabled:
            return [_snippet_document(r) for r in results]
        return list(await asyncio.gather(*(self._read(r) for r in results)))

    async def _read(self, result: SearchResult) -> EvidenceDocument:
        async with self._read_semaphore:
            try:
                text = await self.reader.read(result.url, self._client)
            except Exception as e:
                logger.warning("Page read failed for %s, keeping snippet: %s", result.url, e)
                return _snippet_document(result)
        if not text:
            return _snippet_document(result)
        return EvidenceDocument(source=result.url, content=text, title=result.title)


def _snippet_document(result: SearchResult) -> EvidenceDocument:
    return EvidenceDocument(
        source=result.url,
        content=result.raw_content or result.content,
        title=result.title,
    )


class IndexEvidenceSource:
    """Nearest-neighbour lookup in one retrieval index."""

    name = "index"

    def __init__(self, index_id: str, *, index: RetrievalIndex | None = None):
        self.index_id = index_id
        self.index = index or get_retrieval_index()

    async def __aenter__(self) -> "IndexEvidenceSource":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        return None

    async def search(self, query: str, limit: int) -> list[EvidenceDocument]:
        hits = await self.index.query(self.index_id, query, top_k=limit)
        return [
            EvidenceDocument(
                source=str(hit.metadata.get("filename") or hit.id),
                content=hit.text,
                title=str(hit.metadata.get("filename") or ""),
            )
            for hit in hits
        ]
