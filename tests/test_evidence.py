from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from research_engine.models.index import IndexHit
from research_engine.tools.evidence import IndexEvidenceSource, WebEvidenceSource
from research_engine.tools.page_reader import PageReader
from research_engine.tools.search_provider import SearchResponse
from research_engine.tools.tavily_search import SearchResult


class FakeReader:
    enabled = True

    def __init__(self, pages: dict[str, object]):
        self.pages = pages
        self.urls: list[str] = []

    async def read(self, url: str, http_client: httpx.AsyncClient) -> str:
        self.urls.append(url)
        page = self.pages.get(url, "")
        if isinstance(page, Exception):
            raise page
        return page


def _response(*urls: str) -> SearchResponse:
    return SearchResponse(
        results=[
            SearchResult(title=f"title {url}", url=url, content=f"snippet {url}", score=0.5)
            for url in urls
        ],
        provider="brave",
    )


@pytest.mark.asyncio
async def test_web_source_reads_each_result_page():
    reader = FakeReader({"https://a.example": "page a", "https://b.example": "page b"})
    provider = AsyncMock(return_value=_response("https://a.example", "https://b.example"))

    with patch("research_engine.tools.evidence.search_provider.search", new=provider):
        async with WebEvidenceSource(reader=reader) as source:
            documents = await source.search("grid storage", 5)

    assert [(d.source, d.content) for d in documents] == [
        ("https://a.example", "page a"),
        ("https://b.example", "page b"),
    ]
    assert provider.await_args.kwargs["max_results"] == 5


@pytest.mark.asyncio
async def test_web_source_keeps_snippet_when_page_read_fails():
    reader = FakeReader({"https://a.example": httpx.ConnectError("refused"), "https://b.example": ""})
    provider = AsyncMock(return_value=_response("https://a.example", "https://b.example"))

    with patch("research_engine.tools.evidence.search_provider.search", new=provider):
        async with WebEvidenceSource(reader=reader) as source:
            documents = await source.search("q", 5)

    assert [d.content for d in documents] == ["snippet https://a.example", "snippet https://b.example"]


@pytest.mark.asyncio
async def test_web_source_skips_results_without_url_and_applies_limit():
    reader = FakeReader({})
    provider = AsyncMock(return_value=_response("", "https://a.example", "https://b.example"))

    with patch("research_engine.tools.evidence.search_provider.search", new=provider):
        async with WebEvidenceSource(reader=reader) as source:
            documents = await source.search("q", 1)

    assert [d.source for d in documents] == ["https://a.example"]
    assert reader.urls == ["https://a.example"]


@pytest.mark.asyncio
async def test_web_source_uses_snippets_when_reading_disabled():
    provider = AsyncMock(return_value=_response("https://a.example"))

    with patch("research_engine.tools.evidence.search_provider.search", new=provider):
        async with WebEvidenceSource(reader=PageReader(provider="none")) as source:
            documents = await source.search("q", 3)

    assert documents[0].content == "snippet https://a.example"
    assert documents[0].title == "title https://a.example"


@pytest.mark.asyncio
async def test_web_source_returns_empty_list_for_zero_results():
    provider = AsyncMock(return_value=SearchResponse(results=[], provider="brave"))

    with patch("research_engine.tools.evidence.search_provider.search", new=provider):
        async with WebEvidenceSource(reader=FakeReader({})) as source:
            assert await source.search("q", 3) == []


@pytest.mark.asyncio
async def test_web_source_propagates_search_failure():
    provider = AsyncMock(side_effect=RuntimeError("TAVILY_API_KEY is not configured"))

    with patch("research_engine.tools.evidence.search_provider.search", new=provider):
        async with WebEvidenceSource(reader=FakeReader({})) as source:
            with pytest.raises(RuntimeError, match="TAVILY_API_KEY"):
                await source.search("q", 3)


@pytest.mark.asyncio
async def test_web_source_leaves_borrowed_client_open():
    client = httpx.AsyncClient()
    try:
        async with WebEvidenceSource(reader=FakeReader({}), http_client=client):
            pass
        assert not client.is_closed
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_index_source_maps_hits_to_documents():
    index = MagicMock()
    index.query = AsyncMock(
        return_value=[
            IndexHit(id="c1", text="chunk one", score=0.9, metadata={"filename": "handbook.md"}),
            IndexHit(id="c2", text="chunk two", score=0.4, metadata={}),
        ]
    )

    async with IndexEvidenceSource("handbook", index=index) as source:
        documents = await source.search("pricing", 2)

    index.query.assert_awaited_once_with("handbook", "pricing", top_k=2)
    assert [(d.source, d.content) for d in documents] == [
        ("handbook.md", "chunk one"),
        ("c2", "chunk two"),
    ]
