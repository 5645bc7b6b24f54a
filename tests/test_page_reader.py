from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

from research_engine.tools.page_reader import PageReader

HTML_PAGE = """
<html><head><title>Cells</title><script>var x = 1;</script></head>
<body><nav>menu</nav><p>Sodium cells are cheap.</p></body></html>
"""


def test_page_reader_rejects_unknown_provider():
    with pytest.raises(ValueError, match="SCRAPE_PROVIDER"):
        PageReader(provider="firecrawl")


def test_page_reader_none_is_disabled():
    assert not PageReader(provider="none").enabled
    assert PageReader(provider="direct").enabled


@pytest.mark.asyncio
async def test_direct_read_fetches_and_extracts(monkeypatch):
    monkeypatch.setattr(
        "research_engine.tools.content_extractor._extract_with_trafilatura",
        lambda raw_html, url: "",
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=HTML_PAGE, headers={"content-type": "text/html"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        text = await PageReader(provider="direct", max_chars=1000).read("https://cells.example/a", client)

    assert "Sodium cells are cheap." in text
    assert "var x" not in text
    assert "menu" not in text
    assert seen[0].headers["User-Agent"].startswith("Mozilla/5.0")


@pytest.mark.asyncio
async def test_direct_read_raises_on_http_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await PageReader(provider="direct").read("https://down.example", client)


@pytest.mark.asyncio
async def test_jina_read_prefixes_reader_url_and_sends_token():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="# Title\n\nMarkdown body")

    with patch("research_engine.tools.page_reader.settings") as mock_settings:
        mock_settings.jina_api_key = "jina-key"
        mock_settings.jina_reader_base_url = "https://r.jina.ai/"
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            text = await PageReader(provider="jina_reader", max_chars=1000).read(
                "https://cells.example/a", client
            )

    assert text == "# Title\n\nMarkdown body"
    assert str(seen[0].url) == "https://r.jina.ai/https://cells.example/a"
    assert seen[0].headers["Authorization"] == "Bearer jina-key"
    assert seen[0].headers["X-Return-Format"] == "markdown"
