from __future__ import annotations

import httpx

from research_engine.config import settings
from research_engine.tools.content_extractor import extract_main_content

USER_AGENT = "Mozilla/5.0 (compatible; deep-research-engine/0.1; +https://github.com/)"


class PageReader:
    """Fetches a URL and returns its readable text.

    Providers:
      - direct: GET the page and extract the main content locally
      - jina_reader: ask a Jina Reader endpoint for a markdown rendering
      - none: never fetch; callers keep the search snippet
    """

    def __init__(self, provider: str | None = None, max_chars: int | None = None):
        self.provider = (provider or settings.scrape_provider).lower().strip()
        if self.provider not in ("direct", "jina_reader", "none"):
            raise ValueError(f"Unsupported SCRAPE_PROVIDER: {self.provider}")
        self.max_chars = max_chars if max_chars is not None else int(settings.extractor_max_page_chars)

    @property
    def enabled(self) -> bool:
        return self.provider != "none"

    async def read(self, url: str, http_client: httpx.AsyncClient) -> str:
        if self.provider == "jina_reader":
            return await self._read_with_jina(url, http_client)
        if self.provider == "direct":
            return await self._read_direct(url, http_client)
        return ""

    async def _read_direct(self, url: str, http_client: httpx.AsyncClient) -> str:
        response = await http_client.get(
            url,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        response.raise_for_status()
        extracted = extract_main_content(url, response.text, max_chars=self.max_chars)
        return extracted.text

    async def _read_with_jina(self, url: str, http_client: httpx.AsyncClient) -> str:
        headers = {"X-Return-Format": "markdown"}
        if settings.jina_api_key:
            headers["Authorization"] = f"Bearer {settings.jina_api_key}"
        base_url = settings.jina_reader_base_url.rstrip("/")
        response = await http_client.get(f"{base_url}/{url}", headers=headers)
        response.raise_for_status()
        extracted = extract_main_content(url, response.text, max_chars=self.max_chars)
        return extracted.text
