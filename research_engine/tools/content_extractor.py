from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from research_engine.config import settings

STRIP_TAGS = ("script", "style", "nav", "header", "footer", "noscript", "aside")


@dataclass
class ExtractedContent:
    url: str
    title: str
    text: str
    method: str
    raw_length: int
    extracted_length: int


def _normalize_text(text: str) -> str:
    text = text.replace("\xa0", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def _extract_with_trafilatura(raw_html: str, url: str) -> str:
    import trafilatura

    extracted = trafilatura.extract(
        raw_html,
        url=url,
        output_format="markdown",
        include_links=False,
    )
    if not isinstance(extracted, str):
        return ""
    return _normalize_text(extracted)


def _extract_with_soup(raw_html: str) -> tuple[str, str]:
    soup = BeautifulSoup(raw_html, "html.parser")
    title = soup.title.string if soup.title and soup.title.string else ""
    for tag in soup(STRIP_TAGS):
        tag.decompose()
    return _normalize_text(title), _normalize_text(soup.get_text("\n"))


def extract_main_content(
    url: str,
    raw_content: str,
    *,
    max_chars: int | None = None,
) -> ExtractedContent:
    """Extract the readable body of a fetched page as Markdown-ish text."""
    target_chars = (
        max_chars
        if max_chars is not None
        else int(settings.extractor_max_page_chars)
    )

    lowered = raw_content.lower()
    if "<html" not in lowered and "<body" not in lowered:
        # Already text or markdown.
        text = _truncate(_normalize_text(raw_content), target_chars)
        return ExtractedContent(
            url=url,
            title="",
            text=text,
            method="raw",
            raw_length=len(raw_content),
            extracted_length=len(text),
        )

    title, soup_text = _extract_with_soup(raw_content)
    primary_text = _extract_with_trafilatura(raw_content, url)
    if primary_text:
        clipped = _truncate(primary_text, target_chars)
        method = "trafilatura"
    else:
        clipped = _truncate(soup_text, target_chars)
        method = "soup"
    return ExtractedContent(
        url=url,
        title=title,
        text=clipped,
        method=method,
        raw_length=len(raw_content),
        extracted_length=len(clipped),
    )
