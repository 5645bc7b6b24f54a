from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from research_engine.agents import reporter
from research_engine.agents.reporter import dedupe_sources, format_sources_section, write_final_report


def _client(text: str = "# Report\n\nBody") -> MagicMock:
    client = MagicMock()
    client.generate_text = AsyncMock(return_value=text)
    return client


def test_dedupe_sources_keeps_first_seen_order():
    assert dedupe_sources(["a", "b", "a", "c"]) == ["a", "b", "c"]


def test_format_sources_section_literal_layout():
    section = format_sources_section(["a", "b", "a", "c"])
    assert section == "\n\n\n\n## Sources\n\n- a\n- b\n- c"


@pytest.mark.asyncio
async def test_write_final_report_appends_sources_to_generated_text():
    client = _client("# Report\n\nBody")

    report = await write_final_report(
        "Initial Query: batteries",
        ["learning one", "learning two"],
        ["https://a.com", "https://b.com", "https://a.com"],
        client=client,
    )

    assert report == "# Report\n\nBody\n\n\n\n## Sources\n\n- https://a.com\n- https://b.com"


@pytest.mark.asyncio
async def test_write_final_report_delimits_each_learning():
    client = _client()

    await write_final_report("prompt", ["first", "second"], [], client=client)

    user_prompt = client.generate_text.await_args.args[2]
    assert "<prompt>prompt</prompt>" in user_prompt
    assert "<learning>\nfirst\n</learning>\n<learning>\nsecond\n</learning>" in user_prompt


@pytest.mark.asyncio
async def test_write_final_report_uses_deep_model():
    client = _client()

    with patch.object(reporter, "get_deep_model", return_value="openai/gpt-4.1"):
        await write_final_report("prompt", [], [], client=client)

    assert client.generate_text.await_args.args[0] == "openai/gpt-4.1"


@pytest.mark.asyncio
async def test_sources_section_is_identical_across_calls():
    sources = ["x", "y", "x", "z", "y"]
    first = await write_final_report("p", ["l"], sources, client=_client("A"))
    second = await write_final_report("p", ["l"], sources, client=_client("A"))

    assert first.split("## Sources")[1] == second.split("## Sources")[1]


@pytest.mark.asyncio
async def test_every_source_listed_exactly_once():
    sources = ["https://a.com", "doc.pdf", "https://a.com", "notes.md", "doc.pdf"]

    report = await write_final_report("p", [], sources, client=_client("Body"))

    listed = report.split("## Sources\n\n")[1].split("\n")
    assert listed == ["- https://a.com", "- doc.pdf", "- notes.md"]
