from __future__ import annotations

import json

import pytest

from research_engine.services import prompt_store
from research_engine.services.prompt_store import render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt("research.system_prompt", today_iso="2026-02-21")
    assert "2026-02-21" in prompt


def test_render_prompt_joins_line_lists():
    prompt = render_prompt(
        "planner.user_prompt",
        num_queries=3,
        prompt="heat pumps",
        learnings_block="",
    )
    assert "up to 3 unique SERP queries" in prompt
    assert "<prompt>heat pumps</prompt>" in prompt
    assert "\n" in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_names_missing_value():
    with pytest.raises(KeyError, match="today_iso"):
        render_prompt("research.system_prompt")


def test_catalog_reloads_after_clear(tmp_path, monkeypatch):
    catalog = tmp_path / "prompts.json"
    catalog.write_text(json.dumps({"greeting": {"text": "hello $name"}}), encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()
    try:
        assert render_prompt("greeting.text", name="ada") == "hello ada"

        catalog.write_text(json.dumps({"greeting": {"text": ["hi", "$name"]}}), encoding="utf-8")
        prompt_store.clear_prompt_cache()

        assert render_prompt("greeting.text", name="ada") == "hi\nada"
    finally:
        prompt_store.clear_prompt_cache()


def test_non_string_entry_is_rejected(tmp_path, monkeypatch):
    catalog = tmp_path / "prompts.json"
    catalog.write_text(json.dumps({"bad": {"entry": 42}}), encoding="utf-8")
    monkeypatch.setattr(prompt_store, "PROMPTS_PATH", catalog)
    prompt_store.clear_prompt_cache()
    try:
        with pytest.raises(TypeError):
            render_prompt("bad.entry")
    finally:
        prompt_store.clear_prompt_cache()
