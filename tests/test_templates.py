from __future__ import annotations

import json
from pathlib import Path

import pytest

from overlay_assistant.common.schema import ContextKind
from overlay_assistant.common.templates import DEFAULT_TEMPLATE, PromptTemplate, load_template, render_prompt

TEMPLATE = PromptTemplate(
    speech="S:{{input}}",
    ocr_single="O:{{input}}",
    ocr_batch="B:{{input}}",
    context_prefix="\nCTX:{{context}}",
)


def test_render_prompt_substitution() -> None:
    assert render_prompt(TEMPLATE, "world", ContextKind.SPEECH) == "S:world"
    assert render_prompt(TEMPLATE, "world", ContextKind.OCR_SINGLE) == "O:world"
    assert render_prompt(TEMPLATE, "world", ContextKind.OCR_BATCH) == "B:world"


def test_speech_without_history_has_no_prefix() -> None:
    out = render_prompt(DEFAULT_TEMPLATE, "text", ContextKind.SPEECH, [])
    assert "Previous context:" not in out
    assert render_prompt(DEFAULT_TEMPLATE, "text", ContextKind.SPEECH, None) == out


def test_speech_with_history_appends_prefix() -> None:
    out = render_prompt(DEFAULT_TEMPLATE, "text", ContextKind.SPEECH, ["a", "b"])
    assert "Previous context:" in out
    assert out.endswith("Previous context:\na\nb")


def test_load_bundled_template() -> None:
    tpl = load_template()
    assert "speech transcript" in tpl.speech
    assert "{{context}}" in tpl.context_prefix


def test_load_template_accepts_desktop_keys(tmp_path: Path) -> None:
    path = tmp_path / "prompt_config.json"
    path.write_text(
        json.dumps({"stt": "x {{input}}", "ocrSingle": "y {{input}}", "ocrBatch": "z {{input}}", "contextPrefix": " | {{context}}"}),
        encoding="utf-8",
    )
    tpl = load_template(path)
    assert render_prompt(tpl, "t", ContextKind.OCR_BATCH, ["h"]) == "z t | h"


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"stt": "x {{input}}"}),
        json.dumps({"stt": "no slot", "ocrSingle": "{{input}}", "ocrBatch": "{{input}}", "contextPrefix": "{{context}}"}),
    ],
)
def test_malformed_template_falls_back(tmp_path: Path, content: str) -> None:
    path = tmp_path / "prompt_config.json"
    path.write_text(content, encoding="utf-8")
    assert load_template(path) == DEFAULT_TEMPLATE


def test_missing_template_falls_back(tmp_path: Path) -> None:
    assert load_template(tmp_path / "absent.json") == DEFAULT_TEMPLATE


def test_invalid_utf8_template_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "prompt_config.json"
    path.write_bytes(b'{"stt": "\xff\xfe {{input}}"}')
    assert load_template(path) == DEFAULT_TEMPLATE


def test_desktop_percent_placeholders_are_accepted(tmp_path: Path) -> None:
    path = tmp_path / "prompt_config.json"
    path.write_text(
        json.dumps({"stt": "voice:\n%@", "ocrSingle": "screen:\n%@", "ocrBatch": "batch:\n%@", "contextPrefix": "\n\nearlier:\n%@"}),
        encoding="utf-8",
    )
    tpl = load_template(path)
    assert tpl.speech == "voice:\n{{input}}"
    assert render_prompt(tpl, "t", ContextKind.SPEECH, ["a", "b"]) == "voice:\nt\n\nearlier:\na\nb"


def test_percent_placeholder_is_literal_next_to_input_slot() -> None:
    tpl = PromptTemplate(speech="100%@ {{input}}", ocr_single="{{input}}", ocr_batch="{{input}}", context_prefix="{{context}}")
    assert render_prompt(tpl, "x") == "100%@ x"
