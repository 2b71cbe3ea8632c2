"""Prompt templating helpers."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from overlay_assistant.common.schema import ContextKind

LOGGER = logging.getLogger("overlay.templates")

INPUT_SLOT = "{{input}}"
CONTEXT_SLOT = "{{context}}"
# placeholder used by prompt_config.json files written for the desktop app
LEGACY_SLOT = "%@"
BUNDLED_TEMPLATE = Path(__file__).resolve().parent.parent / "resources" / "prompt_config.json"


def _upgrade_slot(value: Any, slot: str) -> Any:
    """Rewrite a single `%@` placeholder to `slot` when `slot` itself is absent."""
    if isinstance(value, str) and slot not in value and value.count(LEGACY_SLOT) == 1:
        return value.replace(LEGACY_SLOT, slot)
    return value


class PromptTemplate(BaseModel):
    """Prompt formats, one per context kind, plus the history prefix.

    JSON keys follow the desktop app's `prompt_config.json`
    (`stt`, `ocrSingle`, `ocrBatch`, `contextPrefix`).
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    speech: str = Field(alias="stt")
    ocr_single: str = Field(alias="ocrSingle")
    ocr_batch: str = Field(alias="ocrBatch")
    context_prefix: str = Field(alias="contextPrefix")

    @field_validator("speech", "ocr_single", "ocr_batch", mode="before")
    @classmethod
    def _upgrade_input_slot(cls, value: Any) -> Any:
        return _upgrade_slot(value, INPUT_SLOT)

    @field_validator("context_prefix", mode="before")
    @classmethod
    def _upgrade_context_slot(cls, value: Any) -> Any:
        return _upgrade_slot(value, CONTEXT_SLOT)

    @field_validator("speech", "ocr_single", "ocr_batch")
    @classmethod
    def _has_input_slot(cls, value: str) -> str:
        if value.count(INPUT_SLOT) != 1:
            raise ValueError(f"format must contain {INPUT_SLOT} exactly once")
        return value

    @field_validator("context_prefix")
    @classmethod
    def _has_context_slot(cls, value: str) -> str:
        if value.count(CONTEXT_SLOT) != 1:
            raise ValueError(f"context prefix must contain {CONTEXT_SLOT} exactly once")
        return value

    def format_for(self, kind: ContextKind) -> str:
        if kind is ContextKind.OCR_SINGLE:
            return self.ocr_single
        if kind is ContextKind.OCR_BATCH:
            return self.ocr_batch
        return self.speech


DEFAULT_TEMPLATE = PromptTemplate(
    speech=(
        "Analyze the following speech transcript and give a short summary "
        "of the key points and any useful insights:\n{{input}}"
    ),
    ocr_single="Analyze the following text captured from the screen and extract the important information:\n{{input}}",
    ocr_batch=(
        "Analyze the following batch of text captured from the screen, "
        "combine the information and give an overall assessment:\n{{input}}"
    ),
    context_prefix="\n\nPrevious context:\n{{context}}",
)


def load_template(path: str | Path | None = None) -> PromptTemplate:
    """
    Load the prompt template JSON, falling back to the built-in default.

    Args:
        path: Path to template JSON. Defaults to the bundled resource.
    """
    source = Path(path) if path is not None else BUNDLED_TEMPLATE
    try:
        raw = source.read_text(encoding="utf-8")
    except OSError as e:
        LOGGER.warning("Prompt template %s unavailable (%s); using defaults", source, e)
        return DEFAULT_TEMPLATE
    except UnicodeDecodeError as e:
        LOGGER.warning("Prompt template %s is not valid UTF-8 (%s); using defaults", source, e.reason)
        return DEFAULT_TEMPLATE
    try:
        return PromptTemplate.model_validate_json(raw)
    except ValidationError as e:
        LOGGER.warning(
            "Malformed prompt template %s: %d error(s); each format needs one %s (or %s) slot, "
            "the prefix one %s; using defaults",
            source, e.error_count(), INPUT_SLOT, LEGACY_SLOT, CONTEXT_SLOT,
        )
        return DEFAULT_TEMPLATE


def render_prompt(
    template: PromptTemplate,
    user_input: str,
    kind: ContextKind = ContextKind.SPEECH,
    prior_turns: Sequence[str] | None = None,
) -> str:
    """
    Render user input into the template.

    Args:
        template: Loaded prompt template.
        user_input: Input string.
        kind: Which producer the text came from.
        prior_turns: Earlier results; the context prefix is added only when non-empty.

    Returns:
        Rendered prompt.
    """
    prompt = template.format_for(kind).replace(INPUT_SLOT, user_input)
    if prior_turns:
        prompt += template.context_prefix.replace(CONTEXT_SLOT, "\n".join(prior_turns))
    return prompt
