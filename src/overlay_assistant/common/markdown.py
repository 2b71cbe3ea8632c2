"""Lightweight markdown-to-plain-text normalisation for model output.

The overlay shows plain text, so fences, list markers, headings and emphasis
markers are reduced to their content. Every pass is best effort: `normalize`
hands back the input untouched if anything goes wrong.
"""
from __future__ import annotations
import logging
import re

from overlay_assistant.common.errors import EmptyInputError

LOGGER = logging.getLogger("overlay.markdown")

BULLET = "• "

_CODE_FENCE = re.compile(r"```[^\n`]*\n(.*?)```", re.DOTALL)
_LIST_MARKER = re.compile(r"^[ \t]*(?:\d+\.|[*+-])[ \t]+(?=\S)", re.MULTILINE)
_HEADING = re.compile(r"^[ \t]*#{1,6}[ \t]+(?=\S)", re.MULTILINE)
_BOLD = re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*")
_ITALIC = re.compile(r"\*(?=[^\s*])(.+?)(?<=[^\s*])\*")


def _unescape(text: str) -> str:
    return text.replace("\\n", "\n").replace('\\"', '"')


def _unwrap_code_blocks(text: str) -> str:
    return _CODE_FENCE.sub(lambda m: m.group(1), text)


def _normalize_lists(text: str) -> str:
    return _LIST_MARKER.sub(BULLET, text)


def _strip_headings(text: str) -> str:
    return _HEADING.sub("", text)


def _strip_emphasis(text: str) -> str:
    text = _BOLD.sub(r"\1", text)
    return _ITALIC.sub(r"\1", text)


def _single_pass(text: str) -> str:
    text = _unwrap_code_blocks(text)
    text = _normalize_lists(text)
    text = _strip_headings(text)
    return _strip_emphasis(text)


def to_plain_text(text: str) -> str:
    """
    Convert model markdown into display text.

    Args:
        text: Raw backend text, possibly with literal `\\n` / `\\"` escapes.

    Raises:
        EmptyInputError: If nothing is left after unescaping.
    """
    result = _unescape(text)
    if not result:
        raise EmptyInputError("no text to normalise")
    # Stripping emphasis can expose a new leading marker ("**1. x**") and each
    # pass removes only one "# " per line. No pass lengthens the text and
    # "• " is never rewritten, so this reaches a fixed point.
    while True:
        updated = _single_pass(result)
        if updated == result:
            return result
        result = updated


def normalize(text: str) -> str:
    """Best-effort `to_plain_text`; returns the input unchanged on any failure."""
    try:
        return to_plain_text(text)
    except EmptyInputError:
        return text
    except Exception:
        LOGGER.exception("Markdown normalisation failed; keeping raw text")
        return text
