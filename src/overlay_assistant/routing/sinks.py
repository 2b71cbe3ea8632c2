"""Presentation sinks the coordinator forwards results and status updates to."""
from __future__ import annotations
import sys
from typing import Protocol, TextIO

from overlay_assistant.common.schema import StatusLevel


class PresentationSink(Protocol):
    def show_result(self, text: str) -> None: ...

    def show_status(self, text: str, level: StatusLevel = StatusLevel.INFO) -> None: ...


class ConsoleSink:
    """Writes results to stdout and status lines to stderr."""

    def __init__(self, out: TextIO | None = None, err: TextIO | None = None) -> None:
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def show_result(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    def show_status(self, text: str, level: StatusLevel = StatusLevel.INFO) -> None:
        print(f"[{level.value}] {text}", file=self.err, flush=True)
