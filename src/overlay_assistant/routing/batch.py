"""Batch mode buffer for OCR captures."""
from __future__ import annotations
import logging
from typing import Callable, List, Optional

from overlay_assistant.common.errors import BatchInactiveError

LOGGER = logging.getLogger("overlay.routing.batch")

StatusCallback = Callable[[str], None]


class BatchBuffer:
    """
    Accumulates OCR fragments while batch mode is on.

    `toggle` switches between idle and accumulating without touching the
    fragments; only `finalize` clears them.
    """

    def __init__(self, on_status: Optional[StatusCallback] = None) -> None:
        self.active = False
        self.fragments: List[str] = []
        self.on_status = on_status

    def toggle(self) -> bool:
        self.active = not self.active
        self._emit("Batch mode ON" if self.active else "Batch mode OFF")
        return self.active

    def add_fragment(self, text: str) -> None:
        if not self.active:
            raise BatchInactiveError("batch mode is off")
        self.fragments.append(text)
        LOGGER.debug("Batch fragment %d added (%d chars)", len(self.fragments), len(text))
        self._emit("OCR text added to batch")

    def finalize(self) -> str:
        """Return the fragments joined by newlines and clear the buffer.

        An empty buffer yields "" and reports "Batch empty".
        """
        combined = "\n".join(self.fragments)
        count = len(self.fragments)
        self.fragments.clear()
        if count:
            LOGGER.info("Batch finalized with %d fragment(s)", count)
            self._emit("Batch sent")
        else:
            self._emit("Batch empty")
        return combined

    def _emit(self, message: str) -> None:
        if self.on_status is not None:
            self.on_status(message)
