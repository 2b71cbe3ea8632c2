"""Dataclasses and enums for requests, input events and history."""
from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator


class ContextKind(str, Enum):
    """Source of the text, selects the prompt format."""
    SPEECH = "speech"
    OCR_SINGLE = "ocr_single"
    OCR_BATCH = "ocr_batch"


class InputSource(str, Enum):
    """Kinds of events accepted by the coordinator."""
    SPEECH = "speech"
    OCR = "ocr"
    BATCH_TOGGLE = "batch_toggle"
    BATCH_FINALIZE = "batch_finalize"


class StatusLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class GenerationRequest:
    """One text to send to the backend, with the history it was sent with."""
    raw_text: str
    context_kind: ContextKind = ContextKind.SPEECH
    prior_turns: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # None and [] both mean "no history"
        object.__setattr__(self, "prior_turns", tuple(self.prior_turns or ()))


@dataclass(frozen=True)
class InputEvent:
    source: InputSource
    text: str = ""


@dataclass
class ConversationHistory:
    """Rolling window of prior results; oldest entries fall off first."""
    capacity: int = 5
    _items: deque[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be positive")
        self._items = deque(maxlen=self.capacity)

    def append(self, text: str) -> None:
        self._items.append(text)

    def snapshot(self) -> tuple[str, ...]:
        return tuple(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._items))
