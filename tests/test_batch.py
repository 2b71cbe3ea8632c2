from __future__ import annotations

import pytest

from overlay_assistant.common.errors import BatchInactiveError
from overlay_assistant.routing.batch import BatchBuffer


def test_finalize_joins_fragments_and_clears() -> None:
    statuses: list[str] = []
    batch = BatchBuffer(on_status=statuses.append)
    batch.toggle()
    batch.add_fragment("X")
    batch.add_fragment("Y")
    assert batch.finalize() == "X\nY"
    assert batch.fragments == []
    assert batch.finalize() == ""
    assert statuses == [
        "Batch mode ON",
        "OCR text added to batch",
        "OCR text added to batch",
        "Batch sent",
        "Batch empty",
    ]


def test_toggle_off_keeps_fragments() -> None:
    batch = BatchBuffer()
    assert batch.toggle() is True
    batch.add_fragment("kept")
    assert batch.toggle() is False
    assert batch.fragments == ["kept"]
    assert batch.finalize() == "kept"


def test_add_fragment_requires_batch_mode() -> None:
    batch = BatchBuffer()
    with pytest.raises(BatchInactiveError):
        batch.add_fragment("nope")
    assert batch.fragments == []


def test_finalize_while_idle_is_allowed() -> None:
    batch = BatchBuffer()
    assert batch.finalize() == ""
    assert batch.active is False
