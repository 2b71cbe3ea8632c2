"""Routes producer events to the request engine and results to the overlay.

All mutable state (history, batch buffer) is touched only from the event
loop: producers enqueue `InputEvent`s, one consumer task routes them, and each
generation runs as its own task. Results may therefore reach the sink in a
different order than the events that triggered them.
"""
from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterable, Optional, Set

from overlay_assistant.common.config import Settings
from overlay_assistant.common.errors import (
    APIStatusError,
    AssistantError,
    CredentialStoreError,
    InvalidCredentialError,
    InvalidResponseError,
    NetworkError,
    RateLimitExceededError,
)
from overlay_assistant.common.schema import (
    ContextKind,
    ConversationHistory,
    GenerationRequest,
    InputEvent,
    InputSource,
    StatusLevel,
)
from overlay_assistant.engine.credentials import CredentialStore
from overlay_assistant.engine.gemini import GeminiClient
from overlay_assistant.routing.batch import BatchBuffer
from overlay_assistant.routing.sinks import PresentationSink

LOGGER = logging.getLogger("overlay.routing.coordinator")


def user_message(error: Exception) -> str:
    """Map an engine error to the text shown in the overlay."""
    if isinstance(error, InvalidCredentialError):
        return "Please configure a valid API key."
    if isinstance(error, RateLimitExceededError):
        return "Rate limited by the AI backend, please retry later."
    if isinstance(error, InvalidResponseError):
        return "Invalid response from the AI backend."
    if isinstance(error, APIStatusError):
        return f"AI backend error (HTTP {error.status_code})."
    if isinstance(error, NetworkError):
        return f"Network error: {error.cause}"
    if isinstance(error, CredentialStoreError):
        return f"Credential store error: {error.status}"
    return "Unexpected error while contacting the AI backend."


class Coordinator:
    """
    Event router between producers, the Gemini engine and a presentation sink.

    Use as an async context manager, or call `start()` / `stop()` from inside
    the running event loop.

    Args:
        engine: Request engine the generations go through.
        sink: Receives results and status lines.
        history_size: How many recent results are sent back as context.
    """

    def __init__(
        self,
        engine: GeminiClient,
        sink: PresentationSink,
        *,
        history_size: int = 5,
    ) -> None:
        self.engine = engine
        self.sink = sink
        self.history = ConversationHistory(history_size)
        self.batch = BatchBuffer(on_status=self._show_status)
        self._queue: Optional[asyncio.Queue[InputEvent]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._runner: Optional[asyncio.Task[None]] = None
        self._producers: Set[asyncio.Task[None]] = set()
        self._inflight: Set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sink: PresentationSink,
        credentials: CredentialStore,
    ) -> "Coordinator":
        engine = GeminiClient.from_settings(settings, credentials)
        return cls(engine, sink, history_size=settings.history_size)

    async def __aenter__(self) -> "Coordinator":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.stop(cancel_pending=exc_type is not None)

    async def start(self) -> None:
        if self._runner is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._runner = asyncio.create_task(self._consume(self._queue), name="coordinator-router")
        LOGGER.info("Coordinator started")

    async def stop(self, *, cancel_pending: bool = False) -> None:
        """
        Stop routing.

        Args:
            cancel_pending: Cancel in-flight generations instead of waiting for them.
        """
        for task in list(self._producers):
            task.cancel()
        await asyncio.gather(*self._producers, return_exceptions=True)
        if cancel_pending:
            for task in list(self._inflight):
                task.cancel()
        else:
            await self.join()
        await asyncio.gather(*self._inflight, return_exceptions=True)
        if self._runner is not None:
            self._runner.cancel()
            await asyncio.gather(self._runner, return_exceptions=True)
            self._runner = None
        self._queue = None
        self._loop = None
        LOGGER.info("Coordinator stopped")

    async def join(self) -> None:
        """Wait until every queued event is routed and every generation has finished."""
        # let puts scheduled from other threads land first
        await asyncio.sleep(0)
        if self._queue is not None:
            await self._queue.join()
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # Producer side. Safe to call from any thread once started.

    def post(self, event: InputEvent) -> None:
        if self._loop is None or self._queue is None:
            raise RuntimeError("Coordinator is not started")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def submit_speech(self, text: str) -> None:
        self.post(InputEvent(InputSource.SPEECH, text))

    def submit_ocr(self, text: str) -> None:
        self.post(InputEvent(InputSource.OCR, text))

    def toggle_batch(self) -> None:
        self.post(InputEvent(InputSource.BATCH_TOGGLE))

    def finalize_batch(self) -> None:
        self.post(InputEvent(InputSource.BATCH_FINALIZE))

    def attach(self, stream: AsyncIterable[str], source: InputSource) -> asyncio.Task[None]:
        """Feed every item of an async text stream into the router as `source` events."""
        task = asyncio.create_task(self._pump(stream, source), name=f"producer-{source.value}")
        self._producers.add(task)
        task.add_done_callback(self._producers.discard)
        return task

    async def _pump(self, stream: AsyncIterable[str], source: InputSource) -> None:
        try:
            async for text in stream:
                self.post(InputEvent(source, text))
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Producer stream %s failed; detaching it", source.value)

    # Router side, event loop only.

    async def _consume(self, queue: asyncio.Queue[InputEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                self._route(event)
            except Exception:
                LOGGER.exception("Failed to route %s event", event.source.value)
            finally:
                queue.task_done()

    def _route(self, event: InputEvent) -> None:
        if event.source is InputSource.SPEECH:
            self._dispatch(event.text, ContextKind.SPEECH)
        elif event.source is InputSource.OCR:
            if self.batch.active:
                self.batch.add_fragment(event.text)
            else:
                self._dispatch(event.text, ContextKind.OCR_SINGLE)
        elif event.source is InputSource.BATCH_TOGGLE:
            self.batch.toggle()
        elif event.source is InputSource.BATCH_FINALIZE:
            combined = self.batch.finalize()
            # an empty batch was already reported as "Batch empty"
            if combined:
                self._dispatch(combined, ContextKind.OCR_BATCH)

    def _dispatch(self, text: str, kind: ContextKind) -> None:
        request = GenerationRequest(text, kind, self.history.snapshot())
        task = asyncio.create_task(self._generate(request))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _generate(self, request: GenerationRequest) -> None:
        try:
            result = await self.engine.run(request)
        except AssistantError as e:
            LOGGER.warning("Generation for %s input failed: %s", request.context_kind.value, type(e).__name__)
            self._show_status(user_message(e), StatusLevel.ERROR)
            return
        except Exception as e:
            LOGGER.exception("Unexpected generation failure")
            self._show_status(user_message(e), StatusLevel.ERROR)
            return
        self.history.append(result)
        try:
            self.sink.show_result(result)
        except Exception:
            LOGGER.exception("Presentation sink rejected a result")

    def _show_status(self, text: str, level: StatusLevel = StatusLevel.INFO) -> None:
        try:
            self.sink.show_status(text, level)
        except Exception:
            LOGGER.exception("Presentation sink rejected a status update")
