from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from overlay_assistant.engine.credentials import MemoryCredentialStore
from overlay_assistant.engine.gemini import GeminiClient

BACKEND_URL = "https://gemini.test/v1beta/models/gemini-pro:generateContent"


def candidate(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


class FakeGemini:
    """FastAPI stand-in for generateContent; replays scripted (status, body) pairs."""

    def __init__(self) -> None:
        self.script: list[tuple[int, Any]] = []
        self.default: tuple[int, Any] = (200, candidate("ok"))
        self.calls: list[dict[str, Any]] = []
        self.app = FastAPI()

        @self.app.post("/v1beta/models/gemini-pro:generateContent")
        async def generate(request: Request) -> Response:
            self.calls.append({"params": dict(request.query_params), "json": await request.json()})
            status, body = self.script.pop(0) if self.script else self.default
            if isinstance(body, (bytes, str)):
                return Response(content=body, status_code=status, media_type="application/json")
            return JSONResponse(body, status_code=status)

    def reply(self, status: int, body: Any = None) -> None:
        self.script.append((status, body if body is not None else {}))

    def prompts(self) -> list[str]:
        return [c["json"]["contents"][0]["parts"][0]["text"] for c in self.calls]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def backend() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def credentials() -> MemoryCredentialStore:
    return MemoryCredentialStore("test-api-key")


@pytest.fixture
async def http_client(backend: FakeGemini):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=backend.app)) as client:
        yield client


@pytest.fixture
def engine(credentials: MemoryCredentialStore, http_client: httpx.AsyncClient, sleeps: SleepRecorder) -> GeminiClient:
    return GeminiClient(credentials, endpoint=BACKEND_URL, client=http_client, sleep=sleeps)
