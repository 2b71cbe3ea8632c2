"""Gemini generateContent client with bounded retry/backoff.

Outcomes per attempt:
- transport failure or timeout -> retried
- 200 -> parsed; a body without candidates[0].content.parts[0].text is InvalidResponseError
- 429 -> RateLimitExceededError, never retried
- 5xx -> retried
- anything else -> APIStatusError

Retries sleep 2, 4, 8 seconds; once they run out the last cause is raised as
NetworkError.
"""
from __future__ import annotations
import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from overlay_assistant.common.config import GEMINI_ENDPOINT, Settings
from overlay_assistant.common.errors import (
    APIStatusError,
    CredentialNotFoundError,
    InvalidCredentialError,
    InvalidResponseError,
    NetworkError,
    RateLimitExceededError,
)
from overlay_assistant.common.logging_setup import redact_secret
from overlay_assistant.common.markdown import normalize
from overlay_assistant.common.schema import ContextKind, GenerationRequest
from overlay_assistant.common.templates import PromptTemplate, load_template, render_prompt
from overlay_assistant.engine.credentials import CredentialStore

LOGGER = logging.getLogger("overlay.engine.gemini")

GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
}

Sleep = Callable[[float], Awaitable[None]]


class _Part(BaseModel):
    text: Optional[str] = None


class _Content(BaseModel):
    parts: list[_Part]


class _Candidate(BaseModel):
    content: _Content


class GenerateContentResponse(BaseModel):
    """Subset of the generateContent response the overlay needs."""
    candidates: list[_Candidate]

    def first_text(self) -> str:
        try:
            text = self.candidates[0].content.parts[0].text
        except IndexError as e:
            raise InvalidResponseError("response has no candidate text") from e
        if text is None:
            raise InvalidResponseError("response has no candidate text")
        return text


class _RetryableFailure(Exception):
    """One attempt failed in a way worth retrying."""


def build_payload(prompt: str) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": dict(GENERATION_CONFIG),
    }


def parse_response(body: bytes) -> str:
    """
    Extract candidates[0].content.parts[0].text from a response body.

    Raises:
        InvalidResponseError: If the body is not JSON or lacks the text.
    """
    try:
        envelope = GenerateContentResponse.model_validate_json(body)
    except ValidationError as e:
        raise InvalidResponseError(f"unexpected response shape ({e.error_count()} error(s))") from e
    return envelope.first_text()


class GeminiClient:
    """
    Request engine for the overlay.

    Every call reads the key once, renders the prompt and runs its own retry
    loop, so concurrent calls never share state.

    Args:
        credentials: Store the API key is read from.
        template: Prompt template; loaded from the bundled resource if omitted.
        endpoint: generateContent URL.
        request_timeout: httpx timeout for each network phase, in seconds.
        resource_timeout: Upper bound for a whole attempt, in seconds.
        max_retries: Retries after the first attempt.
        client: Shared AsyncClient. A client is created per call when omitted.
        sleep: Awaitable used for backoff.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        template: PromptTemplate | None = None,
        *,
        endpoint: str = GEMINI_ENDPOINT,
        request_timeout: float = 30.0,
        resource_timeout: float = 300.0,
        max_retries: int = 3,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.credentials = credentials
        self.template = template or load_template()
        self.endpoint = endpoint
        self.request_timeout = request_timeout
        self.resource_timeout = resource_timeout
        self.max_retries = max_retries
        self._client = client
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        credentials: CredentialStore,
        **kwargs: Any,
    ) -> "GeminiClient":
        return cls(
            credentials,
            load_template(settings.prompt_config),
            endpoint=settings.endpoint,
            request_timeout=settings.request_timeout,
            resource_timeout=settings.resource_timeout,
            max_retries=settings.max_retries,
            **kwargs,
        )

    async def generate(
        self,
        text: str,
        kind: ContextKind = ContextKind.SPEECH,
        prior_turns: Sequence[str] | None = None,
    ) -> str:
        """
        Generate a plain-text answer for one input.

        Args:
            text: Raw producer text.
            kind: Context kind selecting the prompt format.
            prior_turns: Earlier results sent as context.
        """
        return await self.run(GenerationRequest(text, kind, tuple(prior_turns or ())))

    async def run(self, request: GenerationRequest) -> str:
        api_key = self._read_api_key()
        prompt = render_prompt(self.template, request.raw_text, request.context_kind, request.prior_turns)
        payload = build_payload(prompt)

        retries = 0
        async with self._session() as client:
            while True:
                try:
                    raw = await self._attempt(client, api_key, payload)
                    break
                except _RetryableFailure as failure:
                    cause = redact_secret(str(failure), api_key)
                    if retries >= self.max_retries:
                        LOGGER.error("Giving up after %d attempt(s): %s", retries + 1, cause)
                        raise NetworkError(cause) from None
                    retries += 1
                    delay = 2 ** retries
                    LOGGER.warning("Attempt %d failed (%s); retrying in %ss", retries, cause, delay)
                    await self._sleep(delay)

        return normalize(raw)

    def _read_api_key(self) -> str:
        try:
            api_key = self.credentials.get()
        except CredentialNotFoundError as e:
            raise InvalidCredentialError("no API key configured") from e
        if not api_key:
            raise InvalidCredentialError("no API key configured")
        return api_key

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.request_timeout)) as client:
            yield client

    async def _attempt(self, client: httpx.AsyncClient, api_key: str, payload: dict[str, Any]) -> str:
        try:
            r = await asyncio.wait_for(
                client.post(self.endpoint, params={"key": api_key}, json=payload),
                timeout=self.resource_timeout,
            )
        except asyncio.TimeoutError as e:
            raise _RetryableFailure(f"request exceeded {self.resource_timeout}s") from e
        except httpx.TransportError as e:
            raise _RetryableFailure(f"{type(e).__name__}: {e}") from e

        status = r.status_code
        if status == 200:
            return parse_response(r.content)
        if status == 429:
            raise RateLimitExceededError("HTTP 429")
        if 500 <= status <= 599:
            raise _RetryableFailure(f"HTTP {status}")
        raise APIStatusError(status)
