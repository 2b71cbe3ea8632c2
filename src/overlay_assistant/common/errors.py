"""Exception hierarchy shared across the assistant."""
from __future__ import annotations


class AssistantError(Exception):
    """Base exception for all assistant errors."""


# Request engine
class InvalidCredentialError(AssistantError):
    """Raised when no usable API key is stored."""


class RateLimitExceededError(AssistantError):
    """Raised when the backend answers HTTP 429."""


class InvalidResponseError(AssistantError):
    """Raised when a 200 response does not carry generated text."""


class APIStatusError(AssistantError):
    """Raised for any non-retryable HTTP status other than 429."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class NetworkError(AssistantError):
    """Raised when transport failures or 5xx answers exhaust the retries."""

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause


# Credential store
class CredentialStoreError(AssistantError):
    """Raised when the backing store fails for a reason other than a missing key."""

    def __init__(self, status: str) -> None:
        super().__init__(status)
        self.status = status


class CredentialNotFoundError(AssistantError):
    """Raised by a store that holds no key."""


# Post-processing
class EmptyInputError(AssistantError):
    """Raised when there is no text left to normalise."""


# Input routing
class BatchInactiveError(AssistantError):
    """Raised when a fragment is added while batch mode is off."""


class ConfigurationError(AssistantError):
    """Raised when configuration loading fails."""
