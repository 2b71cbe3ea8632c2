"""API key storage backed by the OS keychain."""
from __future__ import annotations
import logging
import threading
from typing import Optional, Protocol

import keyring
from keyring.errors import KeyringError

from overlay_assistant.common.errors import CredentialNotFoundError, CredentialStoreError

LOGGER = logging.getLogger("overlay.credentials")

DEFAULT_SERVICE = "com.overlay-assistant.apikey"
DEFAULT_ACCOUNT = "gemini-api-key"


class CredentialStore(Protocol):
    def get(self) -> str:
        """Return the stored key or raise CredentialNotFoundError / CredentialStoreError."""

    def set(self, secret: str) -> None:
        """Create or overwrite the stored key."""


class KeyringCredentialStore:
    """
    Single API key kept under a fixed service/account pair.

    The key is read from the keychain on every `get`, so rotating it from
    outside the process takes effect on the next request.
    """

    def __init__(self, service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> None:
        self.service = service
        self.account = account

    def get(self) -> str:
        try:
            secret = keyring.get_password(self.service, self.account)
        except KeyringError as e:
            raise CredentialStoreError(type(e).__name__) from e
        if secret is None:
            raise CredentialNotFoundError(f"No API key stored for {self.service}/{self.account}")
        return secret

    def set(self, secret: str) -> None:
        try:
            keyring.set_password(self.service, self.account, secret)
        except KeyringError as e:
            raise CredentialStoreError(type(e).__name__) from e
        LOGGER.info("API key saved for %s/%s", self.service, self.account)


class MemoryCredentialStore:
    """Process-local store, for tests and headless runs."""

    def __init__(self, secret: Optional[str] = None) -> None:
        self._secret = secret
        self._lock = threading.Lock()

    def get(self) -> str:
        with self._lock:
            if self._secret is None:
                raise CredentialNotFoundError("No API key stored")
            return self._secret

    def set(self, secret: str) -> None:
        with self._lock:
            self._secret = secret
