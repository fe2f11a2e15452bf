"""
Bring-your-own-key credential storage.

The user's Anthropic API key lives in the system keyring
(service: settings.keyring_service, username: settings.keyring_username).
Nothing is cached in memory: every use re-reads the keyring inside an
acquire() block, and every change is written straight through.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import keyring
from keyring.errors import PasswordDeleteError

from config.settings import settings

logger = logging.getLogger(__name__)


class CredentialStore:
    """Keyring-backed store for the optional BYOK API key."""

    def __init__(self, service: Optional[str] = None, username: Optional[str] = None):
        self.service = service or settings.keyring_service
        self.username = username or settings.keyring_username

    @contextmanager
    def acquire(self) -> Iterator[Optional[str]]:
        """
        Read the stored key for the duration of one use.

        Yields:
            The key, or None if no key is stored
        """
        key = keyring.get_password(self.service, self.username)
        try:
            yield key or None
        finally:
            key = None

    def has_key(self) -> bool:
        with self.acquire() as key:
            return key is not None

    def set(self, api_key: str) -> None:
        """Store (or replace) the key."""
        api_key = (api_key or "").strip()
        if not api_key:
            raise ValueError("API key cannot be empty")
        keyring.set_password(self.service, self.username, api_key)
        logger.info("Stored BYOK API key in keyring")

    def clear(self) -> bool:
        """Remove the key. Returns False if there was nothing to remove."""
        try:
            keyring.delete_password(self.service, self.username)
        except PasswordDeleteError:
            return False
        logger.info("Removed BYOK API key from keyring")
        return True


# Singleton instance
_credential_store: Optional[CredentialStore] = None


def get_credential_store() -> CredentialStore:
    """Get or create the singleton CredentialStore."""
    global _credential_store
    if _credential_store is None:
        _credential_store = CredentialStore()
    return _credential_store


def reset_credential_store() -> None:
    """Reset the singleton (for testing)."""
    global _credential_store
    _credential_store = None
