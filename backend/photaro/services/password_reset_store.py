"""In-memory store for forgot-password reset tokens.

Tokens are 64-char hex strings delivered only in an emailed link. Each is
single-use and valid for one hour from creation.

Held in process memory: a restart invalidates outstanding links, and the
user simply requests a new one.
"""

import secrets
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from photaro.core.config import settings
from photaro.models.base import utcnow


@dataclass
class PasswordResetEntry:
    """Stored reset request.

    Attributes:
        user_id: Account the token resets.
        created_at: When the token was created.
    """

    user_id: uuid.UUID
    created_at: datetime = field(default_factory=utcnow)


class PasswordResetStore:
    """Thread-safe store for password reset tokens."""

    def __init__(self, ttl_minutes: int | None = None) -> None:
        """Initialize the store.

        Args:
            ttl_minutes: Token lifetime. Defaults to the configured value.
        """
        self._store: dict[str, PasswordResetEntry] = {}
        self._ttl = timedelta(
            minutes=ttl_minutes
            if ttl_minutes is not None
            else settings.password_reset_ttl_minutes
        )
        self._lock = threading.Lock()

    def _is_expired(self, entry: PasswordResetEntry, now: datetime) -> bool:
        return now - entry.created_at > self._ttl

    def create(self, user_id: uuid.UUID) -> str:
        """Create a reset token for a user.

        Args:
            user_id: Account to reset.

        Returns:
            The token to embed in the reset link.
        """
        token = secrets.token_hex(32)
        with self._lock:
            self._store[token] = PasswordResetEntry(user_id=user_id)
        return token

    def consume(self, token: str) -> uuid.UUID | None:
        """Remove a token and return its user if it was still valid.

        The token is removed even when expired, so it can never be retried.

        Args:
            token: Token from the reset link.

        Returns:
            User ID, or None if the token is unknown, used, or expired.
        """
        with self._lock:
            entry = self._store.pop(token, None)
        if entry is None or self._is_expired(entry, utcnow()):
            return None
        return entry.user_id

    def cleanup_expired(self) -> int:
        """Remove all expired tokens.

        Returns:
            Number of tokens removed.
        """
        now = utcnow()
        with self._lock:
            expired = [
                token
                for token, entry in self._store.items()
                if self._is_expired(entry, now)
            ]
            for token in expired:
                del self._store[token]
        return len(expired)

    def clear(self) -> None:
        """Clear all tokens (for testing)."""
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


# Singleton instance for the application
_reset_store: PasswordResetStore | None = None


def get_password_reset_store() -> PasswordResetStore:
    """Get the singleton reset store instance.

    Returns:
        The PasswordResetStore singleton.
    """
    global _reset_store
    if _reset_store is None:
        _reset_store = PasswordResetStore()
    return _reset_store


def reset_password_reset_store() -> None:
    """Reset the store singleton (for testing)."""
    global _reset_store
    if _reset_store is not None:
        _reset_store.clear()
    _reset_store = None
