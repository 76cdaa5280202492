"""Revocation store for access tokens invalidated before their expiry.

Logout and account deletion put the exact bearer string here; the token
verifier rejects any string found in the store. Membership is a raw string
test, so a freshly issued token with the same subject is not affected.

An entry only needs to outlive the token it blocks. Both implementations
drop entries once the token's own ``exp`` has passed.

Implementations:
- InMemoryRevocationStore: lock-guarded dict, single process only
- RedisRevocationStore: shared across processes, TTL set per key
"""

import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime

import redis.asyncio as aioredis

from photaro.core.config import settings
from photaro.models.base import utcnow

logger = logging.getLogger(__name__)

_REDIS_SOCKET_TIMEOUT = 5.0


class RevocationStore(ABC):
    """Interface for revoked access-token membership."""

    @abstractmethod
    async def revoke(self, token: str, expires_at: datetime) -> None:
        """Add a token. Idempotent.

        Args:
            token: Exact bearer string.
            expires_at: The token's natural expiry; the entry may be
                dropped after this instant.
        """

    @abstractmethod
    async def is_revoked(self, token: str) -> bool:
        """Return True if this exact token string was revoked."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry (administrative and test use)."""

    @abstractmethod
    async def evict_expired(self) -> int:
        """Drop entries whose token has expired anyway.

        Returns:
            Number of entries removed.
        """


class InMemoryRevocationStore(RevocationStore):
    """Process-local revocation store.

    Safe under concurrent writers: every access to the dict happens under
    a threading.Lock. Not shared between worker processes.
    """

    def __init__(self) -> None:
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    async def revoke(self, token: str, expires_at: datetime) -> None:
        with self._lock:
            current = self._entries.get(token)
            if current is None or current < expires_at:
                self._entries[token] = expires_at

    async def is_revoked(self, token: str) -> bool:
        with self._lock:
            return token in self._entries

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def evict_expired(self) -> int:
        now = utcnow()
        with self._lock:
            expired = [t for t, exp in self._entries.items() if exp <= now]
            for token in expired:
                del self._entries[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisRevocationStore(RevocationStore):
    """Redis-backed revocation store for multi-process deployments.

    Keys are ``{prefix}{sha256(token)}`` with a TTL equal to the token's
    remaining lifetime, so Redis evicts them on its own.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        key_prefix: str = "photaro:revoked:",
    ) -> None:
        """Initialize the store.

        Args:
            client: redis.asyncio client.
            key_prefix: Namespace for revocation keys.
        """
        self._client = client
        self._prefix = key_prefix

    @classmethod
    def from_url(
        cls, redis_url: str, *, key_prefix: str = "photaro:revoked:"
    ) -> "RedisRevocationStore":
        """Build a store with its own connection pool."""
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=_REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=_REDIS_SOCKET_TIMEOUT,
        )
        return cls(client, key_prefix=key_prefix)

    def _key(self, token: str) -> str:
        digest = hashlib.sha256(token.encode()).hexdigest()
        return f"{self._prefix}{digest}"

    async def revoke(self, token: str, expires_at: datetime) -> None:
        ttl = int((expires_at - utcnow()).total_seconds())
        if ttl <= 0:
            # Already expired; the verifier rejects it without our help.
            return
        await self._client.set(self._key(token), "1", ex=ttl)

    async def is_revoked(self, token: str) -> bool:
        return bool(await self._client.exists(self._key(token)))

    async def clear(self) -> None:
        keys = [key async for key in self._client.scan_iter(match=f"{self._prefix}*")]
        if keys:
            await self._client.delete(*keys)

    async def evict_expired(self) -> int:
        # Redis expires keys by TTL.
        return 0


# Singleton instance for the application
_revocation_store: RevocationStore | None = None


def get_revocation_store() -> RevocationStore:
    """Get the singleton revocation store.

    Uses Redis when REDIS_URL is configured, otherwise an in-process store.

    Returns:
        The RevocationStore singleton.
    """
    global _revocation_store
    if _revocation_store is None:
        if settings.redis_url:
            logger.info("Using Redis revocation store")
            _revocation_store = RedisRevocationStore.from_url(
                settings.redis_url, key_prefix=settings.revocation_key_prefix
            )
        else:
            _revocation_store = InMemoryRevocationStore()
    return _revocation_store


def reset_revocation_store() -> None:
    """Drop the singleton so the next call builds a fresh store (for testing)."""
    global _revocation_store
    _revocation_store = None
