"""Tests for the forgot-password reset token store."""

import uuid
from datetime import timedelta
from unittest.mock import patch

from photaro.models.base import utcnow
from photaro.services.password_reset_store import (
    PasswordResetStore,
    get_password_reset_store,
    reset_password_reset_store,
)

_USER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")
_UTCNOW = "photaro.services.password_reset_store.utcnow"


class TestPasswordResetStore:
    """Tests for PasswordResetStore."""

    def test_create_returns_hex_token(self):
        """Tokens are 64 hex chars and unique."""
        store = PasswordResetStore()
        first = store.create(_USER_ID)
        second = store.create(_USER_ID)
        assert len(first) == 64
        int(first, 16)
        assert first != second

    def test_consume_returns_user_once(self):
        """A token resolves to its user exactly once."""
        store = PasswordResetStore()
        token = store.create(_USER_ID)
        assert store.consume(token) == _USER_ID
        assert store.consume(token) is None

    def test_unknown_token(self):
        """Unknown tokens resolve to None."""
        assert PasswordResetStore().consume("nope") is None

    def test_expired_token_is_rejected_and_removed(self):
        """After the TTL the token no longer works and is gone."""
        store = PasswordResetStore(ttl_minutes=60)
        token = store.create(_USER_ID)
        with patch(_UTCNOW, return_value=utcnow() + timedelta(minutes=61)):
            assert store.consume(token) is None
        assert len(store) == 0

    def test_token_valid_just_before_expiry(self):
        """Within the TTL the token works."""
        store = PasswordResetStore(ttl_minutes=60)
        token = store.create(_USER_ID)
        with patch(_UTCNOW, return_value=utcnow() + timedelta(minutes=59)):
            assert store.consume(token) == _USER_ID

    def test_cleanup_expired(self):
        """Only expired entries are swept."""
        store = PasswordResetStore(ttl_minutes=60)
        stale = store.create(_USER_ID)
        store._store[stale].created_at = utcnow() - timedelta(minutes=61)
        fresh = store.create(_USER_ID)

        assert store.cleanup_expired() == 1
        assert len(store) == 1
        assert store.consume(fresh) == _USER_ID


class TestSingleton:
    """Tests for the singleton accessor."""

    def test_same_instance_until_reset(self):
        """get_ returns one instance; reset_ discards it."""
        reset_password_reset_store()
        first = get_password_reset_store()
        assert get_password_reset_store() is first
        reset_password_reset_store()
        assert get_password_reset_store() is not first
        reset_password_reset_store()
