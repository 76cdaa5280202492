"""Tests for access token issuance, verification, and cookie helpers."""

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import jwt
import pytest
from pydantic import SecretStr
from starlette.requests import Request

from photaro.core.config import settings
from photaro.core.errors import (
    InternalError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
)
from photaro.core.tokens import (
    clear_auth_cookies,
    extract_access_token,
    issue_access_token,
    set_access_cookie,
    set_refresh_cookie,
    verify_access_token,
)
from photaro.services.revocation_store import InMemoryRevocationStore
from tests.conftest import TEST_AUTH_SECRET, TEST_USER_ID, create_test_jwt


def _request(headers: list[tuple[bytes, bytes]]) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestIssueAccessToken:
    """Tests for issue_access_token()."""

    def test_claims(self):
        """Token carries sub, aud, iss, iat, exp and jti, and no role."""
        issued = issue_access_token(TEST_USER_ID)
        payload = jwt.decode(
            issued.token,
            TEST_AUTH_SECRET,
            algorithms=["HS256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )
        assert payload["sub"] == str(TEST_USER_ID)
        assert {"iat", "exp", "jti"} <= payload.keys()
        assert "role" not in payload

    def test_expires_after_configured_ttl(self):
        """exp is 15 minutes after issuance and matches expires_at."""
        issued = issue_access_token(TEST_USER_ID)
        payload = jwt.decode(
            issued.token,
            TEST_AUTH_SECRET,
            algorithms=["HS256"],
            audience=settings.auth_audience,
        )
        assert payload["exp"] - payload["iat"] == settings.access_token_ttl_minutes * 60
        assert int(issued.expires_at.timestamp()) == payload["exp"]

    def test_each_token_is_distinct(self):
        """Two tokens for the same user in the same second differ (jti)."""
        first = issue_access_token(TEST_USER_ID)
        second = issue_access_token(TEST_USER_ID)
        assert first.token != second.token

    def test_missing_secret_is_internal_error(self):
        """An unconfigured signing secret fails loudly."""
        settings.auth_secret = SecretStr("")
        with pytest.raises(InternalError):
            issue_access_token(TEST_USER_ID)


class TestVerifyAccessToken:
    """Tests for verify_access_token()."""

    async def test_valid_token_returns_claims(self):
        """A fresh token verifies and yields its subject."""
        issued = issue_access_token(TEST_USER_ID)
        claims = await verify_access_token(issued.token, InMemoryRevocationStore())
        assert claims.user_id == TEST_USER_ID
        assert claims.expires_at == issued.expires_at

    async def test_expired_token(self):
        """A token past exp is rejected as expired."""
        token = create_test_jwt(
            expires_delta=timedelta(seconds=-5),
            iat=datetime.now(UTC) - timedelta(minutes=20),
        )
        with pytest.raises(TokenExpiredError):
            await verify_access_token(token, InMemoryRevocationStore())

    async def test_wrong_secret_is_malformed(self):
        """A signature made with another key is rejected as malformed."""
        token = create_test_jwt(
            secret="another-secret-key-that-is-at-least-32-characters"  # nosec B106
        )
        with pytest.raises(TokenMalformedError):
            await verify_access_token(token, InMemoryRevocationStore())

    async def test_wrong_audience_is_malformed(self):
        """A token for another audience is rejected."""
        token = create_test_jwt(audience="someone-else")
        with pytest.raises(TokenMalformedError):
            await verify_access_token(token, InMemoryRevocationStore())

    async def test_garbage_is_malformed(self):
        """A non-JWT string is rejected as malformed."""
        with pytest.raises(TokenMalformedError):
            await verify_access_token("not-a-jwt", InMemoryRevocationStore())

    async def test_missing_jti_is_malformed(self):
        """Required claims must be present."""
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": str(TEST_USER_ID),
                "aud": settings.auth_audience,
                "iss": settings.auth_issuer,
                "iat": now,
                "exp": now + timedelta(minutes=5),
            },
            TEST_AUTH_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenMalformedError):
            await verify_access_token(token, InMemoryRevocationStore())

    async def test_non_uuid_subject_is_malformed(self):
        """sub must be a UUID."""
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "admin",
                "aud": settings.auth_audience,
                "iss": settings.auth_issuer,
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "jti": "abc",
            },
            TEST_AUTH_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenMalformedError):
            await verify_access_token(token, InMemoryRevocationStore())

    async def test_revoked_token(self):
        """A revoked string is rejected even though it is otherwise valid."""
        store = InMemoryRevocationStore()
        issued = issue_access_token(TEST_USER_ID)
        await store.revoke(issued.token, issued.expires_at)
        with pytest.raises(TokenRevokedError):
            await verify_access_token(issued.token, store)

    async def test_revocation_checked_before_expiry(self):
        """A revoked and expired token reports revoked."""
        store = InMemoryRevocationStore()
        token = create_test_jwt(
            expires_delta=timedelta(seconds=-5),
            iat=datetime.now(UTC) - timedelta(minutes=20),
        )
        await store.revoke(token, datetime.now(UTC) + timedelta(minutes=1))
        with pytest.raises(TokenRevokedError):
            await verify_access_token(token, store)

    async def test_revocation_is_per_string(self):
        """Revoking one token leaves a newer token for the same user valid."""
        store = InMemoryRevocationStore()
        old = issue_access_token(TEST_USER_ID)
        await store.revoke(old.token, old.expires_at)
        new = issue_access_token(TEST_USER_ID)
        claims = await verify_access_token(new.token, store)
        assert claims.user_id == TEST_USER_ID


class TestExtractAccessToken:
    """Tests for extract_access_token()."""

    def test_bearer_header(self):
        """Bearer header value is returned."""
        request = _request([(b"authorization", b"Bearer abc.def.ghi")])
        assert extract_access_token(request) == "abc.def.ghi"

    def test_bearer_scheme_is_case_insensitive(self):
        """'bearer' in lowercase is accepted."""
        request = _request([(b"authorization", b"bearer abc")])
        assert extract_access_token(request) == "abc"

    def test_cookie_fallback(self):
        """Access cookie is used when no header is sent."""
        cookie = f"{settings.access_cookie_name}=from-cookie".encode()
        request = _request([(b"cookie", cookie)])
        assert extract_access_token(request) == "from-cookie"

    def test_header_wins_over_cookie(self):
        """Header takes precedence over the cookie."""
        cookie = f"{settings.access_cookie_name}=from-cookie".encode()
        request = _request(
            [(b"authorization", b"Bearer from-header"), (b"cookie", cookie)]
        )
        assert extract_access_token(request) == "from-header"

    def test_non_bearer_scheme_ignored(self):
        """Basic auth is not an access token."""
        request = _request([(b"authorization", b"Basic dXNlcjpwYXNz")])
        assert extract_access_token(request) is None

    def test_nothing(self):
        """No header and no cookie yields None."""
        assert extract_access_token(_request([])) is None


class TestCookies:
    """Tests for the cookie helpers."""

    def test_access_cookie(self):
        """Access cookie is HttpOnly, site-wide, and lives as long as the token."""
        response = Mock()
        issued = issue_access_token(TEST_USER_ID)
        set_access_cookie(response, issued)
        kwargs = response.set_cookie.call_args.kwargs
        assert kwargs["key"] == settings.access_cookie_name
        assert kwargs["value"] == issued.token
        assert kwargs["httponly"] is True
        assert kwargs["path"] == "/"
        assert kwargs["max_age"] == settings.access_token_ttl_minutes * 60

    def test_refresh_cookie(self):
        """Refresh cookie is HttpOnly, SameSite=strict, scoped to auth routes."""
        response = Mock()
        set_refresh_cookie(response, "r" * 128)
        kwargs = response.set_cookie.call_args.kwargs
        assert kwargs["key"] == settings.refresh_cookie_name
        assert kwargs["httponly"] is True
        assert kwargs["samesite"] == "strict"
        assert kwargs["path"] == settings.refresh_cookie_path
        assert kwargs["max_age"] == settings.refresh_token_ttl_days * 86400

    def test_clear_deletes_both(self):
        """Both cookies are deleted on their own paths."""
        response = Mock()
        clear_auth_cookies(response)
        deleted = {
            (c.kwargs["key"], c.kwargs["path"])
            for c in response.delete_cookie.call_args_list
        }
        assert deleted == {
            (settings.access_cookie_name, "/"),
            (settings.refresh_cookie_name, settings.refresh_cookie_path),
        }
