"""Access token issuance, verification, and cookie plumbing.

Access tokens are HS256 JWTs valid for 15 minutes. They carry no role;
the role gate reads the persisted user record. A token can be invalidated
before expiry only by putting its exact string in the revocation store.

Transport:
- Access token: ``Authorization: Bearer`` header, mirrored in an HttpOnly
  SameSite=lax cookie for same-origin flows
- Refresh token: HttpOnly SameSite=strict cookie scoped to the auth routes,
  never in a response body
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Request, Response

from photaro.core.config import settings
from photaro.core.errors import (
    InternalError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
)
from photaro.models.base import utcnow
from photaro.services.revocation_store import RevocationStore

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class IssuedToken:
    """A freshly signed access token and its expiry."""

    token: str
    expires_at: datetime


@dataclass(frozen=True)
class AccessTokenClaims:
    """Verified claims of an access token.

    Attributes:
        user_id: Subject of the token.
        issued_at: ``iat`` claim.
        expires_at: ``exp`` claim.
        jti: Unique token id.
    """

    user_id: uuid.UUID
    issued_at: datetime
    expires_at: datetime
    jti: str


def _signing_key() -> str:
    secret = settings.auth_secret.get_secret_value()
    if not secret:
        logger.error("AUTH_SECRET is not configured")
        raise InternalError()
    return secret


def issue_access_token(user_id: uuid.UUID) -> IssuedToken:
    """Sign a short-lived access token for a user.

    Args:
        user_id: Subject of the token.

    Returns:
        IssuedToken with the encoded JWT and its expiry.
    """
    now = utcnow()
    expires_at = now + timedelta(minutes=settings.access_token_ttl_minutes)
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "iat": now,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(payload, _signing_key(), algorithm=_ALGORITHM)
    # exp is encoded as whole seconds; report what the token actually says
    return IssuedToken(token=token, expires_at=expires_at.replace(microsecond=0))


async def verify_access_token(
    token: str, revocation_store: RevocationStore
) -> AccessTokenClaims:
    """Verify an access token.

    Checks, in order: revocation of the exact string, then signature,
    expiry, audience, issuer, and required claims. Has no side effects.

    Args:
        token: Raw bearer string.
        revocation_store: Store consulted for revoked tokens.

    Returns:
        Verified claims.

    Raises:
        TokenRevokedError: The exact string was revoked.
        TokenExpiredError: The token is past its expiry.
        TokenMalformedError: Any other decode, signature, or claim failure.
    """
    if await revocation_store.is_revoked(token):
        raise TokenRevokedError()

    try:
        payload = jwt.decode(
            token,
            _signing_key(),
            algorithms=[_ALGORITHM],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            options={"require": ["sub", "exp", "iat", "jti"]},
        )
        user_id = uuid.UUID(payload["sub"])
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except (jwt.InvalidTokenError, KeyError, ValueError, TypeError) as exc:
        raise TokenMalformedError() from exc

    return AccessTokenClaims(
        user_id=user_id,
        issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        jti=str(payload["jti"]),
    )


def extract_access_token(request: Request) -> str | None:
    """Read the access token from the request.

    The ``Authorization: Bearer`` header wins; the access cookie is the
    fallback for same-origin browser requests.

    Args:
        request: Incoming request.

    Returns:
        Raw token string, or None when neither carries one.
    """
    header = request.headers.get("Authorization", "")
    if header[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        token = header[len(_BEARER_PREFIX) :].strip()
        if token:
            return token
    return request.cookies.get(settings.access_cookie_name) or None


def set_access_cookie(response: Response, issued: IssuedToken) -> None:
    """Set the HttpOnly access-token cookie.

    Args:
        response: FastAPI response object.
        issued: Token to store.
    """
    response.set_cookie(
        key=settings.access_cookie_name,
        value=issued.token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=settings.access_token_ttl_minutes * 60,
        domain=settings.auth_cookie_domain or None,
    )


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    """Set the HttpOnly, SameSite=strict refresh-token cookie.

    Scoped to the auth routes so the browser only sends it to refresh and
    logout.

    Args:
        response: FastAPI response object.
        refresh_token: Raw refresh token.
    """
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="strict",
        path=settings.refresh_cookie_path,
        max_age=settings.refresh_token_ttl_days * 24 * 60 * 60,
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookies(response: Response) -> None:
    """Expire both auth cookies on the client."""
    response.delete_cookie(
        key=settings.access_cookie_name,
        path="/",
        secure=settings.auth_cookie_secure,
        httponly=True,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.auth_cookie_secure,
        httponly=True,
        samesite="strict",
        domain=settings.auth_cookie_domain or None,
    )
