"""Shared dependencies for API endpoints.

Authentication resolves in three steps, each usable on its own:
1. get_access_token: bearer header, access cookie as fallback
2. get_token_claims: signature, expiry and revocation check
3. get_current_user: loads the record; missing -> 401, deleted -> 403

Stores and the email sender are injected too, so deployments pick
in-memory or Redis, Resend or log-only, and tests override them.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.core.authorization import authorize
from photaro.core.database import get_db
from photaro.core.email import EmailSender, get_email_sender
from photaro.core.errors import (
    AccountDeletedError,
    AdminRequiredError,
    ForbiddenError,
    UnauthorizedError,
)
from photaro.core.tokens import (
    AccessTokenClaims,
    extract_access_token,
    verify_access_token,
)
from photaro.models.user import User, UserRole
from photaro.repositories.user_repository import UserRepository
from photaro.services.auth_flow import AuthFlowService
from photaro.services.password_reset_store import (
    PasswordResetStore,
    get_password_reset_store,
)
from photaro.services.revocation_store import RevocationStore, get_revocation_store
from photaro.services.verification_flow import VerificationFlowService

# Reusable type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
Revocations = Annotated[RevocationStore, Depends(get_revocation_store)]
ResetStore = Annotated[PasswordResetStore, Depends(get_password_reset_store)]
Mailer = Annotated[EmailSender, Depends(get_email_sender)]


def get_access_token(request: Request) -> str:
    """Get the raw access token from the request.

    Raises:
        UnauthorizedError: Neither header nor cookie carries a token.
    """
    token = extract_access_token(request)
    if not token:
        raise UnauthorizedError()
    return token


AccessToken = Annotated[str, Depends(get_access_token)]


async def get_token_claims(
    token: AccessToken, revocation_store: Revocations
) -> AccessTokenClaims:
    """Verify the access token and return its claims.

    Raises:
        TokenRevokedError / TokenExpiredError / TokenMalformedError (401).
    """
    return await verify_access_token(token, revocation_store)


TokenClaims = Annotated[AccessTokenClaims, Depends(get_token_claims)]


async def get_current_user(claims: TokenClaims, db: DbSession) -> User:
    """Get the full User record for the token's subject.

    Args:
        claims: Verified token claims (injected).
        db: Database session (injected).

    Returns:
        User object for the current user.

    Raises:
        UnauthorizedError: User no longer exists.
        AccountDeletedError: Account was soft-deleted.
    """
    user = await UserRepository.get_by_id(db, claims.user_id)
    if user is None:
        raise UnauthorizedError()
    if user.is_deleted:
        raise AccountDeletedError()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(role: UserRole) -> Callable[[User], Awaitable[User]]:
    """Build a dependency that admits only users whose role is exactly ``role``.

    Args:
        role: Role the route requires.

    Returns:
        FastAPI dependency returning the authorized user.
    """

    async def _check(user: CurrentUser) -> User:
        if not authorize(user, role):
            if role is UserRole.ADMIN:
                raise AdminRequiredError()
            raise ForbiddenError()
        return user

    return _check


AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]


def get_auth_flow(
    db: DbSession, revocation_store: Revocations, reset_store: ResetStore
) -> AuthFlowService:
    """Build the auth flow service for this request."""
    return AuthFlowService(db, revocation_store, reset_store)


def get_verification_flow(
    db: DbSession, email_sender: Mailer
) -> VerificationFlowService:
    """Build the verification flow service for this request."""
    return VerificationFlowService(db, email_sender)


AuthFlow = Annotated[AuthFlowService, Depends(get_auth_flow)]
VerificationFlow = Annotated[VerificationFlowService, Depends(get_verification_flow)]
