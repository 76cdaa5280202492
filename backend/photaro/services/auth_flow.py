"""Signup, login, refresh, logout, and password reset.

Composes the credential store, refresh token store, revocation store,
access token issuer, and password reset store. Route handlers in
api/v1/auth.py own HTTP concerns (cookies, background email); this service
owns the state transitions.

Nothing here commits. The request-scoped session commits when the handler
returns and rolls back on any raised error, so a failed step leaves no
partial write.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.core.auth import (
    check_password_breached,
    hash_password,
    validate_password_strength,
    validate_username,
    verify_password,
)
from photaro.core.errors import (
    AccountDeletedError,
    ConflictError,
    InvalidCodeError,
    InvalidCredentialsError,
    RefreshTokenNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from photaro.core.tokens import IssuedToken, issue_access_token
from photaro.models.base import utcnow
from photaro.models.user import User
from photaro.repositories.refresh_token_repository import RefreshTokenRepository
from photaro.repositories.user_repository import UserRepository
from photaro.services.password_reset_store import PasswordResetStore
from photaro.services.revocation_store import RevocationStore

logger = logging.getLogger(__name__)

PASSWORD_BREACHED_MSG = (  # nosec B105
    "This password has appeared in a data breach. Please choose a different one."
)


@dataclass
class SessionTokens:
    """Result of a successful signup or login.

    Attributes:
        user: Authenticated user.
        access: Signed access token and expiry.
        refresh_token: Raw refresh token (cookie only).
    """

    user: User
    access: IssuedToken
    refresh_token: str


async def ensure_acceptable_password(password: str) -> None:
    """Apply strength rules and the breach check to a new password.

    Raises:
        ValidationError: Weak or breached password.
    """
    validate_password_strength(password)
    if await check_password_breached(password):
        raise ValidationError(PASSWORD_BREACHED_MSG)


def _conflict_for(existing: User, *, email: str) -> ConflictError:
    if existing.email == email:
        return ConflictError(
            code="EMAIL_ALREADY_EXISTS", message="Email already registered"
        )
    return ConflictError(code="USERNAME_TAKEN", message="Username already taken")


class AuthFlowService:
    """Session lifecycle for a single request.

    Args:
        db: Request-scoped database session.
        revocation_store: Revoked access-token store.
        reset_store: Password reset token store.
    """

    def __init__(
        self,
        db: AsyncSession,
        revocation_store: RevocationStore,
        reset_store: PasswordResetStore,
    ) -> None:
        self.db = db
        self.revocation_store = revocation_store
        self.reset_store = reset_store

    async def _open_session(self, user: User) -> SessionTokens:
        refresh_token = await RefreshTokenRepository.mint(self.db, user.id)
        return SessionTokens(
            user=user,
            access=issue_access_token(user.id),
            refresh_token=refresh_token,
        )

    async def signup(
        self, *, username: str, email: str, password: str
    ) -> SessionTokens:
        """Register a new account and open a session for it.

        Soft-deleted accounts keep their email and username reserved.

        Raises:
            ValidationError: Bad username or weak/breached password.
            ConflictError: Username or email already registered.
        """
        username = validate_username(username)
        email = email.strip().lower()
        await ensure_acceptable_password(password)

        existing = await UserRepository.get_by_email_or_username(
            self.db, email=email, username=username
        )
        if existing is not None:
            raise _conflict_for(existing, email=email)

        try:
            user = await UserRepository.create(
                self.db,
                username=username,
                email=email,
                password_hash=hash_password(password),
            )
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same identity.
            raise ConflictError(
                code="USER_ALREADY_EXISTS",
                message="Username or email already registered",
            ) from exc

        logger.info("User %s signed up", user.id)
        return await self._open_session(user)

    async def login(self, *, email: str, password: str) -> SessionTokens:
        """Authenticate by email and password.

        Unknown email and wrong password fail identically, after the same
        bcrypt work.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            AccountDeletedError: Correct password for a soft-deleted account.
        """
        user = await UserRepository.get_by_email(self.db, email)
        matched = verify_password(password, user.password_hash if user else None)
        if user is None or not matched:
            raise InvalidCredentialsError()
        if user.is_deleted:
            raise AccountDeletedError()

        logger.info("User %s logged in", user.id)
        return await self._open_session(user)

    async def refresh(self, refresh_token: str | None) -> tuple[User, IssuedToken]:
        """Exchange a refresh token for a new access token.

        The refresh token is not rotated and stays valid until it expires
        or is deleted at logout.

        Raises:
            RefreshTokenNotFoundError: Missing or unknown token.
            RefreshTokenExpiredError: Token past its expiry.
            UnauthorizedError: Owning user no longer exists.
            AccountDeletedError: Owning account was soft-deleted.
        """
        if not refresh_token:
            raise RefreshTokenNotFoundError()

        user_id = await RefreshTokenRepository.redeem(self.db, refresh_token)
        user = await UserRepository.get_by_id(self.db, user_id)
        if user is None:
            raise UnauthorizedError()
        if user.is_deleted:
            raise AccountDeletedError()
        return user, issue_access_token(user.id)

    async def logout(
        self,
        *,
        user_id: uuid.UUID,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None,
    ) -> None:
        """End a session.

        Revokes the exact access token string and deletes the presented
        refresh token if the same user owns it. Both steps are idempotent.

        Args:
            user_id: Subject of the verified access token.
            access_token: Verified bearer string being logged out.
            expires_at: Its natural expiry.
            refresh_token: Refresh token from the cookie, if any.
        """
        if refresh_token:
            await RefreshTokenRepository.revoke_exact(
                self.db, refresh_token, user_id
            )
        await self.revocation_store.revoke(access_token, expires_at)

    async def delete_account(
        self,
        user: User,
        *,
        password: str,
        access_token: str,
        expires_at: datetime,
    ) -> None:
        """Soft-delete an account after password confirmation.

        Revokes the current access token and every refresh token the user
        holds.

        Raises:
            InvalidCredentialsError: Password does not match.
        """
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Password is incorrect")

        await UserRepository.soft_delete(self.db, user.id)
        revoked = await RefreshTokenRepository.revoke_all_for_user(self.db, user.id)
        await self.revocation_store.revoke(access_token, expires_at)
        logger.info(
            "User %s deleted account (%d refresh tokens revoked)", user.id, revoked
        )

    async def forgot_password(self, email: str) -> tuple[User, str] | None:
        """Create a reset token if the email belongs to an active account.

        The caller must answer identically whether or not this returns a
        token.

        Returns:
            (user, reset token), or None for unknown or deleted accounts.
        """
        user = await UserRepository.get_by_email(self.db, email)
        if user is None or user.is_deleted:
            return None
        return user, self.reset_store.create(user.id)

    async def reset_password(self, *, token: str, new_password: str) -> uuid.UUID:
        """Set a new password using a reset token.

        The password is checked before the token is consumed, so a weak
        password does not burn the link. Every refresh token the user holds
        is revoked.

        Returns:
            ID of the user whose password was reset.

        Raises:
            ValidationError: Weak or breached password.
            InvalidCodeError: Unknown, used, or expired token.
        """
        await ensure_acceptable_password(new_password)

        user_id = self.reset_store.consume(token)
        if user_id is None:
            raise InvalidCodeError("Invalid or expired reset token")
        user = await UserRepository.get_by_id(self.db, user_id)
        if user is None or user.is_deleted:
            raise InvalidCodeError("Invalid or expired reset token")

        await UserRepository.update(
            self.db,
            user.id,
            password_hash=hash_password(new_password),
            last_password_change=utcnow(),
        )
        await RefreshTokenRepository.revoke_all_for_user(self.db, user.id)
        logger.info("User %s reset password", user.id)
        return user.id
