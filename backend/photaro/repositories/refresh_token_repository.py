"""Repository for RefreshToken operations.

Refresh tokens are opaque 128-char hex strings stored as issued. They are
not rotated on use: the same token keeps minting access tokens until it
expires or is deleted at logout.
"""

import secrets
import uuid
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.core.config import settings
from photaro.core.errors import RefreshTokenExpiredError, RefreshTokenNotFoundError
from photaro.models.base import utcnow
from photaro.models.refresh_token import RefreshToken

# 64 random bytes -> 128 hex chars
_TOKEN_BYTES = 64


class RefreshTokenRepository:
    """Stateless repository for RefreshToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def mint(db: AsyncSession, user_id: uuid.UUID) -> str:
        """Create and persist a new refresh token for a user.

        Args:
            db: Async database session.
            user_id: Owning user.

        Returns:
            The raw token value.
        """
        token = secrets.token_hex(_TOKEN_BYTES)
        db.add(
            RefreshToken(
                user_id=user_id,
                token=token,
                expires=utcnow() + timedelta(days=settings.refresh_token_ttl_days),
            )
        )
        await db.flush()
        return token

    @staticmethod
    async def redeem(db: AsyncSession, token: str) -> uuid.UUID:
        """Resolve a refresh token to its owner.

        The row is left in place whether it is valid or expired; expired
        rows are removed by the cleanup job.

        Args:
            db: Async database session.
            token: Raw token presented by the client.

        Returns:
            UUID of the owning user.

        Raises:
            RefreshTokenNotFoundError: No row holds this token.
            RefreshTokenExpiredError: The row is past its expiry.
        """
        stmt = select(RefreshToken).where(RefreshToken.token == token)
        result = await db.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            raise RefreshTokenNotFoundError()
        if record.expires <= utcnow():
            raise RefreshTokenExpiredError()
        return record.user_id

    @staticmethod
    async def revoke_exact(db: AsyncSession, token: str, user_id: uuid.UUID) -> bool:
        """Delete one refresh token held by a user (logout).

        Tokens owned by anyone else are left alone.

        Args:
            db: Async database session.
            token: Raw token to delete.
            user_id: Owner the token must belong to.

        Returns:
            True if a row was deleted, False if it was already gone.
        """
        stmt = delete(RefreshToken).where(
            RefreshToken.token == token, RefreshToken.user_id == user_id
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0

    @staticmethod
    async def revoke_all_for_user(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Delete every refresh token a user holds (account deletion).

        Args:
            db: Async database session.
            user_id: Owning user.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(RefreshToken).where(RefreshToken.user_id == user_id)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Async database session.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(RefreshToken).where(RefreshToken.expires < utcnow())
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
