"""Repository for VerificationCode operations.

Six-digit one-time codes typed by purpose, 15-minute expiry. Issuing a
code replaces every earlier code for the same (user, purpose); consuming
a code deletes it so it cannot be replayed.
"""

import logging
import secrets
import uuid
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.core.config import settings
from photaro.core.errors import ConflictError, InternalError
from photaro.models.base import utcnow
from photaro.models.user import User
from photaro.models.verification_code import CodePurpose, VerificationCode

logger = logging.getLogger(__name__)

# Codes are 100000-999999 so they are always six digits.
_CODE_FLOOR = 100_000
_CODE_SPAN = 900_000

# Collisions are astronomically rare at realistic table sizes.
_MAX_GENERATION_ATTEMPTS = 10


def _generate_code() -> str:
    return str(_CODE_FLOOR + secrets.randbelow(_CODE_SPAN))


class VerificationCodeRepository:
    """Stateless repository for VerificationCode table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def issue(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        email: str,
        purpose: CodePurpose,
        new_email: str | None = None,
    ) -> str:
        """Issue a fresh code for (user, purpose), replacing earlier ones.

        The user's row is locked first so concurrent issuance for the same
        user runs delete-then-insert one at a time. The unique constraint on
        (user_id, purpose) backs this up at the storage level. A code value
        taken by a concurrent insert for another user is redrawn.

        Args:
            db: Async database session.
            user_id: Owning user.
            email: Address the code will be sent to.
            purpose: What the code authorizes.
            new_email: Pending new address (email-change flows only).

        Returns:
            The six-digit code to send.

        Raises:
            ConflictError: A concurrent issuance for the same purpose won.
            InternalError: No free code value found after repeated attempts.
        """
        await db.execute(
            select(User.id).where(User.id == user_id).with_for_update()
        )
        await db.execute(
            delete(VerificationCode).where(
                VerificationCode.user_id == user_id,
                VerificationCode.purpose == purpose.value,
            )
        )

        email = email.strip().lower()
        new_email = new_email.strip().lower() if new_email else None
        expires = utcnow() + timedelta(minutes=settings.verification_code_ttl_minutes)

        for _ in range(_MAX_GENERATION_ATTEMPTS):
            code = _generate_code()
            taken = await db.execute(
                select(VerificationCode.id).where(VerificationCode.code == code)
            )
            if taken.scalar_one_or_none() is not None:
                continue

            # Another issuance may take the same value between the check and
            # the insert; the savepoint keeps that from poisoning the session.
            try:
                async with db.begin_nested():
                    db.add(
                        VerificationCode(
                            user_id=user_id,
                            email=email,
                            code=code,
                            purpose=purpose.value,
                            new_email=new_email,
                            expires=expires,
                        )
                    )
            except IntegrityError as exc:
                if await VerificationCodeRepository._has_code_for(
                    db, user_id, purpose
                ):
                    raise ConflictError(
                        code="CODE_ISSUE_CONFLICT",
                        message=(
                            "Another verification request is in progress. "
                            "Please try again."
                        ),
                    ) from exc
                logger.info("Verification code value collided; drawing another")
                continue

            logger.info("Issued %s code for user %s", purpose.value, user_id)
            return code

        logger.error("Exhausted verification code generation attempts")
        raise InternalError()

    @staticmethod
    async def _has_code_for(
        db: AsyncSession, user_id: uuid.UUID, purpose: CodePurpose
    ) -> bool:
        result = await db.execute(
            select(VerificationCode.id).where(
                VerificationCode.user_id == user_id,
                VerificationCode.purpose == purpose.value,
            )
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def peek(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        code: str,
        purpose: CodePurpose,
    ) -> VerificationCode | None:
        """Look up a live code without consuming it.

        Args:
            db: Async database session.
            user_id: Owning user.
            code: Code presented by the user.
            purpose: Expected purpose.

        Returns:
            The matching non-expired record, or None.
        """
        stmt = select(VerificationCode).where(
            VerificationCode.user_id == user_id,
            VerificationCode.code == code,
            VerificationCode.purpose == purpose.value,
            VerificationCode.expires > utcnow(),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def consume(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        code: str,
        purpose: CodePurpose,
    ) -> bool:
        """Delete a live code (single use).

        Args:
            db: Async database session.
            user_id: Owning user.
            code: Code presented by the user.
            purpose: Expected purpose.

        Returns:
            True if a matching non-expired row was deleted.
        """
        stmt = delete(VerificationCode).where(
            VerificationCode.user_id == user_id,
            VerificationCode.code == code,
            VerificationCode.purpose == purpose.value,
            VerificationCode.expires > utcnow(),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count > 0

    @staticmethod
    async def delete_expired(db: AsyncSession) -> int:
        """Delete all expired codes (periodic cleanup).

        Args:
            db: Async database session.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(VerificationCode).where(VerificationCode.expires <= utcnow())
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
