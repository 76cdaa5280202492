"""Password change and two-sided email change, gated by one-time codes.

All flow state lives in the verification_codes table; there is no other
server-side session object.

Password change:
    request_password_change_code -> change_password

Email change (both addresses must prove control, in order):
    request_email_change_code   code to CURRENT address, carries new_email
    verify_current_email_code   consumes it, sends code to NEW address
    complete_email_change       consumes that, commits the new email

A failed step never advances the flow. Codes are consumed only after
every other check passes, and the request-scoped session rolls back on
any raised error, including a failed email send.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.core.auth import hash_password, verify_password
from photaro.core.email import EmailSender, build_code_message, mask_email
from photaro.core.errors import (
    ConflictError,
    InvalidCodeError,
    InvalidCredentialsError,
    ValidationError,
)
from photaro.models.base import utcnow
from photaro.models.user import User
from photaro.models.verification_code import CodePurpose, VerificationCode
from photaro.repositories.user_repository import UserRepository
from photaro.repositories.verification_code_repository import (
    VerificationCodeRepository,
)
from photaro.services.auth_flow import ensure_acceptable_password

logger = logging.getLogger(__name__)


def _email_taken() -> ConflictError:
    return ConflictError(code="EMAIL_ALREADY_EXISTS", message="Email already in use")


class VerificationFlowService:
    """Code-gated account changes for the authenticated user.

    Args:
        db: Request-scoped database session.
        email_sender: Outbound email collaborator.
    """

    def __init__(self, db: AsyncSession, email_sender: EmailSender) -> None:
        self.db = db
        self.email_sender = email_sender

    async def _issue_and_send(
        self,
        user: User,
        *,
        to_address: str,
        purpose: CodePurpose,
        new_email: str | None = None,
    ) -> str:
        code = await VerificationCodeRepository.issue(
            self.db,
            user_id=user.id,
            email=to_address,
            purpose=purpose,
            new_email=new_email,
        )
        message = build_code_message(code, purpose)
        await self.email_sender.send(to_address, message.subject, message.body)
        return mask_email(to_address)

    async def _require_live(
        self, user: User, code: str, purpose: CodePurpose
    ) -> VerificationCode:
        record = await VerificationCodeRepository.peek(
            self.db, user_id=user.id, code=code, purpose=purpose
        )
        if record is None:
            raise InvalidCodeError()
        return record

    async def _consume(self, user: User, code: str, purpose: CodePurpose) -> None:
        consumed = await VerificationCodeRepository.consume(
            self.db, user_id=user.id, code=code, purpose=purpose
        )
        if not consumed:
            # Expired or taken by a concurrent request since the peek.
            raise InvalidCodeError()

    async def _ensure_email_free(self, user: User, email: str) -> None:
        holder = await UserRepository.get_by_email(self.db, email)
        if holder is not None and holder.id != user.id:
            raise _email_taken()

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    async def request_password_change_code(self, user: User) -> str:
        """Send a password-change code to the user's current email.

        Returns:
            Masked address the code was sent to.

        Raises:
            DeliveryFailedError: Email could not be sent.
        """
        return await self._issue_and_send(
            user, to_address=user.email, purpose=CodePurpose.PASSWORD_CHANGE
        )

    async def check_code(self, user: User, code: str, purpose: CodePurpose) -> None:
        """Confirm a code is live without consuming it.

        Raises:
            InvalidCodeError: Wrong, expired, or already used code.
        """
        await self._require_live(user, code, purpose)

    async def change_password(
        self,
        user: User,
        *,
        current_password: str,
        new_password: str,
        code: str,
    ) -> None:
        """Change the password with a password-change code.

        Raises:
            InvalidCodeError: Code not live.
            InvalidCredentialsError: Current password wrong.
            ValidationError: New password equals current, or is weak/breached.
        """
        await self._require_live(user, code, CodePurpose.PASSWORD_CHANGE)

        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        if verify_password(new_password, user.password_hash):
            raise ValidationError(
                "New password must be different from current password"
            )
        await ensure_acceptable_password(new_password)

        await UserRepository.update(
            self.db,
            user.id,
            password_hash=hash_password(new_password),
            last_password_change=utcnow(),
        )
        await self._consume(user, code, CodePurpose.PASSWORD_CHANGE)
        logger.info("User %s changed password", user.id)

    # ------------------------------------------------------------------
    # Email change
    # ------------------------------------------------------------------

    async def request_email_change_code(self, user: User, new_email: str) -> str:
        """Start an email change by sending a code to the CURRENT address.

        Args:
            user: Authenticated user.
            new_email: Requested new address (format validated upstream).

        Returns:
            Masked current address.

        Raises:
            ValidationError: New address equals the current one.
            ConflictError: New address belongs to another account.
            DeliveryFailedError: Email could not be sent.
        """
        new_email = new_email.strip().lower()
        if new_email == user.email:
            raise ValidationError("New email must be different from current email")
        await self._ensure_email_free(user, new_email)

        return await self._issue_and_send(
            user,
            to_address=user.email,
            purpose=CodePurpose.EMAIL_CHANGE,
            new_email=new_email,
        )

    async def verify_current_email_code(self, user: User, code: str) -> str:
        """Consume the current-address code and send one to the new address.

        Returns:
            Masked new address.

        Raises:
            InvalidCodeError: Code not live.
            DeliveryFailedError: Email to the new address could not be sent;
                the consumption is rolled back with the request.
        """
        record = await self._require_live(user, code, CodePurpose.EMAIL_CHANGE)
        new_email = record.new_email
        if not new_email:
            raise InvalidCodeError()
        await self._consume(user, code, CodePurpose.EMAIL_CHANGE)

        return await self._issue_and_send(
            user,
            to_address=new_email,
            purpose=CodePurpose.EMAIL_CHANGE_NEW,
            new_email=new_email,
        )

    async def complete_email_change(
        self, user: User, *, new_email: str, code: str
    ) -> User:
        """Commit the new email after the new address proved control.

        Raises:
            InvalidCodeError: Code not live, or issued for a different address.
            ConflictError: Address was taken since the flow started.
        """
        new_email = new_email.strip().lower()
        record = await self._require_live(user, code, CodePurpose.EMAIL_CHANGE_NEW)
        if record.new_email != new_email:
            raise InvalidCodeError()
        await self._ensure_email_free(user, new_email)

        try:
            await UserRepository.update(self.db, user.id, email=new_email)
        except IntegrityError as exc:
            raise _email_taken() from exc
        await self._consume(user, code, CodePurpose.EMAIL_CHANGE_NEW)

        logger.info("User %s changed email", user.id)
        return user
