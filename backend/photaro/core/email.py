"""Email sending via Resend API.

Plain-text messages for one-time verification codes and password reset
links. Senders raise DeliveryFailedError so callers can report a 502
distinct from validation failures.

Without a Resend API key (local development) LogEmailSender is used; it
logs the recipient and subject but never the body, which carries the code.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import quote, urlencode

import httpx

from photaro.core.config import settings
from photaro.core.errors import DeliveryFailedError
from photaro.models.verification_code import CodePurpose

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0

_CODE_SUBJECTS: dict[CodePurpose, str] = {
    CodePurpose.PASSWORD_CHANGE: "Photaro password change verification",
    CodePurpose.EMAIL_CHANGE: "Photaro email change verification",
    CodePurpose.EMAIL_CHANGE_NEW: "Confirm your new Photaro email address",
}

_CODE_ACTIONS: dict[CodePurpose, str] = {
    CodePurpose.PASSWORD_CHANGE: "change your password",
    CodePurpose.EMAIL_CHANGE: "change the email address on your account",
    CodePurpose.EMAIL_CHANGE_NEW: "confirm this new email address",
}


@dataclass(frozen=True)
class EmailMessage:
    """Subject and plain-text body of an outbound email."""

    subject: str
    body: str


class EmailSender(ABC):
    """Outbound email collaborator."""

    @abstractmethod
    async def send(self, to_address: str, subject: str, body: str) -> None:
        """Send one plain-text email.

        Raises:
            DeliveryFailedError: The message could not be handed off.
        """


class ResendEmailSender(EmailSender):
    """Sends email through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str) -> None:
        self._api_key = api_key
        self._from = from_address

    async def send(self, to_address: str, subject: str, body: str) -> None:
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._from,
                        "to": to_address,
                        "subject": subject,
                        "text": body,
                    },
                    timeout=_RESEND_TIMEOUT,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to send email via Resend", exc_info=True)
            raise DeliveryFailedError() from exc


class LogEmailSender(EmailSender):
    """Development sender that records the send in the log only."""

    async def send(self, to_address: str, subject: str, body: str) -> None:  # noqa: ARG002
        logger.info(
            "Email not sent (no RESEND_API_KEY): to=%s subject=%s",
            mask_email(to_address),
            subject,
        )


def get_email_sender() -> EmailSender:
    """Dependency returning the configured email sender."""
    api_key = settings.resend_api_key.get_secret_value()
    if api_key:
        return ResendEmailSender(api_key, settings.email_from)
    return LogEmailSender()


def mask_email(email: str) -> str:
    """Mask an address for display, e.g. ``ab***@example.com``.

    Args:
        email: Address to mask.

    Returns:
        First two characters of the local part, ``***``, then the domain.
    """
    local, sep, domain = email.partition("@")
    if not sep:
        return f"{local[:2]}***"
    return f"{local[:2]}***@{domain}"


def build_code_message(code: str, purpose: CodePurpose) -> EmailMessage:
    """Build the verification-code email for a purpose.

    Args:
        code: Six-digit code.
        purpose: What the code authorizes.

    Returns:
        Subject and body.
    """
    minutes = settings.verification_code_ttl_minutes
    body = (
        f"Your Photaro verification code is: {code}\n\n"
        f"Enter this code to {_CODE_ACTIONS[purpose]}. "
        f"It expires in {minutes} minutes and can be used once.\n\n"
        "If you didn't request this, you can safely ignore this email "
        "and consider changing your password."
    )
    return EmailMessage(subject=_CODE_SUBJECTS[purpose], body=body)


def build_password_reset_message(token: str) -> EmailMessage:
    """Build the password reset link email.

    Args:
        token: Reset token for the link's ``token`` query parameter.

    Returns:
        Subject and body.
    """
    params = urlencode({"token": token}, quote_via=quote)
    reset_url = f"{settings.frontend_url.rstrip('/')}/?{params}"
    body = (
        f"Click this link to reset your Photaro password:\n\n{reset_url}\n\n"
        f"This link expires in {settings.password_reset_ttl_minutes} minutes "
        "and can be used once. "
        "If you didn't request this, you can safely ignore this email."
    )
    return EmailMessage(subject="Reset your Photaro password", body=body)
