"""Verification code model - short-lived one-time email codes.

Single-use, time-limited, typed by purpose. At most one live row per
(user_id, purpose), enforced by a unique constraint; code values are
unique across the whole table.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photaro.models.base import Base, utcnow

if TYPE_CHECKING:
    from photaro.models.user import User


class CodePurpose(str, Enum):
    """What a verification code authorizes."""

    PASSWORD_CHANGE = "password-change"
    EMAIL_CHANGE = "email-change"
    EMAIL_CHANGE_NEW = "email-change-new"


class VerificationCode(Base):
    """Six-digit one-time code sent by email.

    Attributes:
        id: UUID primary key.
        user_id: Owning user.
        email: Address the code was sent to.
        code: Six ASCII digits.
        purpose: One of CodePurpose values.
        new_email: Pending new address (email-change flows only).
        expires: Absolute expiry timestamp.
        created_at: When the code was issued.
    """

    __tablename__ = "verification_codes"
    __table_args__ = (
        UniqueConstraint("code", name="uq_verification_codes_code"),
        UniqueConstraint(
            "user_id", "purpose", name="uq_verification_codes_user_purpose"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
    )
    purpose: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    new_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    expires: Mapped[datetime] = mapped_column(
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="verification_codes")
