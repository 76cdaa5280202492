"""Refresh token model - long-lived opaque session credentials.

Many rows per user may coexist (one per login/signup). Rows are deleted at
logout or account deletion; expired rows stay until the cleanup job runs.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photaro.models.base import Base, utcnow

if TYPE_CHECKING:
    from photaro.models.user import User


class RefreshToken(Base):
    """Opaque refresh token bound to a user.

    Attributes:
        id: UUID primary key.
        user_id: Owning user.
        token: Raw random token (128 hex chars).
        expires: Absolute expiry timestamp.
        created_at: When the token was minted.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
    )
    expires: Mapped[datetime] = mapped_column(
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="refresh_tokens")
