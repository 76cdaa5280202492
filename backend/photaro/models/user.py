"""User model - the credential store record.

Holds identity, bcrypt password hash, role, profile fields, and the
soft-delete marker. Email and username are unique across all rows,
including soft-deleted accounts.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photaro.models.base import Base, SoftDeleteMixin, TimestampMixin, utcnow

if TYPE_CHECKING:
    from photaro.models.refresh_token import RefreshToken
    from photaro.models.verification_code import VerificationCode

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


class UserRole(str, Enum):
    """Account role. Exactly two values; no hierarchy is implied."""

    USER = "User"
    ADMIN = "Admin"


class User(Base, TimestampMixin, SoftDeleteMixin):
    """User account for authentication.

    Attributes:
        id: UUID primary key.
        username: Unique username (3-30 chars).
        email: Unique email address, stored lowercase.
        password_hash: bcrypt hash.
        role: "User" or "Admin".
        bio: Optional profile text.
        profile_picture: Optional image URL.
        last_password_change: When the password was last set.
        account_deleted_at: Soft-delete timestamp (from SoftDeleteMixin).
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    username: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=UserRole.USER.value,
        server_default=UserRole.USER.value,
    )
    bio: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    profile_picture: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    last_password_change: Mapped[datetime] = mapped_column(
        nullable=False,
        default=utcnow,
    )

    # Relationships
    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
    )
    verification_codes: Mapped[list["VerificationCode"]] = relationship(
        "VerificationCode",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
    )

    @property
    def is_admin(self) -> bool:
        """True when the persisted role is Admin."""
        return self.role == UserRole.ADMIN.value
