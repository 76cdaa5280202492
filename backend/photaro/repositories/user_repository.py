"""Repository for User CRUD operations.

Provides database access for the users table (the credential store).
Password hashing lives in core/auth.py; this module only persists hashes.
"""

import uuid
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.models.base import utcnow
from photaro.models.user import User, UserRole

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'role', 'created_at', or 'account_deleted_at'.
# - role: use set_role() so mass-assignment cannot escalate privileges
# - account_deleted_at: use soft_delete()
# 'email' is only written by the verified email-change flow.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "username",
        "email",
        "bio",
        "profile_picture",
        "password_hash",
        "last_password_change",
    }
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Soft-deleted accounts are returned too; callers decide how to treat
        them.

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> User | None:
        """Fetch a user by exact username.

        Args:
            db: Async database session.
            username: Username to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.username == username)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email_or_username(
        db: AsyncSession, *, email: str, username: str
    ) -> User | None:
        """Fetch any user holding either the email or the username.

        Used by signup to reject duplicates before hitting the unique
        constraints.

        Args:
            db: Async database session.
            email: Email address to check.
            username: Username to check.

        Returns:
            First matching User, or None if both are free.
        """
        stmt = (
            select(User)
            .where(
                or_(
                    User.email == email.strip().lower(),
                    User.username == username,
                )
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        username: str,
        email: str,
        password_hash: str,
    ) -> User:
        """Create a new user with the default User role.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            username: Unique username.
            email: User email address.
            password_hash: bcrypt hash.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email or username already exists.
        """
        user = User(
            username=username,
            email=email.strip().lower(),
            password_hash=password_hash,
            role=UserRole.USER.value,
            last_password_change=utcnow(),
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            if field == "email" and isinstance(value, str):
                value = value.strip().lower()
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def set_role(
        db: AsyncSession, user_id: uuid.UUID, *, role: UserRole
    ) -> User | None:
        """Set the role for a user.

        Separated from update() to prevent mass-assignment privilege
        escalation. Only call from explicit admin promotion paths.

        Args:
            db: Async database session.
            user_id: UUID of the user.
            role: New role.

        Returns:
            Updated User if found, None if user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        user.role = role.value
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def soft_delete(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Mark an account as deleted without removing the row.

        The row keeps its email and username, so both stay reserved.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            Updated User if found, None if user does not exist.
        """
        user = await db.get(User, user_id)
        if user is None:
            return None
        if user.account_deleted_at is None:
            user.account_deleted_at = utcnow()
            await db.flush()
            await db.refresh(user)
        return user

    @staticmethod
    async def list_users(
        db: AsyncSession, *, offset: int = 0, limit: int = 20
    ) -> tuple[list[User], int]:
        """List users ordered by creation time, newest first.

        Args:
            db: Async database session.
            offset: Rows to skip.
            limit: Maximum rows to return.

        Returns:
            Tuple of (users on this page, total user count).
        """
        total_result = await db.execute(select(func.count()).select_from(User))
        total = total_result.scalar_one()

        stmt = (
            select(User)
            .order_by(User.created_at.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total
