"""User-facing schemas shared by auth, profile, and admin endpoints.

The password hash never appears in any response model.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from photaro.models.user import User, UserRole


class UserResponse(BaseModel):
    """Public view of an account.

    Attributes:
        id: UUID as string.
        username: Username.
        email: Email address.
        role: "User" or "Admin".
        bio: Profile text or None.
        profile_picture: Image URL or None.
        created_at: Account creation timestamp.
        last_password_change: When the password was last set.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    username: str
    email: str
    role: UserRole
    bio: str | None = None
    profile_picture: str | None = None
    created_at: datetime
    last_password_change: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build from an ORM user."""
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            role=UserRole(user.role),
            bio=user.bio,
            profile_picture=user.profile_picture,
            created_at=user.created_at,
            last_password_change=user.last_password_change,
        )


class AdminUserResponse(UserResponse):
    """Admin listing item; adds the soft-delete marker.

    Attributes:
        account_deleted_at: When the account was deleted, or None.
    """

    account_deleted_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "AdminUserResponse":
        """Build from an ORM user."""
        base = UserResponse.from_user(user).model_dump()
        return cls(**base, account_deleted_at=user.account_deleted_at)


class SessionResponse(BaseModel):
    """Body returned by signup, login, and refresh.

    The refresh token travels only in its cookie and is never included here.

    Attributes:
        message: Human-readable outcome.
        access_token: Bearer token (also set as a cookie).
        expires_at: Access token expiry.
        user: The authenticated account.
        is_admin: Informational role flag for the client.
        admin_dashboard: Client route for admins, else None.
    """

    model_config = ConfigDict(extra="forbid")

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse
    is_admin: bool = False
    admin_dashboard: str | None = None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class CodeSentResponse(BaseModel):
    """Acknowledgement that a verification code was emailed.

    Attributes:
        message: Human-readable outcome.
        sent_to: Masked destination address.
    """

    message: str
    sent_to: str
