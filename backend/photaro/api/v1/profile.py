"""Profile endpoints for the authenticated user.

Profile fields are edited directly; the password and the email address
can only change through the code-gated flows in
services/verification_flow.py.

Password change:
    POST /request-password-verification -> (optional) POST /verify-code
    -> PUT /password

Email change:
    POST /request-email-verification   (code to current address)
    POST /verify-code purpose=email-change   (sends code to new address)
    PUT /email                          (with the new-address code)
"""

from typing import Literal

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.exc import IntegrityError

from photaro.api.deps import (
    AccessToken,
    AuthFlow,
    CurrentUser,
    DbSession,
    TokenClaims,
    VerificationFlow,
)
from photaro.core.auth import validate_username
from photaro.core.errors import ConflictError, ValidationError
from photaro.core.rate_limiting import limiter
from photaro.core.responses import DataResponse
from photaro.core.tokens import clear_auth_cookies
from photaro.models.verification_code import CodePurpose
from photaro.repositories.user_repository import UserRepository
from photaro.schemas.user import CodeSentResponse, MessageResponse, UserResponse

router = APIRouter()

_CODE_PATTERN = r"^\d{6}$"
_BIO_MAX_LENGTH = 500
_BLOCKED_URL_SCHEMES = ("javascript:", "data:")


# ===================================================================
# Request models
# ===================================================================


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /profile.

    Email is not accepted here; use the email-change flow.
    """

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(None, min_length=3, max_length=30)
    bio: str | None = Field(None, max_length=_BIO_MAX_LENGTH)
    profile_picture: str | None = Field(None, max_length=2048)

    @field_validator("profile_picture")
    @classmethod
    def _check_picture_url(cls, value: str | None) -> str | None:
        if not value:
            return value
        value = value.strip()
        lowered = value.lower()
        if lowered.startswith(_BLOCKED_URL_SCHEMES):
            msg = "Invalid URL scheme"
            raise ValueError(msg)
        if not lowered.startswith(("http://", "https://")):
            msg = "Profile picture must be an http(s) URL"
            raise ValueError(msg)
        return value


class DeleteAccountRequest(BaseModel):
    """Request body for DELETE /profile."""

    model_config = ConfigDict(extra="forbid")

    password: str = Field(min_length=1, max_length=128)


class EmailChangeRequest(BaseModel):
    """Request body for POST /profile/request-email-verification."""

    model_config = ConfigDict(extra="forbid")

    new_email: EmailStr


class VerifyCodeRequest(BaseModel):
    """Request body for POST /profile/verify-code."""

    model_config = ConfigDict(extra="forbid")

    code: str = Field(pattern=_CODE_PATTERN)
    purpose: Literal["password-change", "email-change", "email-change-new"]


class PasswordChangeRequest(BaseModel):
    """Request body for PUT /profile/password."""

    model_config = ConfigDict(extra="forbid")

    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)
    confirm_password: str = Field(min_length=1, max_length=128)
    code: str = Field(pattern=_CODE_PATTERN)


class EmailCompleteRequest(BaseModel):
    """Request body for PUT /profile/email."""

    model_config = ConfigDict(extra="forbid")

    new_email: EmailStr
    code: str = Field(pattern=_CODE_PATTERN)


# ===================================================================
# GET / PUT / DELETE /profile
# ===================================================================


@router.get("")
async def get_profile(user: CurrentUser) -> DataResponse[UserResponse]:
    """Return the authenticated user's profile."""
    return DataResponse(data=UserResponse.from_user(user))


@router.put("")
@limiter.limit("10/hour")
async def update_profile(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ProfileUpdateRequest,
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[UserResponse]:
    """Update username, bio, or profile picture.

    Rate limit: 10 per hour per user.
    """
    changes = body.model_dump(exclude_unset=True)
    if "username" in changes and changes["username"] is not None:
        changes["username"] = validate_username(changes["username"])
        if changes["username"] != user.username:
            holder = await UserRepository.get_by_username(db, changes["username"])
            if holder is not None:
                raise ConflictError(
                    code="USERNAME_TAKEN", message="Username already taken"
                )
    elif "username" in changes:
        raise ValidationError("Username cannot be empty")

    if changes:
        try:
            await UserRepository.update(db, user.id, **changes)
        except IntegrityError as exc:
            raise ConflictError(
                code="USERNAME_TAKEN", message="Username already taken"
            ) from exc
        await db.commit()

    return DataResponse(data=UserResponse.from_user(user))


@router.delete("")
@limiter.limit("1/day")
async def delete_account(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: DeleteAccountRequest,
    response: Response,
    user: CurrentUser,
    access_token: AccessToken,
    claims: TokenClaims,
    flow: AuthFlow,
    db: DbSession,
) -> DataResponse[MessageResponse]:
    """Soft-delete the account after password confirmation.

    Revokes the current access token and every refresh token.

    Rate limit: 1 per day per user.
    """
    await flow.delete_account(
        user,
        password=body.password,
        access_token=access_token,
        expires_at=claims.expires_at,
    )
    await db.commit()

    clear_auth_cookies(response)
    return DataResponse(data=MessageResponse(message="Account deleted"))


# ===================================================================
# Verification codes
# ===================================================================


@router.post("/request-password-verification")
@limiter.limit("5/hour")
async def request_password_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    user: CurrentUser,
    flow: VerificationFlow,
    db: DbSession,
) -> DataResponse[CodeSentResponse]:
    """Email a password-change code to the current address.

    Rate limit: 5 per hour per user.
    """
    sent_to = await flow.request_password_change_code(user)
    await db.commit()
    return DataResponse(
        data=CodeSentResponse(message="Verification code sent", sent_to=sent_to)
    )


@router.post("/request-email-verification")
@limiter.limit("5/hour")
async def request_email_verification(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailChangeRequest,
    user: CurrentUser,
    flow: VerificationFlow,
    db: DbSession,
) -> DataResponse[CodeSentResponse]:
    """Start an email change: code goes to the CURRENT address.

    Rate limit: 5 per hour per user.
    """
    sent_to = await flow.request_email_change_code(user, body.new_email)
    await db.commit()
    return DataResponse(
        data=CodeSentResponse(
            message="Verification code sent to your current email", sent_to=sent_to
        )
    )


@router.post("/verify-code")
@limiter.limit("5/hour")
async def verify_code(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: VerifyCodeRequest,
    user: CurrentUser,
    flow: VerificationFlow,
    db: DbSession,
) -> DataResponse[CodeSentResponse | MessageResponse]:
    """Check a code.

    For ``email-change`` this is the second step: the code is consumed and
    a new code is emailed to the pending address. For other purposes the
    code is only checked, not consumed.

    Rate limit: 5 per hour per user.
    """
    purpose = CodePurpose(body.purpose)
    if purpose is CodePurpose.EMAIL_CHANGE:
        sent_to = await flow.verify_current_email_code(user, body.code)
        await db.commit()
        return DataResponse(
            data=CodeSentResponse(
                message="Current email verified. A code was sent to your new email.",
                sent_to=sent_to,
            )
        )

    await flow.check_code(user, body.code, purpose)
    return DataResponse(data=MessageResponse(message="Code is valid"))


# ===================================================================
# PUT /profile/password, PUT /profile/email
# ===================================================================


@router.put("/password")
@limiter.limit("3/day")
async def change_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: PasswordChangeRequest,
    user: CurrentUser,
    flow: VerificationFlow,
    db: DbSession,
) -> DataResponse[MessageResponse]:
    """Change the password using a password-change code.

    Rate limit: 3 per day per user.
    """
    if body.new_password != body.confirm_password:
        raise ValidationError("Passwords do not match")

    await flow.change_password(
        user,
        current_password=body.current_password,
        new_password=body.new_password,
        code=body.code,
    )
    await db.commit()
    return DataResponse(data=MessageResponse(message="Password updated"))


@router.put("/email")
@limiter.limit("5/hour")
async def complete_email_change(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: EmailCompleteRequest,
    user: CurrentUser,
    flow: VerificationFlow,
    db: DbSession,
) -> DataResponse[UserResponse]:
    """Commit the new email using the code sent to the new address.

    Rate limit: 5 per hour per user.
    """
    updated = await flow.complete_email_change(
        user, new_email=body.new_email, code=body.code
    )
    await db.commit()
    return DataResponse(data=UserResponse.from_user(updated))
