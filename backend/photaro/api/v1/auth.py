"""Authentication endpoints.

signup, login, refresh-token, logout, forgot-password, reset-password, me.

Security considerations:
- login: constant-time comparison via dummy_hash() prevents user enumeration
- signup: bcrypt, password strength + HIBP breach check, uniqueness
- refresh-token: refresh token read from its HttpOnly cookie only
- logout: revokes the exact access token and deletes the refresh token
- forgot-password: identical response whether or not the email exists
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from photaro.api.deps import (
    AccessToken,
    AuthFlow,
    CurrentUser,
    DbSession,
    Mailer,
    TokenClaims,
)
from photaro.core.config import settings
from photaro.core.email import EmailSender, build_password_reset_message
from photaro.core.errors import DeliveryFailedError
from photaro.core.rate_limiting import limiter
from photaro.core.responses import DataResponse
from photaro.core.tokens import (
    clear_auth_cookies,
    set_access_cookie,
    set_refresh_cookie,
)
from photaro.schemas.user import MessageResponse, SessionResponse, UserResponse
from photaro.services.auth_flow import SessionTokens

logger = logging.getLogger(__name__)

router = APIRouter()

_ADMIN_DASHBOARD_PATH = "/admin"

_FORGOT_PASSWORD_MSG = (
    "If an account exists for that email, a password reset link has been sent."
)


# ===================================================================
# Request models
# ===================================================================


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot-password."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


# ===================================================================
# Helpers
# ===================================================================


def _session_response(session: SessionTokens, message: str) -> SessionResponse:
    is_admin = session.user.is_admin
    return SessionResponse(
        message="Admin login successful" if is_admin else message,
        access_token=session.access.token,
        expires_at=session.access.expires_at,
        user=UserResponse.from_user(session.user),
        is_admin=is_admin,
        admin_dashboard=_ADMIN_DASHBOARD_PATH if is_admin else None,
    )


def _set_session_cookies(response: Response, session: SessionTokens) -> None:
    set_access_cookie(response, session.access)
    set_refresh_cookie(response, session.refresh_token)


async def _send_reset_email(sender: EmailSender, to_address: str, token: str) -> None:
    """Background task: deliver the reset link, logging (not raising) failures."""
    message = build_password_reset_message(token)
    try:
        await sender.send(to_address, message.subject, message.body)
    except DeliveryFailedError:
        logger.warning("Password reset email could not be delivered")


# ===================================================================
# POST /auth/signup
# ===================================================================


@router.post("/signup", status_code=201)
@limiter.limit("3/hour")
async def signup(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: SignupRequest,
    response: Response,
    flow: AuthFlow,
    db: DbSession,
) -> DataResponse[SessionResponse]:
    """Create an account and open a session.

    Unauthenticated. Rejects duplicate usernames and emails with 409,
    including those held by deleted accounts.

    Rate limit: 3 per hour per IP.
    """
    session = await flow.signup(
        username=body.username, email=body.email, password=body.password
    )
    await db.commit()

    _set_session_cookies(response, session)
    return DataResponse(data=_session_response(session, "Signup successful"))


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit("5/15minute")
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    flow: AuthFlow,
    db: DbSession,
) -> DataResponse[SessionResponse]:
    """Verify email + password and open a session.

    Unauthenticated. The same 401 is returned for an unknown email and a
    wrong password. Admins get the same tokens; only the message and the
    informational flags differ.

    Rate limit: 5 per 15 minutes per IP.
    """
    session = await flow.login(email=body.email, password=body.password)
    await db.commit()

    _set_session_cookies(response, session)
    return DataResponse(data=_session_response(session, "Login successful"))


# ===================================================================
# POST /auth/refresh-token
# ===================================================================


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    flow: AuthFlow,
) -> DataResponse[SessionResponse]:
    """Mint a new access token from the refresh-token cookie.

    The refresh token is not rotated.
    """
    token = request.cookies.get(settings.refresh_cookie_name)
    user, access = await flow.refresh(token)

    set_access_cookie(response, access)
    return DataResponse(
        data=SessionResponse(
            message="Token refreshed",
            access_token=access.token,
            expires_at=access.expires_at,
            user=UserResponse.from_user(user),
            is_admin=user.is_admin,
            admin_dashboard=_ADMIN_DASHBOARD_PATH if user.is_admin else None,
        )
    )


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    access_token: AccessToken,
    claims: TokenClaims,
    flow: AuthFlow,
    db: DbSession,
) -> DataResponse[MessageResponse]:
    """Invalidate the presented access token and refresh token.

    Requires a currently valid access token.
    """
    await flow.logout(
        user_id=claims.user_id,
        access_token=access_token,
        expires_at=claims.expires_at,
        refresh_token=request.cookies.get(settings.refresh_cookie_name),
    )
    await db.commit()

    clear_auth_cookies(response)
    return DataResponse(
        data=MessageResponse(message="Logged out successfully. Session invalidated.")
    )


# ===================================================================
# POST /auth/forgot-password
# ===================================================================


@router.post("/forgot-password")
@limiter.limit("5/hour")
async def forgot_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    flow: AuthFlow,
    email_sender: Mailer,
) -> DataResponse[MessageResponse]:
    """Email a password reset link if the address is registered.

    The response is identical either way and the email is sent after the
    response, so neither body nor timing reveals whether the account exists.

    Rate limit: 5 per hour per IP.
    """
    result = await flow.forgot_password(body.email)
    if result is not None:
        user, token = result
        background_tasks.add_task(_send_reset_email, email_sender, user.email, token)

    return DataResponse(data=MessageResponse(message=_FORGOT_PASSWORD_MSG))


# ===================================================================
# POST /auth/reset-password
# ===================================================================


@router.post("/reset-password")
@limiter.limit("5/hour")
async def reset_password(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: ResetPasswordRequest,
    flow: AuthFlow,
    db: DbSession,
) -> DataResponse[MessageResponse]:
    """Set a new password using the token from the reset link.

    Every refresh token the account holds is revoked.

    Rate limit: 5 per hour per IP.
    """
    await flow.reset_password(token=body.token, new_password=body.new_password)
    await db.commit()

    return DataResponse(
        data=MessageResponse(
            message="Password has been reset successfully. You can now log in."
        )
    )


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def me(user: CurrentUser) -> DataResponse[UserResponse]:
    """Return the authenticated account."""
    return DataResponse(data=UserResponse.from_user(user))
