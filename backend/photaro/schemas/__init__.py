"""Pydantic request/response schemas for API endpoints."""

from photaro.schemas.user import (
    AdminUserResponse,
    CodeSentResponse,
    MessageResponse,
    SessionResponse,
    UserResponse,
)

__all__ = [
    "AdminUserResponse",
    "CodeSentResponse",
    "MessageResponse",
    "SessionResponse",
    "UserResponse",
]
