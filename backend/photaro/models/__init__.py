"""SQLAlchemy ORM models for Photaro.

All models are exported from this module for convenient imports:
    from photaro.models import User, RefreshToken, VerificationCode

Models:
- user.py: User, UserRole (credential store)
- refresh_token.py: RefreshToken
- verification_code.py: VerificationCode, CodePurpose (one-time codes)
"""

from photaro.models.base import Base, SoftDeleteMixin, TimestampMixin
from photaro.models.refresh_token import RefreshToken
from photaro.models.user import User, UserRole
from photaro.models.verification_code import CodePurpose, VerificationCode

__all__ = [
    "Base",
    "CodePurpose",
    "RefreshToken",
    "SoftDeleteMixin",
    "TimestampMixin",
    "User",
    "UserRole",
    "VerificationCode",
]
