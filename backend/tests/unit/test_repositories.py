"""Tests for the user, refresh token, and verification code repositories."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from photaro.core.errors import (
    ConflictError,
    InternalError,
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
)
from photaro.models import CodePurpose, RefreshToken, User, UserRole, VerificationCode
from photaro.models.base import utcnow
from photaro.repositories.refresh_token_repository import RefreshTokenRepository
from photaro.repositories.user_repository import UserRepository
from photaro.repositories.verification_code_repository import (
    VerificationCodeRepository,
)
from tests.conftest import TEST_EMAIL, TEST_USER_ID, TEST_USERNAME

_GENERATE_CODE = "photaro.repositories.verification_code_repository._generate_code"


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


# ===================================================================
# UserRepository
# ===================================================================


class TestUserRepository:
    """Tests for UserRepository."""

    async def test_create_normalizes_email(self, db_session):
        """Email is stored lowercase; role defaults to User."""
        user = await UserRepository.create(
            db_session,
            username="jane",
            email="  Jane@Example.COM ",
            password_hash="$2b$04$hash",
        )
        assert user.email == "jane@example.com"
        assert user.role == UserRole.USER.value
        assert user.account_deleted_at is None
        assert user.last_password_change is not None

    async def test_get_by_email_is_case_insensitive(self, db_session, test_user):
        """Lookup lowercases the input."""
        found = await UserRepository.get_by_email(db_session, "TEST@example.com")
        assert found is not None
        assert found.id == test_user.id

    async def test_get_by_email_or_username(self, db_session, test_user):
        """Either identifier finds the holder."""
        by_email = await UserRepository.get_by_email_or_username(
            db_session, email=TEST_EMAIL, username="someone-else"
        )
        by_name = await UserRepository.get_by_email_or_username(
            db_session, email="free@example.com", username=TEST_USERNAME
        )
        neither = await UserRepository.get_by_email_or_username(
            db_session, email="free@example.com", username="free-name"
        )
        assert by_email.id == test_user.id
        assert by_name.id == test_user.id
        assert neither is None

    async def test_update_rejects_role(self, db_session, test_user):
        """role is not mass-assignable."""
        with pytest.raises(ValueError, match="role"):
            await UserRepository.update(db_session, test_user.id, role="Admin")

    async def test_update_fields(self, db_session, test_user):
        """Allowed fields are written; email is lowercased."""
        updated = await UserRepository.update(
            db_session, test_user.id, bio="hello", email="NEW@example.com"
        )
        assert updated.bio == "hello"
        assert updated.email == "new@example.com"

    async def test_set_role(self, db_session, test_user):
        """set_role writes the persisted role."""
        updated = await UserRepository.set_role(
            db_session, test_user.id, role=UserRole.ADMIN
        )
        assert updated.role == "Admin"
        assert updated.is_admin is True

    async def test_soft_delete_keeps_row(self, db_session, test_user):
        """Soft delete sets the marker and keeps the identifiers."""
        deleted = await UserRepository.soft_delete(db_session, test_user.id)
        assert deleted.is_deleted is True
        found = await UserRepository.get_by_email(db_session, TEST_EMAIL)
        assert found is not None
        assert found.is_deleted is True

    async def test_missing_user(self, db_session):
        """Writes on an unknown id return None."""
        assert await UserRepository.update(db_session, TEST_USER_ID, bio="x") is None
        assert await UserRepository.set_role(
            db_session, TEST_USER_ID, role=UserRole.ADMIN
        ) is None
        assert await UserRepository.soft_delete(db_session, TEST_USER_ID) is None

    async def test_list_users_paginates(self, db_session, test_user, other_user):  # noqa: ARG002
        """Total counts all rows; limit bounds the page."""
        users, total = await UserRepository.list_users(db_session, offset=0, limit=1)
        assert total == 2
        assert len(users) == 1


# ===================================================================
# RefreshTokenRepository
# ===================================================================


class TestRefreshTokenRepository:
    """Tests for RefreshTokenRepository."""

    async def test_mint_and_redeem(self, db_session, test_user):
        """A minted token is 128 hex chars and redeems to its owner."""
        token = await RefreshTokenRepository.mint(db_session, test_user.id)
        assert len(token) == 128
        int(token, 16)
        assert await RefreshTokenRepository.redeem(db_session, token) == test_user.id

    async def test_redeem_does_not_rotate(self, db_session, test_user):
        """The same token redeems repeatedly."""
        token = await RefreshTokenRepository.mint(db_session, test_user.id)
        await RefreshTokenRepository.redeem(db_session, token)
        await RefreshTokenRepository.redeem(db_session, token)
        assert await _count(db_session, RefreshToken) == 1

    async def test_many_tokens_per_user(self, db_session, test_user):
        """Each mint adds a row; earlier tokens stay valid."""
        first = await RefreshTokenRepository.mint(db_session, test_user.id)
        second = await RefreshTokenRepository.mint(db_session, test_user.id)
        assert first != second
        assert await RefreshTokenRepository.redeem(db_session, first) == test_user.id
        assert await RefreshTokenRepository.redeem(db_session, second) == test_user.id

    async def test_unknown_token(self, db_session):
        """Unknown token is not found."""
        with pytest.raises(RefreshTokenNotFoundError):
            await RefreshTokenRepository.redeem(db_session, "f" * 128)

    async def test_expired_token_is_rejected_but_kept(self, db_session, test_user):
        """Expired tokens fail redemption and stay until cleanup."""
        token = await RefreshTokenRepository.mint(db_session, test_user.id)
        await db_session.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token)
            .values(expires=utcnow() - timedelta(seconds=1))
        )
        with pytest.raises(RefreshTokenExpiredError):
            await RefreshTokenRepository.redeem(db_session, token)
        assert await _count(db_session, RefreshToken) == 1

    async def test_revoke_exact_is_idempotent(self, db_session, test_user):
        """Deleting an already-deleted token reports False."""
        token = await RefreshTokenRepository.mint(db_session, test_user.id)
        revoke = RefreshTokenRepository.revoke_exact
        assert await revoke(db_session, token, test_user.id) is True
        assert await revoke(db_session, token, test_user.id) is False
        with pytest.raises(RefreshTokenNotFoundError):
            await RefreshTokenRepository.redeem(db_session, token)

    async def test_revoke_exact_requires_owner(self, db_session, test_user, other_user):
        """Another user's token is not deleted."""
        token = await RefreshTokenRepository.mint(db_session, test_user.id)
        assert (
            await RefreshTokenRepository.revoke_exact(db_session, token, other_user.id)
            is False
        )
        assert await RefreshTokenRepository.redeem(db_session, token) == test_user.id

    async def test_revoke_all_for_user(self, db_session, test_user, other_user):
        """Only the given user's tokens are removed."""
        await RefreshTokenRepository.mint(db_session, test_user.id)
        await RefreshTokenRepository.mint(db_session, test_user.id)
        keep = await RefreshTokenRepository.mint(db_session, other_user.id)

        assert await RefreshTokenRepository.revoke_all_for_user(
            db_session, test_user.id
        ) == 2
        assert await RefreshTokenRepository.redeem(db_session, keep) == other_user.id

    async def test_delete_expired(self, db_session, test_user):
        """Cleanup removes only expired rows."""
        stale = await RefreshTokenRepository.mint(db_session, test_user.id)
        live = await RefreshTokenRepository.mint(db_session, test_user.id)
        await db_session.execute(
            update(RefreshToken)
            .where(RefreshToken.token == stale)
            .values(expires=utcnow() - timedelta(days=1))
        )
        assert await RefreshTokenRepository.delete_expired(db_session) == 1
        assert await RefreshTokenRepository.redeem(db_session, live) == test_user.id


# ===================================================================
# VerificationCodeRepository
# ===================================================================


class TestVerificationCodeRepository:
    """Tests for VerificationCodeRepository."""

    async def _issue(self, db, user: User, purpose=CodePurpose.PASSWORD_CHANGE, **kw):
        return await VerificationCodeRepository.issue(
            db, user_id=user.id, email=user.email, purpose=purpose, **kw
        )

    async def test_issue_returns_six_digits(self, db_session, test_user):
        """Codes are six ASCII digits with expiry in the future."""
        code = await self._issue(db_session, test_user)
        assert len(code) == 6
        assert code.isdigit()
        record = await VerificationCodeRepository.peek(
            db_session,
            user_id=test_user.id,
            code=code,
            purpose=CodePurpose.PASSWORD_CHANGE,
        )
        assert record is not None
        assert record.email == TEST_EMAIL
        assert record.expires > utcnow() + timedelta(minutes=14)

    async def test_new_code_replaces_old(self, db_session, test_user):
        """Re-issuing for the same purpose invalidates the earlier code."""
        with patch(_GENERATE_CODE, side_effect=["111111", "222222"]):
            first = await self._issue(db_session, test_user)
            second = await self._issue(db_session, test_user)

        assert await VerificationCodeRepository.peek(
            db_session,
            user_id=test_user.id,
            code=first,
            purpose=CodePurpose.PASSWORD_CHANGE,
        ) is None
        assert await VerificationCodeRepository.peek(
            db_session,
            user_id=test_user.id,
            code=second,
            purpose=CodePurpose.PASSWORD_CHANGE,
        ) is not None
        assert await _count(db_session, VerificationCode) == 1

    async def test_purposes_are_independent(self, db_session, test_user):
        """A code for one purpose does not replace or satisfy another."""
        with patch(_GENERATE_CODE, side_effect=["111111", "222222"]):
            pw_code = await self._issue(db_session, test_user)
            await self._issue(
                db_session,
                test_user,
                purpose=CodePurpose.EMAIL_CHANGE,
                new_email="new@example.com",
            )

        assert await _count(db_session, VerificationCode) == 2
        assert await VerificationCodeRepository.peek(
            db_session,
            user_id=test_user.id,
            code=pw_code,
            purpose=CodePurpose.EMAIL_CHANGE,
        ) is None

    async def test_code_is_bound_to_user(self, db_session, test_user, other_user):
        """Another user cannot use your code."""
        code = await self._issue(db_session, test_user)
        assert await VerificationCodeRepository.consume(
            db_session,
            user_id=other_user.id,
            code=code,
            purpose=CodePurpose.PASSWORD_CHANGE,
        ) is False

    async def test_consume_is_single_use(self, db_session, test_user):
        """consume() succeeds once."""
        code = await self._issue(db_session, test_user)
        kwargs = {
            "user_id": test_user.id,
            "code": code,
            "purpose": CodePurpose.PASSWORD_CHANGE,
        }
        assert await VerificationCodeRepository.peek(db_session, **kwargs) is not None
        assert await VerificationCodeRepository.consume(db_session, **kwargs) is True
        assert await VerificationCodeRepository.consume(db_session, **kwargs) is False
        assert await VerificationCodeRepository.peek(db_session, **kwargs) is None

    async def test_expired_code(self, db_session, test_user):
        """Expired codes can be neither peeked nor consumed, and get swept."""
        code = await self._issue(db_session, test_user)
        await db_session.execute(
            update(VerificationCode).values(expires=utcnow() - timedelta(seconds=1))
        )
        kwargs = {
            "user_id": test_user.id,
            "code": code,
            "purpose": CodePurpose.PASSWORD_CHANGE,
        }
        assert await VerificationCodeRepository.peek(db_session, **kwargs) is None
        assert await VerificationCodeRepository.consume(db_session, **kwargs) is False
        assert await VerificationCodeRepository.delete_expired(db_session) == 1

    async def test_collision_retries(self, db_session, test_user, other_user):
        """A code value already held elsewhere is skipped."""
        with patch(_GENERATE_CODE, side_effect=["333333", "333333", "444444"]):
            taken = await self._issue(db_session, other_user)
            code = await self._issue(db_session, test_user)
        assert taken == "333333"
        assert code == "444444"

    async def test_insert_collision_redraws(self, db_session, test_user, other_user):
        """A value claimed after the free-check is redrawn, not reported."""
        with db_session.no_autoflush, patch(
            _GENERATE_CODE, side_effect=["123456", "654321"]
        ) as generate:
            # Not yet flushed, so the free-check cannot see it.
            db_session.add(
                VerificationCode(
                    user_id=other_user.id,
                    email=other_user.email,
                    code="123456",
                    purpose=CodePurpose.PASSWORD_CHANGE.value,
                    expires=utcnow() + timedelta(minutes=15),
                )
            )
            code = await self._issue(db_session, test_user)

        assert code == "654321"
        assert generate.call_count == 2
        assert await VerificationCodeRepository.peek(
            db_session,
            user_id=test_user.id,
            code="654321",
            purpose=CodePurpose.PASSWORD_CHANGE,
        ) is not None

    async def test_same_purpose_race_conflicts(self, db_session, test_user):
        """A concurrent code for the same (user, purpose) is a 409."""
        with db_session.no_autoflush, patch(_GENERATE_CODE, return_value="777777"):
            db_session.add(
                VerificationCode(
                    user_id=test_user.id,
                    email=test_user.email,
                    code="888888",
                    purpose=CodePurpose.PASSWORD_CHANGE.value,
                    expires=utcnow() + timedelta(minutes=15),
                )
            )
            with pytest.raises(ConflictError) as exc_info:
                await self._issue(db_session, test_user)

        assert exc_info.value.code == "CODE_ISSUE_CONFLICT"

    async def test_collision_exhaustion(self, db_session, test_user, other_user):
        """A persistently colliding generator gives up with an internal error."""
        with patch(_GENERATE_CODE, return_value="555555"):
            await self._issue(db_session, other_user)
            with pytest.raises(InternalError):
                await self._issue(db_session, test_user)

    async def test_new_email_is_normalized(self, db_session, test_user):
        """Pending address is stored lowercase."""
        code = await self._issue(
            db_session,
            test_user,
            purpose=CodePurpose.EMAIL_CHANGE,
            new_email=" New@Example.com ",
        )
        record = await VerificationCodeRepository.peek(
            db_session,
            user_id=test_user.id,
            code=code,
            purpose=CodePurpose.EMAIL_CHANGE,
        )
        assert record.new_email == "new@example.com"
