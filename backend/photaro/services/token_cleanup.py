"""Sweep expired credentials.

Expired refresh tokens and verification codes are never deleted on the
request path (refresh only rejects them), so they accumulate until this
runs. The in-process revocation and reset stores are swept too.

Run periodically, e.g. via backend/scripts/cleanup_expired_tokens.py.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from photaro.repositories.refresh_token_repository import RefreshTokenRepository
from photaro.repositories.verification_code_repository import (
    VerificationCodeRepository,
)
from photaro.services.password_reset_store import PasswordResetStore
from photaro.services.revocation_store import RevocationStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """Counts of removed entries per store."""

    refresh_tokens: int = 0
    verification_codes: int = 0
    revoked_access_tokens: int = 0
    reset_tokens: int = 0


async def cleanup_expired_credentials(
    db: AsyncSession,
    *,
    revocation_store: RevocationStore | None = None,
    reset_store: PasswordResetStore | None = None,
) -> CleanupResult:
    """Delete expired rows and evict expired in-memory entries.

    Does not commit; the caller owns the transaction.

    Args:
        db: Async database session.
        revocation_store: Store to evict from, if any.
        reset_store: Reset store to sweep, if any.

    Returns:
        CleanupResult with per-store counts.
    """
    result = CleanupResult(
        refresh_tokens=await RefreshTokenRepository.delete_expired(db),
        verification_codes=await VerificationCodeRepository.delete_expired(db),
    )
    if revocation_store is not None:
        result.revoked_access_tokens = await revocation_store.evict_expired()
    if reset_store is not None:
        result.reset_tokens = reset_store.cleanup_expired()

    logger.info(
        "Credential cleanup: %d refresh tokens, %d verification codes, "
        "%d revoked access tokens, %d reset tokens",
        result.refresh_tokens,
        result.verification_codes,
        result.revoked_access_tokens,
        result.reset_tokens,
    )
    return result
