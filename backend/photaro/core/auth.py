"""Password and identity helpers shared by the auth and profile flows.

Pipeline:
- hash_password / verify_password: bcrypt hashing and comparison
- validate_password_strength: Format rules (sync, no network)
- validate_username: Username format rules
- check_password_breached: HIBP k-anonymity check (async, network)
- dummy_hash: Timing-safe stand-in for user enumeration defense
"""

import hashlib
import logging
import re
from functools import lru_cache

import bcrypt
import httpx

from photaro.core.config import settings
from photaro.core.errors import ValidationError

logger = logging.getLogger(__name__)

# HIBP API timeout in seconds
_HIBP_TIMEOUT = 5.0

_MIN_PASSWORD_LENGTH = 8
_MAX_PASSWORD_LENGTH = 128
_PASSWORD_SPECIALS = "@$!%*?&"

_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")

# bcrypt only reads the first 72 bytes; newer releases reject longer input.
_BCRYPT_MAX_BYTES = 72

_DUMMY_PASSWORD = b"photaro-no-such-account"  # nosec B105


def _encode(password: str) -> bytes:
    return password.encode()[:_BCRYPT_MAX_BYTES]


@lru_cache(maxsize=4)
def dummy_hash(rounds: int) -> bytes:
    """Hash checked against when the account does not exist.

    Built at the same cost as real hashes so a lookup for an unknown email
    takes as long as a wrong password. Cached per cost factor.
    """
    return bcrypt.hashpw(_DUMMY_PASSWORD, bcrypt.gensalt(rounds=rounds))


def hash_password(password: str) -> str:
    """Hash a password with bcrypt at the configured cost factor.

    Args:
        password: Plain-text password.

    Returns:
        bcrypt hash as a string.
    """
    return bcrypt.hashpw(
        _encode(password), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode()


def verify_password(password: str, password_hash: str | None) -> bool:
    """Compare a password against a stored hash.

    Always runs one bcrypt comparison, against dummy_hash() when there is no
    stored hash, so misses cost the same time as mismatches.

    Args:
        password: Plain-text password.
        password_hash: Stored bcrypt hash, or None for an unknown account.

    Returns:
        True only if the password matches a real stored hash.
    """
    if password_hash is None:
        bcrypt.checkpw(_encode(password), dummy_hash(settings.bcrypt_rounds))
        return False
    return bcrypt.checkpw(_encode(password), password_hash.encode())


def validate_password_strength(password: str) -> None:
    """Validate password meets strength requirements.

    8-128 chars with at least one uppercase letter, one lowercase letter,
    one digit and one of @$!%*?&.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise ValidationError("Password must be at least 8 characters")
    if len(password) > _MAX_PASSWORD_LENGTH:
        raise ValidationError("Password must be at most 128 characters")
    if not re.search(r"[a-z]", password):
        raise ValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        raise ValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one number")
    if not any(ch in _PASSWORD_SPECIALS for ch in password):
        raise ValidationError(
            f"Password must contain at least one special character ({_PASSWORD_SPECIALS})"
        )


def validate_username(username: str) -> str:
    """Validate and normalize a username.

    Args:
        username: Raw username from the request.

    Returns:
        The trimmed username.

    Raises:
        ValidationError: If the username is not 3-30 letters, digits,
            underscores or hyphens.
    """
    username = username.strip()
    if not _USERNAME_PATTERN.match(username):
        raise ValidationError(
            "Username must be 3-30 characters: letters, numbers, underscores, and hyphens"
        )
    return username


async def _fetch_hibp_range(prefix: str) -> str | None:
    """Fetch HIBP range response for a SHA-1 prefix.

    Uses k-anonymity: only the first 5 chars of the SHA-1 hash are sent.
    The API returns all suffixes matching that prefix, and we check locally.

    Args:
        prefix: First 5 chars of SHA-1 hex digest (uppercase).

    Returns:
        Response text or None on error.
    """
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"https://api.pwnedpasswords.com/range/{prefix}",
                headers={"Add-Padding": "true"},
                timeout=_HIBP_TIMEOUT,
            )
            response.raise_for_status()
            return response.text
    except httpx.HTTPError:
        logger.warning("HIBP API request failed")
        return None


async def check_password_breached(password: str) -> bool:
    """Check if password appears in HIBP breach database.

    Only the first 5 characters of the SHA-1 hash are sent to HIBP. The
    full hash never leaves the server.

    Fails open: if HIBP is unavailable, allows the password. Returns False
    without a network call when the check is disabled in settings.

    Args:
        password: Plain-text password to check.

    Returns:
        True if password found in breach database, False otherwise.
    """
    if not settings.password_breach_check_enabled:
        return False

    sha1 = hashlib.sha1(password.encode()).hexdigest().upper()  # nosec B324
    prefix = sha1[:5]
    suffix = sha1[5:]

    text = await _fetch_hibp_range(prefix)
    if text is None:
        return False

    for line in text.splitlines():
        parts = line.split(":")
        if len(parts) == 2 and parts[0] == suffix:
            return True

    return False
