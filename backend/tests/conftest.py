import re
import uuid
from collections.abc import AsyncGenerator, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from photaro.core.auth import hash_password
from photaro.core.config import settings
from photaro.core.email import EmailSender
from photaro.core.errors import DeliveryFailedError
from photaro.core.rate_limiting import limiter
from photaro.models import Base, User, UserRole
from photaro.services.password_reset_store import PasswordResetStore
from photaro.services.revocation_store import InMemoryRevocationStore

# Test user IDs (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
TEST_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")

TEST_EMAIL = "test@example.com"
TEST_USERNAME = "testuser"
TEST_PASSWORD = "ValidP@ss1"  # nosec B105  # gitleaks:allow

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

_TEST_BCRYPT_ROUNDS = 4  # Low cost factor for fast tests

_CODE_RE = re.compile(r"\b(\d{6})\b")


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
    audience: str | None = None,
    jti: str | None = None,
) -> str:
    """Create a signed access token for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 15 minutes.
        iat: Issued-at time. Defaults to now.
        audience: aud claim. Defaults to settings.auth_audience.
        jti: Token id. Defaults to a random hex string.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": audience or settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(minutes=15)),
        "iat": iat or now,
        "jti": jti or uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(token: str) -> dict[str, str]:
    """Authorization header for a raw access token."""
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Email capture
# =============================================================================


@dataclass
class SentEmail:
    """One captured outbound message."""

    to_address: str
    subject: str
    body: str


class RecordingEmailSender(EmailSender):
    """Email sender that records messages instead of delivering them.

    Set ``fail`` to make every send raise DeliveryFailedError.
    """

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.fail = False

    async def send(self, to_address: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryFailedError()
        self.sent.append(SentEmail(to_address, subject, body))

    def last_to(self, address: str) -> SentEmail:
        """Most recent message sent to an address."""
        for message in reversed(self.sent):
            if message.to_address == address:
                return message
        msg = f"No email sent to {address}"
        raise AssertionError(msg)

    def last_code_to(self, address: str) -> str:
        """Six-digit code from the most recent message to an address."""
        match = _CODE_RE.search(self.last_to(address).body)
        if match is None:
            msg = f"No code in last email to {address}"
            raise AssertionError(msg)
        return match.group(1)


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def test_settings() -> Iterator[None]:
    """Fast, offline, deterministic settings for every test.

    - Known signing secret
    - Minimum bcrypt cost
    - No HIBP network calls
    - Cookies usable over plain http
    - Rate limiting off (tested separately)
    """
    original = {
        "auth_secret": settings.auth_secret,
        "bcrypt_rounds": settings.bcrypt_rounds,
        "password_breach_check_enabled": settings.password_breach_check_enabled,
        "auth_cookie_secure": settings.auth_cookie_secure,
    }
    original_limiter_enabled = limiter.enabled

    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.bcrypt_rounds = _TEST_BCRYPT_ROUNDS
    settings.password_breach_check_enabled = False
    settings.auth_cookie_secure = False
    limiter.enabled = False

    yield

    for name, value in original.items():
        setattr(settings, name, value)
    limiter.enabled = original_limiter_enabled


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a throwaway SQLite database with the full schema.

    File-backed so the app and the test hold separate connections.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'photaro_test.db'}", echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a regular user with TEST_PASSWORD."""
    user = User(
        id=TEST_USER_ID,
        username=TEST_USERNAME,
        email=TEST_EMAIL,
        password_hash=hash_password(TEST_PASSWORD),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> User:
    """Create an admin user with TEST_PASSWORD."""
    user = User(
        id=TEST_ADMIN_ID,
        username="adminuser",
        email="admin@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        role=UserRole.ADMIN.value,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create a second regular user (for uniqueness and admin tests)."""
    user = User(
        id=OTHER_USER_ID,
        username="otheruser",
        email="other@example.com",
        password_hash=hash_password(TEST_PASSWORD),
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def revocation_store() -> InMemoryRevocationStore:
    """Fresh in-memory revocation store."""
    return InMemoryRevocationStore()


@pytest.fixture
def reset_store() -> PasswordResetStore:
    """Fresh password reset store."""
    return PasswordResetStore()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    """Email sender that captures messages."""
    return RecordingEmailSender()


# =============================================================================
# API client
# =============================================================================


@pytest_asyncio.fixture
async def client(
    db_engine,
    revocation_store,
    reset_store,
    email_sender,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database and stores.

    No credentials are attached; tests add a bearer header or cookie as
    needed.

    Args:
        db_engine: Test database engine.
        revocation_store: Store injected in place of the singleton.
        reset_store: Store injected in place of the singleton.
        email_sender: Recording sender injected in place of Resend.

    Yields:
        AsyncClient for making API requests.
    """
    from photaro.core.database import get_db
    from photaro.core.email import get_email_sender
    from photaro.main import app
    from photaro.services.password_reset_store import get_password_reset_store
    from photaro.services.revocation_store import get_revocation_store

    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_revocation_store] = lambda: revocation_store
    app.dependency_overrides[get_password_reset_store] = lambda: reset_store
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_headers(test_user) -> dict[str, str]:  # noqa: ARG001 - ensures user exists
    """Bearer header for TEST_USER_ID."""
    return bearer(create_test_jwt(TEST_USER_ID))


@pytest.fixture
def admin_headers(test_admin) -> dict[str, str]:  # noqa: ARG001 - ensures admin exists
    """Bearer header for TEST_ADMIN_ID."""
    return bearer(create_test_jwt(TEST_ADMIN_ID))
