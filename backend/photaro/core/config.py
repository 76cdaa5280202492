"""Application configuration loaded from environment variables.

Database, CORS, token lifetimes, auth cookies, the revocation store, and
email delivery. Values come from the environment or a local .env file.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development-only database password; refused in production.
_INSECURE_DEFAULT_PASSWORD = "photaro_dev_password"  # nosec B105

# 256 bits
_MIN_AUTH_SECRET_LENGTH = 32

_LIFETIME_FIELDS = (
    "access_token_ttl_minutes",
    "refresh_token_ttl_days",
    "verification_code_ttl_minutes",
    "password_reset_ttl_minutes",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "photaro"
    database_user: str = "photaro_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS. Credentials are allowed, so "*" is rejected below.
    allowed_origins: list[str] = ["http://localhost:3000"]

    environment: str = "development"

    # Tokens and credentials
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "photaro"
    auth_audience: str = "photaro"
    access_token_ttl_minutes: int = 15
    refresh_token_ttl_days: int = 30
    verification_code_ttl_minutes: int = 15
    password_reset_ttl_minutes: int = 60
    bcrypt_rounds: int = 12
    password_breach_check_enabled: bool = True

    # Cookies: access token mirrors the bearer header for same-origin flows,
    # refresh token is cookie-only and scoped to the auth routes.
    access_cookie_name: str = "photaro.access-token"
    refresh_cookie_name: str = "photaro.refresh-token"
    refresh_cookie_path: str = "/api/v1/auth"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # Revocation store. Empty = in-process store (single instance only).
    redis_url: str = ""
    revocation_key_prefix: str = "photaro:revoked:"

    # Email (Resend). Empty API key = log-only sender for local development.
    email_from: str = "Photaro <noreply@photaro.com>"
    resend_api_key: SecretStr = SecretStr("")

    # Password reset links point here
    frontend_url: str = "http://localhost:3000"

    rate_limit_enabled: bool = True

    # In-process sweep of expired revocations and reset tokens; 0 disables.
    credential_sweep_interval_minutes: int = 60

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_consistency(self) -> "Settings":
        """Reject combinations that are broken in every environment."""
        for name in _LIFETIME_FIELDS:
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive, got {value}"
                raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS cannot contain '*': auth cookies are sent "
                "with credentials and browsers refuse wildcard origins for those."
            )
            raise ValueError(msg)

        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none; "
                "browsers drop SameSite=None cookies that are not Secure."
            )
            raise ValueError(msg)

        return self

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Refuse development secrets when ENVIRONMENT=production."""
        if self.environment != "production":
            return self

        if self.database_password == _INSECURE_DEFAULT_PASSWORD:
            msg = "DATABASE_PASSWORD is still the development default"
            raise ValueError(msg)

        if len(self.auth_secret.get_secret_value()) < _MIN_AUTH_SECRET_LENGTH:
            msg = (
                f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                "characters in production (try: openssl rand -hex 32)"
            )
            raise ValueError(msg)

        return self


settings = Settings()
