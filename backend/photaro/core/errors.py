"""API error classes.

Every failure the auth core can report maps to one of these classes. The
exception handlers in main.py turn them into the standard error envelope.
Services and repositories raise these without knowing about HTTP.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for malformed input caught before any store is touched.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(
        self,
        message: str = "Authentication required",
        code: str = "UNAUTHORIZED",
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=401,
        )


class InvalidCredentialsError(UnauthorizedError):
    """Email/password mismatch (401).

    The same message is used for unknown emails and wrong passwords so
    callers cannot tell which one failed (account enumeration defense).
    """

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message=message, code="INVALID_CREDENTIALS")


class TokenError(UnauthorizedError):
    """Access token rejected (401). Base for the three failure kinds."""


class TokenMalformedError(TokenError):
    """Token could not be parsed or its signature/claims did not check out."""

    def __init__(self) -> None:
        super().__init__(message="Invalid token", code="TOKEN_MALFORMED")


class TokenExpiredError(TokenError):
    """Token is past its expiry."""

    def __init__(self) -> None:
        super().__init__(message="Token expired", code="TOKEN_EXPIRED")


class TokenRevokedError(TokenError):
    """Exact token string was revoked (logout or account deletion)."""

    def __init__(self) -> None:
        super().__init__(
            message="Session has been invalidated. Please log in again.",
            code="TOKEN_REVOKED",
        )


class RefreshTokenNotFoundError(UnauthorizedError):
    """Refresh token missing or unknown (401)."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid refresh token", code="REFRESH_TOKEN_NOT_FOUND"
        )


class RefreshTokenExpiredError(UnauthorizedError):
    """Refresh token is past its expiry (401)."""

    def __init__(self) -> None:
        super().__init__(message="Refresh token expired", code="REFRESH_TOKEN_EXPIRED")


class InvalidCodeError(APIError):
    """One-time code is wrong, expired, or already consumed (400)."""

    def __init__(self, message: str = "Invalid or expired verification code") -> None:
        super().__init__(
            code="INVALID_CODE",
            message=message,
            status_code=400,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but user lacks permission.
    """

    def __init__(self, message: str = "Access denied", code: str = "FORBIDDEN") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=403,
        )


class AccountDeletedError(ForbiddenError):
    """Account was soft-deleted (403)."""

    def __init__(self) -> None:
        super().__init__(message="Account has been deleted", code="ACCOUNT_DELETED")


class AdminRequiredError(ForbiddenError):
    """Admin access required (403).

    Raised by the role gate when the caller's persisted role is not Admin.
    """

    def __init__(self) -> None:
        super().__init__(message="Admin access required", code="ADMIN_REQUIRED")


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Use for duplicate usernames/emails and concurrent-write collisions.
    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class DeliveryFailedError(APIError):
    """Outbound email could not be delivered (502).

    Kept distinct from validation errors so clients can offer a retry.
    """

    def __init__(self, message: str = "Failed to send verification email") -> None:
        super().__init__(
            code="DELIVERY_FAILED",
            message=message,
            status_code=502,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
