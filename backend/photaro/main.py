"""Photaro API application.

Wires the v1 routers, error envelopes, rate limiting, CORS, and the
response headers every auth response needs. Run with:

    uvicorn photaro.main:app
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from photaro.api.v1.router import router as v1_router
from photaro.core.config import settings
from photaro.core.database import async_session_factory, engine
from photaro.core.errors import APIError
from photaro.core.rate_limiting import limiter, rate_limit_exceeded_handler
from photaro.core.responses import ErrorDetail, ErrorResponse
from photaro.services.credential_sweeper import CredentialSweeper
from photaro.services.password_reset_store import get_password_reset_store
from photaro.services.revocation_store import get_revocation_store

logger = structlog.get_logger()

_BASE_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}
_HSTS = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp hardening headers on every response.

    API responses also get ``Cache-Control: no-store`` since they carry
    tokens and profile data. HSTS is only sent in production, where TLS
    terminates at the proxy.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers.update(_BASE_HEADERS)
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = _HSTS
        return response


def _envelope(
    status_code: int,
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError with its own status and code."""
    return _envelope(exc.status_code, exc.code, exc.message, exc.details)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures as 400 VALIDATION_ERROR.

    Only location, message and type are reported. Submitted values are
    dropped so a rejected password is never echoed back.
    """
    details = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return _envelope(400, "VALIDATION_ERROR", "Request validation failed", details)


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and answer 500 without internals."""
    logger.exception("Unhandled exception", exc_info=exc, path=request.url.path)
    return _envelope(500, "INTERNAL_ERROR", "An unexpected error occurred")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Start the credential sweeper and release the connection pool on shutdown."""
    logger.info(
        "Starting Photaro API",
        environment=settings.environment,
        revocation_backend="redis" if settings.redis_url else "memory",
    )
    sweeper: CredentialSweeper | None = None
    if settings.credential_sweep_interval_minutes > 0:
        sweeper = CredentialSweeper(
            async_session_factory,
            get_revocation_store(),
            get_password_reset_store(),
            interval_seconds=settings.credential_sweep_interval_minutes * 60,
        )
        sweeper.start()

    yield

    if sweeper is not None:
        await sweeper.stop()
    await engine.dispose()
    logger.info("Photaro API stopped")


def create_app() -> FastAPI:
    """Build the Photaro API application."""
    app = FastAPI(
        title="Photaro API",
        version="1.0.0",
        description="Photo sharing: accounts, sessions, and profile security",
        lifespan=lifespan,
    )

    # Starlette runs the last-added middleware first; CORS has to see
    # preflight requests before anything else.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    handlers = (
        (APIError, api_error_handler),
        (RequestValidationError, validation_error_handler),
        (RateLimitExceeded, rate_limit_exceeded_handler),
        (Exception, internal_error_handler),
    )
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)

    app.state.limiter = limiter
    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict[str, str]:
        """Liveness probe; no auth and no database round-trip."""
        return {"status": "healthy"}

    return app


app = create_app()
