"""
Service error taxonomy and global exception handlers.

Handlers prevent stack-trace leakage to clients: every failure leaves the
API as ``{"detail": ..., "success": false}``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Error taxonomy ──────────────────────────────────────────────────
class ServiceError(Exception):
    """Base class for failures that map onto a structured API response."""

    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, *, headers: dict[str, str] | None = None) -> None:
        self.detail = detail or self.default_detail
        self.headers = headers
        super().__init__(self.detail)

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.detail, "success": False}


class AuthenticationFailure(ServiceError):
    """Bad credentials, unknown identity or inactive account. Always generic."""

    status_code = 401
    default_detail = "Invalid email or password"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationFailure(ServiceError):
    status_code = 403
    default_detail = "Not enough privileges"


class ValidationFailure(ServiceError):
    """Malformed input. Field-level detail is safe to expose."""

    status_code = 400
    default_detail = "Invalid request"

    def __init__(self, detail: str | None = None, *, field: str | None = None) -> None:
        super().__init__(detail)
        self.field = field

    def to_content(self) -> dict[str, Any]:
        content = super().to_content()
        if self.field:
            content["errors"] = {self.field: self.detail}
        return content


class TokenFailure(ServiceError):
    """Missing, mismatched or expired OTP. Never says which."""

    status_code = 400
    default_detail = "Invalid or expired OTP"


class ConflictFailure(ServiceError):
    status_code = 409
    default_detail = "Resource already exists"


class NotFoundFailure(ServiceError):
    status_code = 404
    default_detail = "Resource not found"


class InfrastructureFailure(ServiceError):
    """Store or notifier trouble. Details go to the log, never to the caller."""

    status_code = 500
    default_detail = "Internal server error"


class LoginRedirect(Exception):
    """Raised by UI-surface guards; rendered as a redirect to the login page."""

    def __init__(self, location: str) -> None:
        self.location = location
        super().__init__(location)


# ── Handlers ────────────────────────────────────────────────────────
async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, InfrastructureFailure):
        logger.error("Infrastructure failure: %s", exc, exc_info=exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": InfrastructureFailure.default_detail, "success": False},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_content(),
        headers=exc.headers,
    )


async def _login_redirect_handler(_request: Request, exc: LoginRedirect) -> RedirectResponse:
    return RedirectResponse(url=exc.location, status_code=303)


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _rate_limit_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded: %s", exc.detail)
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, slow down", "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LoginRedirect, _login_redirect_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
