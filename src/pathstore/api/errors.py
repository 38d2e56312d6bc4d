"""pathstore API error handling.

Provides PathStoreHttpError and the FastAPI exception handlers that turn
every failure into the error envelope with request_id tracing.

Global exception handlers:
- PathStoreHttpError: API-level errors (auth, ACL)
- PathStoreError: core request errors (invalid, illegal move, not found)
- ObjectStorageError: storage failures surfacing from a route
- HTTPException: FastAPI/Starlette HTTP exceptions
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (no stack traces)
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from pathstore.api.error_model import get_error_code_for_status, make_error_response
from pathstore.core.errors import CollisionExhaustedError, PathStoreError
from pathstore.storage.errors import (
    InvalidContinuationTokenError,
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    PreconditionFailedError,
)

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Error envelope schema."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str | None = None


class PathStoreHttpError(Exception):
    """Application-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 401, 403).
        code: Machine-readable error code (e.g., "UNAUTHORIZED", "FORBIDDEN").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


async def path_store_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for PathStoreHttpError."""
    assert isinstance(exc, PathStoreHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def path_store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for core PathStoreError subclasses.

    Status and code come from the exception class.
    """
    assert isinstance(exc, PathStoreError)

    details: dict[str, Any] | None = None
    if isinstance(exc, CollisionExhaustedError):
        logger.warning(
            "Collision resolution exhausted candidate=%s attempts=%d",
            exc.candidate,
            exc.attempts,
        )
        details = {"attempts": exc.attempts}

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=details,
    )


async def object_storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for storage errors.

    Missing objects map to 404, malformed keys or tokens to 400 and lost
    conditional writes to 409. Any
    other backend failure is a 500 whose message does not leak backend
    details.
    """
    assert isinstance(exc, ObjectStorageError)

    if isinstance(exc, ObjectNotFoundError):
        return make_error_response(
            request, code="NOT_FOUND", message="Object not found", http_status=404
        )
    if isinstance(exc, PathTraversalError | InvalidContinuationTokenError):
        return make_error_response(
            request, code="INVALID_REQUEST", message=exc.message, http_status=400
        )
    if isinstance(exc, PreconditionFailedError):
        return make_error_response(
            request, code="CONFLICT", message=exc.message, http_status=409
        )

    logger.error("Storage failure org=%s: %s", exc.org, exc)
    return make_error_response(
        request,
        code="STORAGE_ERROR",
        message="Storage operation failed",
        http_status=500,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for HTTPException."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for RequestValidationError.

    Maps Pydantic validation errors to the error envelope without exposing
    raw validation internals.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions.

    Returns 500 with a generic message and logs the exception.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
        details=None,
    )
