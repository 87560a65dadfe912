"""
Archivist - Error Handling

Domain exceptions for the ingestion pipeline plus the FastAPI handlers that
turn them into one JSON error shape.

Every ArchivistError carries a stable `error_code` for log aggregation and a
`retryable` flag. The dispatcher uses the flag to decide whether a message is
left for queue redelivery or dropped.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

# Client errors (4xx)
ERROR_VALIDATION = "validation_error"
ERROR_NOT_FOUND = "not_found"
ERROR_UNAUTHORIZED = "unauthorized"
ERROR_BAD_REQUEST = "bad_request"

# Server errors (5xx)
ERROR_INTERNAL = "internal_error"
ERROR_LISTING = "listing_failed"
ERROR_ENQUEUE = "enqueue_failed"
ERROR_STORE_WRITE = "store_write_failed"
ERROR_OBJECT_STORE = "object_store_error"

# Pipeline-only codes (never surfaced over HTTP)
ERROR_INVALID_MESSAGE = "invalid_message"
ERROR_INVALID_ENVELOPE = "invalid_envelope"
ERROR_ROUTING = "routing_error"
ERROR_ENVELOPE_VALIDATION = "envelope_validation_error"
ERROR_CONTINUATION = "continuation_failed"


# =============================================================================
# Domain Exceptions
# =============================================================================


class ArchivistError(Exception):
    """Base exception for archive ingestion errors."""

    error_code: str = ERROR_INTERNAL
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ListingError(ArchivistError):
    """Listing a page of the object store failed. Fatal for the trigger."""

    error_code = ERROR_LISTING
    retryable = True

    def __init__(self, message: str, cursor: str | None = None):
        super().__init__(message)
        self.cursor = cursor


class EnqueueError(ArchivistError):
    """A batch-send to the queue failed."""

    error_code = ERROR_ENQUEUE
    retryable = True


class ObjectStoreError(ArchivistError):
    """Reading or writing a single object failed."""

    error_code = ERROR_OBJECT_STORE
    retryable = True


class InvalidMessageError(ArchivistError):
    """A queue message matches neither the document nor the continuation shape."""

    error_code = ERROR_INVALID_MESSAGE
    status_code = 400


class InvalidEnvelopeError(ArchivistError):
    """A stored document is not a well-formed {type, id, data} envelope."""

    error_code = ERROR_INVALID_ENVELOPE
    status_code = 400


class DocumentNotFoundError(ArchivistError):
    """The object key of a document message does not exist in the store."""

    error_code = ERROR_NOT_FOUND
    status_code = 404

    def __init__(self, object_key: str):
        super().__init__(f"Object not found: {object_key}")
        self.object_key = object_key


class RoutingError(ArchivistError):
    """An envelope type has no projector, or reached the wrong one."""

    error_code = ERROR_ROUTING

    def __init__(self, message: str, content_type: str | None = None):
        super().__init__(message)
        self.content_type = content_type


class EnvelopeValidationError(ArchivistError):
    """A required payload field is absent or has the wrong primitive type."""

    error_code = ERROR_ENVELOPE_VALIDATION
    status_code = 422

    def __init__(self, field: str, expected: str):
        super().__init__(f"Missing or invalid field: {field} (expected {expected})")
        self.field = field
        self.expected = expected


class StoreWriteError(ArchivistError):
    """Writing to the index store failed for a transient reason."""

    error_code = ERROR_STORE_WRITE
    status_code = 503
    retryable = True


class ContinuationError(ArchivistError):
    """Re-invoking the page operation for a continuation message failed.

    A rejected request (4xx from the endpoint) will fail the same way on every
    redelivery, so it is raised with retryable=False.
    """

    error_code = ERROR_CONTINUATION
    retryable = True

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


# =============================================================================
# Error Response Model
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response format."""

    error: str
    message: str
    status_code: int
    details: str | None = None


def create_error_response(
    status_code: int,
    error: str,
    message: str,
    details: str | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    response = ErrorResponse(
        error=error,
        message=message,
        status_code=status_code,
        details=details,
    )
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(exclude_none=True),
    )


# =============================================================================
# Exception Handlers
# =============================================================================


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map standard HTTP errors to our error format."""
    error_map = {
        400: ERROR_BAD_REQUEST,
        401: ERROR_UNAUTHORIZED,
        404: ERROR_NOT_FOUND,
        422: ERROR_VALIDATION,
    }
    error_code = error_map.get(exc.status_code, ERROR_INTERNAL)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")

    response = create_error_response(
        status_code=exc.status_code,
        error=error_code,
        message=str(exc.detail),
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Flatten request validation errors into a single message."""
    messages = []
    for error in exc.errors():
        loc = ".".join(str(x) for x in error.get("loc", []))
        messages.append(f"{loc}: {error.get('msg', 'invalid')}")

    logger.warning(f"Validation error on {request.url.path}: {len(messages)} errors")

    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        error=ERROR_VALIDATION,
        message="Request validation failed",
        details="; ".join(messages),
    )


async def archivist_exception_handler(request: Request, exc: ArchivistError) -> JSONResponse:
    """Render domain errors that escape a route."""
    if exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__} on {request.url.path}: {exc.message}",
            extra={"error_code": exc.error_code},
        )
    return create_error_response(
        status_code=exc.status_code,
        error=exc.error_code,
        message=exc.message,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unhandled exceptions.

    Logs the full traceback but returns a generic error to the client.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True,
    )
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=ERROR_INTERNAL,
        message="Internal server error",
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register all error handlers with the FastAPI app."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ArchivistError, archivist_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
