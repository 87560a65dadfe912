"""
Archivist - Core Module

Contains security, error handling, and structured logging utilities.
"""

from .errors import (
    ArchivistError,
    ContinuationError,
    DocumentNotFoundError,
    EnqueueError,
    EnvelopeValidationError,
    ErrorResponse,
    InvalidEnvelopeError,
    InvalidMessageError,
    ListingError,
    ObjectStoreError,
    RoutingError,
    StoreWriteError,
    setup_error_handlers,
)
from .security import AuthContext, require_bearer_token

__all__ = [
    # Security
    "AuthContext",
    "require_bearer_token",
    # Errors
    "ArchivistError",
    "ContinuationError",
    "DocumentNotFoundError",
    "EnqueueError",
    "EnvelopeValidationError",
    "ErrorResponse",
    "InvalidEnvelopeError",
    "InvalidMessageError",
    "ListingError",
    "ObjectStoreError",
    "RoutingError",
    "StoreWriteError",
    "setup_error_handlers",
]
