"""
Utilities module: Exceptions.
"""

from shared.utils.exceptions import (
    AppException,
    NotAuthenticatedError,
    NotFoundError,
    UnsupportedOperationError,
    ValidationError,
    InternalError,
    StorageError,
    ConfigurationError,
)

__all__ = [
    "AppException",
    "NotAuthenticatedError",
    "NotFoundError",
    "UnsupportedOperationError",
    "ValidationError",
    "InternalError",
    "StorageError",
    "ConfigurationError",
]
