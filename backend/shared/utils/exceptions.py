"""
Centralized HTTP exceptions for consistent error handling.

Every error raised by the record operations is an HTTPException, so a
FastAPI app maps it to the right status code without extra handlers.

Usage:
    from shared.utils.exceptions import NotFoundError, ValidationError

    raise NotFoundError("contacts", record_id)
    raise ValidationError("Invalid input", issues=exc.errors())
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: Any,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        message = detail if isinstance(detail, str) else detail.get("message", str(detail))
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(message, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        if isinstance(self.detail, dict):
            return str(self.detail.get("message", self.detail))
        return str(self.detail)


# =============================================================================
# 401 Unauthorized
# =============================================================================


class NotAuthenticatedError(AppException):
    """No caller identity could be resolved."""

    def __init__(self, detail: str = "Not authenticated", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Record not found error (404).

    Also raised for records owned by another tenant, so the response never
    reveals that such a record exists.

    Usage:
        raise NotFoundError("contacts", record_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


# =============================================================================
# 405 / 422 Client Errors
# =============================================================================


class UnsupportedOperationError(AppException):
    """Operation is not available for this collection (405)."""

    def __init__(self, entity: str, operation: str, **log_context: Any):
        self.entity = entity
        self.operation = operation
        super().__init__(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail=f"Collection {entity} does not support {operation}",
            log_level="warning",
            entity=entity,
            operation=operation,
            **log_context,
        )


class ValidationError(AppException):
    """
    Input validation error (422).

    ``issues`` holds the structured error list produced by the schema.

    Usage:
        raise ValidationError("Invalid contacts payload", issues=exc.errors())
    """

    def __init__(self, message: str, issues: list[dict[str, Any]] | None = None, **log_context: Any):
        self.issues = issues or []
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": message, "issues": self.issues},
            log_level="warning",
            issue_count=len(self.issues),
            **log_context,
        )


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Failed to load configuration")
    """

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class StorageError(InternalError):
    """
    Storage operation failed.

    The driver exception is kept as ``__cause__`` (raise ... from exc).
    """

    def __init__(self, entity: str, operation: str, reason: str | None = None, **log_context: Any):
        self.entity = entity
        self.operation = operation
        self.reason = reason
        detail = f"Storage error during {operation} on {entity}"
        super().__init__(detail, entity=entity, operation=operation, reason=reason, **log_context)


class ConfigurationError(InternalError):
    """Invalid operation factory configuration."""

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, **log_context)
