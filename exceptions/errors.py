"""
Custom exception classes for the application.

Insufficient history is not an error: the engine returns a degraded
forecast for it. Only collaborator failures are raised.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "DATA_UNAVAILABLE")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# FORECAST ERRORS
# ===================

class DataUnavailableError(ExternalServiceError):
    """
    A history, stock or catalog lookup could not be completed.

    Raised for unreachable sources, timeouts and malformed rows.
    Distinct from insufficient history, which yields a degraded forecast.
    """

    def __init__(
        self,
        source: str,
        reason: str,
        product_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        message = f"{source} unavailable: {reason}"
        if product_id is not None:
            message = f"{source} unavailable for product {product_id}: {reason}"
        super().__init__(
            service=source,
            message=message,
            code="DATA_UNAVAILABLE",
            details={"source": source, "reason": reason, "product_id": product_id, **(details or {})}
        )
        self.source = source
        self.reason = reason
        self.product_id = product_id


class ForecastPersistenceError(DatabaseError):
    """Writing or reading a stored forecast failed."""

    def __init__(self, operation: str, message: str, product_id: Optional[str] = None):
        super().__init__(
            operation=operation,
            message=message,
            details={"table": "consumption_predictions", "product_id": product_id}
        )
        self.code = "FORECAST_PERSISTENCE_ERROR"


class BatchRunNotFoundError(NotFoundError):
    """Bulk generation run not found (unknown or expired)."""

    def __init__(self, run_id: str):
        super().__init__(
            resource="Batch run",
            identifier=run_id,
            code="BATCH_RUN_NOT_FOUND"
        )


class InvalidPeriodError(ValidationError):
    """Unknown forecast period."""

    def __init__(self, period: str):
        super().__init__(
            code="INVALID_PERIOD",
            message="Period must be month, quarter, or year",
            details={"provided": period, "valid": ["month", "quarter", "year"]}
        )
