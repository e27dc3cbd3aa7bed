"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    DatabaseError,

    # Forecasting
    DataUnavailableError,
    ForecastPersistenceError,
    BatchRunNotFoundError,
    InvalidPeriodError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "DatabaseError",

    # Forecasting
    "DataUnavailableError",
    "ForecastPersistenceError",
    "BatchRunNotFoundError",
    "InvalidPeriodError",
]
