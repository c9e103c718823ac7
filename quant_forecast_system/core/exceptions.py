"""
Custom exception hierarchy for the forecasting pipeline.

Provides one base class and a small set of error categories:
- Input errors (empty or malformed bar sequences)
- Data sufficiency errors (too few bars for the configured horizon/window/split)
- State errors (transform or inverse before fit)
- Shape errors (irreconcilable feature/label layouts)
- External model errors (failures raised through the model contract)
- Persistence and configuration errors
"""

from __future__ import annotations

from typing import Any


class ForecastSystemError(Exception):
    """Base exception for all forecasting system errors.

    Provides structured error information including error code, message,
    and additional context.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            error_code: Optional error code for programmatic handling.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def __str__(self) -> str:
        """Return formatted error string."""
        if self.details:
            return f"[{self.error_code}] {self.message} - Details: {self.details}"
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Data Errors
# =============================================================================


class InvalidInputError(ForecastSystemError):
    """Raised when an input sequence is empty or malformed.

    Examples:
        - Empty bar sequence passed to the feature extractor
        - Timestamps out of order or duplicated
        - Matrix with the wrong number of dimensions
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if field_name is not None:
            details["field_name"] = field_name
        super().__init__(message, details=details)
        self.field_name = field_name


class InsufficientDataError(ForecastSystemError):
    """Raised when there are not enough bars for the configured horizon, window or split."""

    def __init__(
        self,
        message: str,
        required: int | None = None,
        available: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if required is not None:
            details["required"] = required
        if available is not None:
            details["available"] = available
        super().__init__(message, details=details)
        self.required = required
        self.available = available


class ShapeMismatchError(ForecastSystemError):
    """Raised when feature and label shapes cannot be reconciled."""

    def __init__(
        self,
        message: str,
        expected: tuple[int, ...] | None = None,
        actual: tuple[int, ...] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if expected is not None:
            details["expected"] = list(expected)
        if actual is not None:
            details["actual"] = list(actual)
        super().__init__(message, details=details)
        self.expected = expected
        self.actual = actual


# =============================================================================
# State Errors
# =============================================================================


class NotFittedError(ForecastSystemError):
    """Raised when transform, inverse or predict is called before fit."""

    def __init__(self, component: str) -> None:
        super().__init__(
            f"{component} must be fitted before use",
            details={"component": component},
        )
        self.component = component


# =============================================================================
# Model Errors
# =============================================================================


class ExternalModelError(ForecastSystemError):
    """Wraps any failure raised by the sequence-regression model contract."""

    def __init__(
        self,
        message: str,
        operation: str,
        model_name: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        details: dict[str, Any] = {"operation": operation}
        if model_name:
            details["model_name"] = model_name
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(message, details=details)
        self.operation = operation
        self.model_name = model_name
        self.cause = cause


class PersistenceError(ForecastSystemError):
    """Raised when a saved model or normalizer artefact is missing or corrupt."""

    def __init__(self, message: str, path: str | None = None) -> None:
        details = {"path": path} if path else {}
        super().__init__(message, details=details)
        self.path = path


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ForecastSystemError):
    """Raised when settings are invalid, missing or cannot be parsed."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details=details)
        self.config_key = config_key
        self.config_file = config_file
