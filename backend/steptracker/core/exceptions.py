"""Custom exception classes for the step tracker."""

from typing import Any, Optional


class StepTrackerException(Exception):
    """Base exception for the step tracker."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(StepTrackerException):
    """Input validation error."""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=f"Validation error on {field}: {message}",
            code="VALIDATION_ERROR",
            status_code=422,
            details={"field": field},
        )


class InvalidGoal(StepTrackerException):
    """Daily goal that is not a positive integer."""

    def __init__(self, value: Any):
        super().__init__(
            message=f"Daily goal must be a positive integer, got {value!r}",
            code="INVALID_GOAL",
            status_code=422,
            details={"value": str(value)},
        )


class SensorError(StepTrackerException):
    """Step sensor unavailable, permission denied, or query failure."""

    def __init__(self, message: str, reason: str = "query_failed"):
        super().__init__(
            message=f"Step sensor error: {message}",
            code="SENSOR_ERROR",
            status_code=503,
            details={"reason": reason},
        )


class StorageError(StepTrackerException):
    """Durable key-value slot read or write failure."""

    def __init__(self, operation: str, key: str, message: str):
        super().__init__(
            message=f"Storage {operation} failed for '{key}': {message}",
            code="STORAGE_ERROR",
            status_code=503,
            details={"operation": operation, "key": key},
        )
