from steptracker.core.exceptions import (
    InvalidGoal,
    SensorError,
    StepTrackerException,
    StorageError,
    ValidationError,
)

__all__ = [
    "StepTrackerException",
    "ValidationError",
    "InvalidGoal",
    "SensorError",
    "StorageError",
]
