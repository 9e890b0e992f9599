"""Exception hierarchy shared by the tracking core and its adapters."""

from typing import Any


class TripTrackError(Exception):
    """Base exception for triptrack."""


class ValidationError(TripTrackError):
    """An ingestion request carried a missing or unusable coordinate.

    Raised before any state is touched, so a rejected request has no side
    effects.
    """

    def __init__(self, field: str, value: Any = None, message: str | None = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid value for '{field}': {value!r}")


class PersistenceError(TripTrackError):
    """The durable trip store is unavailable or rejected a write."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")
