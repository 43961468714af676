"""Housekeeping domain errors."""

from __future__ import annotations


class HousekeepingError(Exception):
    """Base class for errors raised by the housekeeping core."""


class InvalidStateError(HousekeepingError):
    """Raised when a transition is not legal from the task's current status."""

    def __init__(self, message: str, *, task_id: int | None = None, status: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.status = status


class ConcurrencyConflictError(InvalidStateError):
    """Raised when a guarded update lost a race with another writer."""


class NotFoundError(HousekeepingError):
    pass


class TaskNotFoundError(NotFoundError):
    """Raised when no cleaning task exists for the requested task or reservation."""


class ReservationNotFoundError(NotFoundError):
    pass


class PropertyNotFoundError(NotFoundError):
    pass


class ConfigurationError(HousekeepingError):
    """Raised when tenant settings are missing or invalid."""
