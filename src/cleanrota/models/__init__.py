"""Database models."""

from cleanrota.models.property import Property
from cleanrota.models.reservation import RESERVATION_STATUSES, Reservation
from cleanrota.models.task import CleaningTask, TaskStatus, TaskType
from cleanrota.models.tenant import Tenant

__all__ = [
    "CleaningTask",
    "Property",
    "RESERVATION_STATUSES",
    "Reservation",
    "TaskStatus",
    "TaskType",
    "Tenant",
]
