"""Cleaning task model."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cleanrota.database import Base


class TaskType(str, Enum):
    CHECK_OUT = "check_out"
    STAY_OVER = "stay_over"
    DEEP_CLEANING = "deep_cleaning"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Task types created for the guest leaving (one per reservation)
CHECKOUT_TASK_TYPES = (TaskType.CHECK_OUT.value, TaskType.DEEP_CLEANING.value)
TERMINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value)
OPEN_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)

_LIVE_CHECKOUT = "status != 'cancelled' AND task_type IN ('check_out', 'deep_cleaning')"
_LIVE_STAY_OVER = "status != 'cancelled' AND task_type = 'stay_over'"


class CleaningTask(Base):
    __tablename__ = "cleaning_tasks"
    __table_args__ = (
        # At most one live check-out clean per reservation ...
        Index(
            "uq_cleaning_tasks_checkout_per_reservation",
            "reservation_id",
            unique=True,
            sqlite_where=text(_LIVE_CHECKOUT),
            postgresql_where=text(_LIVE_CHECKOUT),
        ),
        # ... and one live stay-over per reservation and day
        Index(
            "uq_cleaning_tasks_stay_over_per_day",
            "reservation_id",
            "scheduled_date",
            unique=True,
            sqlite_where=text(_LIVE_STAY_OVER),
            postgresql_where=text(_LIVE_STAY_OVER),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    reservation_id: Mapped[int | None] = mapped_column(ForeignKey("reservations.id"), nullable=True)
    task_type: Mapped[str] = mapped_column(String(30), nullable=False)  # check_out, stay_over, deep_cleaning
    status: Mapped[str] = mapped_column(String(30), default=TaskStatus.PENDING.value)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    assigned_to: Mapped[int | None] = mapped_column(Integer, nullable=True)  # staff user id
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    checkout_reported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    prop: Mapped["Property"] = relationship(back_populates="cleaning_tasks")  # noqa: F821
    reservation: Mapped["Reservation | None"] = relationship(back_populates="cleaning_tasks")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<CleaningTask id={self.id} {self.task_type} "
            f"date={self.scheduled_date} status={self.status!r}>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
