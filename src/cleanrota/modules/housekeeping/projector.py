"""Display status of a checkout and its cleaning, derived from raw timestamps.

Pure functions only: the same (reservation, task, now) always projects to the
same result and nothing is written. Every place that needs to know whether a
unit is still occupied, waiting for cleaning, being cleaned or done goes
through :meth:`CheckoutReportProjector.project`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from cleanrota.models.reservation import Reservation
from cleanrota.models.task import CleaningTask, TaskStatus
from cleanrota.timeutil import as_utc, local_to_utc

DEFAULT_URGENT_AFTER = timedelta(minutes=30)


class ProjectedStatus(str, Enum):
    NO_TASK = "no_task"
    WAITING_CHECKOUT = "waiting_checkout"
    CHECKED_OUT = "checked_out"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Projection:
    status: ProjectedStatus
    elapsed: timedelta | None = None  # None: nothing to time, or not started yet
    live: bool = False  # still ticking; False once completed
    urgent_after: timedelta = DEFAULT_URGENT_AFTER

    @property
    def elapsed_minutes(self) -> int | None:
        if self.elapsed is None:
            return None
        return int(self.elapsed.total_seconds() // 60)

    @property
    def elapsed_display(self) -> str:
        return format_elapsed(self.elapsed)

    @property
    def is_urgent(self) -> bool:
        """Guest left, cleaning not started, and it's been waiting too long."""
        return (
            self.status == ProjectedStatus.CHECKED_OUT
            and self.elapsed is not None
            and self.elapsed > self.urgent_after
        )

    def matches(self, statuses) -> bool:
        if not statuses:
            return True
        if self.status == ProjectedStatus.NO_TASK:
            return False
        return self.status.value in {ProjectedStatus(s).value for s in statuses}


def format_elapsed(elapsed: timedelta | None) -> str:
    """``1h 5m`` / ``12m``; ``-`` when there is nothing to show."""
    if elapsed is None:
        return "-"
    total_minutes = int(elapsed.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _non_negative(delta: timedelta | None) -> timedelta | None:
    # Clock skew or a future-dated report reads as "not started"
    if delta is None or delta < timedelta(0):
        return None
    return delta


class CheckoutReportProjector:
    def __init__(self, urgent_after: timedelta = DEFAULT_URGENT_AFTER) -> None:
        self.urgent_after = urgent_after

    def project(
        self,
        reservation: Reservation,
        task: CleaningTask | None,
        now: datetime,
        tz: ZoneInfo,
    ) -> Projection:
        now = as_utc(now)

        if task is None or task.status == TaskStatus.CANCELLED.value:
            return Projection(ProjectedStatus.NO_TASK, urgent_after=self.urgent_after)

        started_at = as_utc(task.started_at)

        if task.status == TaskStatus.COMPLETED.value:
            completed_at = as_utc(task.completed_at)
            elapsed = None
            if started_at is not None and completed_at is not None:
                elapsed = _non_negative(completed_at - started_at)
            return Projection(ProjectedStatus.COMPLETED, elapsed, live=False, urgent_after=self.urgent_after)

        if task.status == TaskStatus.IN_PROGRESS.value:
            elapsed = _non_negative(now - started_at) if started_at is not None else None
            return Projection(ProjectedStatus.IN_PROGRESS, elapsed, live=True, urgent_after=self.urgent_after)

        if reservation.actual_checkout_time is not None:
            left_at = local_to_utc(reservation.check_out_date, reservation.actual_checkout_time, tz)
            return Projection(
                ProjectedStatus.CHECKED_OUT,
                _non_negative(now - left_at),
                live=True,
                urgent_after=self.urgent_after,
            )

        return Projection(ProjectedStatus.WAITING_CHECKOUT, urgent_after=self.urgent_after)
