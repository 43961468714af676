"""Cleaning task lifecycle: pending -> in_progress -> completed, or cancelled.

Every transition is a guarded ``UPDATE ... WHERE status = <expected>``. If
another writer moved the task first the update matches no row and the call
fails with ConcurrencyConflictError instead of overwriting their change.

Nothing here commits. Completion and the rotation counter write share the
caller's transaction, so they land or roll back together.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cleanrota.errors import ConcurrencyConflictError, InvalidStateError, TaskNotFoundError
from cleanrota.events import Event, EventType, queue_event
from cleanrota.models.task import CHECKOUT_TASK_TYPES, OPEN_STATUSES, CleaningTask, TaskStatus, TaskType
from cleanrota.modules.housekeeping.rotation import RotationCounter
from cleanrota.timeutil import as_utc, utc_now

logger = logging.getLogger(__name__)


class CleaningTaskStateMachine:
    """Start, complete and cancel cleaning tasks."""

    def __init__(self, rotation: RotationCounter | None = None, *, require_checkout_report: bool = False) -> None:
        self.rotation = rotation or RotationCounter()
        # When set, a reservation's check-out task can't start before the guest has left
        self.require_checkout_report = require_checkout_report

    def start(
        self,
        session: Session,
        task_id: int,
        assigned_to: int | None = None,
        *,
        now: datetime | None = None,
    ) -> CleaningTask:
        """pending -> in_progress.

        ``assigned_to`` may be None: starting unassigned is allowed. An
        existing assignment is kept in that case.
        """
        task = self._load(session, task_id)
        if task.status != TaskStatus.PENDING.value:
            raise InvalidStateError(
                f"Task {task_id} is {task.status}; only pending tasks can be started",
                task_id=task_id,
                status=task.status,
            )
        if self.require_checkout_report and self._awaiting_checkout(task):
            raise InvalidStateError(
                f"Task {task_id} can't start before checkout is reported",
                task_id=task_id,
                status=task.status,
            )

        now = as_utc(now) or utc_now()
        values: dict = {"status": TaskStatus.IN_PROGRESS.value, "started_at": now, "updated_at": now}
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
            values["assigned_at"] = now

        self._guarded_update(session, task, (TaskStatus.PENDING.value,), values)
        logger.info("Started task %s (assigned_to=%s)", task.id, task.assigned_to)

        queue_event(session, Event(
            event_type=EventType.TASK_STARTED,
            data={
                "task_id": task.id,
                "property_id": task.property_id,
                "task_type": task.task_type,
                "assigned_to": task.assigned_to,
            },
        ))
        return task

    def complete(
        self,
        session: Session,
        task_id: int,
        notes: str | None = None,
        completed_by: int | None = None,
        *,
        now: datetime | None = None,
    ) -> CleaningTask:
        """in_progress -> completed, then move the property's rotation counter."""
        task = self._load(session, task_id)
        if task.status != TaskStatus.IN_PROGRESS.value:
            raise InvalidStateError(
                f"Task {task_id} is {task.status}; only in-progress tasks can be completed",
                task_id=task_id,
                status=task.status,
            )

        now = as_utc(now) or utc_now()
        started_at = as_utc(task.started_at)
        if started_at is not None and now <= started_at:
            # completed_at must stay strictly after started_at
            now = started_at + timedelta(microseconds=1)

        values: dict = {
            "status": TaskStatus.COMPLETED.value,
            "completed_at": now,
            "updated_at": now,
        }
        if notes is not None:
            values["notes"] = notes
        if completed_by is not None:
            values["completed_by"] = completed_by

        self._guarded_update(session, task, (TaskStatus.IN_PROGRESS.value,), values)

        if task.task_type == TaskType.CHECK_OUT.value:
            self.rotation.advance(session, task.property_id)
        elif task.task_type == TaskType.DEEP_CLEANING.value:
            self.rotation.reset(session, task.property_id)
        # stay_over doesn't count towards the rotation

        cleaning_count = self.rotation.current_count(session, task.property_id)
        logger.info(
            "Completed %s task %s, property %s cleaning_count=%s",
            task.task_type,
            task.id,
            task.property_id,
            cleaning_count,
        )

        queue_event(session, Event(
            event_type=EventType.TASK_COMPLETED,
            data={
                "task_id": task.id,
                "tenant_id": task.tenant_id,
                "property_id": task.property_id,
                "property_name": task.prop.name,
                "reservation_id": task.reservation_id,
                "task_type": task.task_type,
                "cleaning_count": cleaning_count,
                "completed_by": task.completed_by,
            },
        ))
        return task

    def assign(
        self,
        session: Session,
        task_id: int,
        assigned_to: int | None = None,
        *,
        scheduled_date: date | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> CleaningTask:
        """Assign, re-date or annotate a task that hasn't started yet.

        Status is never touched here; start/complete/cancel do that.
        """
        task = self._load(session, task_id)
        if task.status != TaskStatus.PENDING.value:
            raise InvalidStateError(
                f"Task {task_id} is {task.status}; only pending tasks can be reassigned",
                task_id=task_id,
                status=task.status,
            )

        now = as_utc(now) or utc_now()
        values: dict = {"updated_at": now}
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
            values["assigned_at"] = now
        if scheduled_date is not None:
            values["scheduled_date"] = scheduled_date
        if notes is not None:
            values["notes"] = notes

        try:
            with session.begin_nested():
                self._guarded_update(session, task, (TaskStatus.PENDING.value,), values)
        except IntegrityError as exc:
            reservation_id = task.reservation_id
            session.expire(task)
            raise InvalidStateError(
                f"Reservation {reservation_id} already has a stay-over on {scheduled_date}",
                task_id=task_id,
                status=TaskStatus.PENDING.value,
            ) from exc
        logger.info(
            "Updated task %s (assigned_to=%s, scheduled_date=%s)",
            task.id,
            task.assigned_to,
            task.scheduled_date,
        )
        return task

    def cancel(self, session: Session, task_id: int, *, now: datetime | None = None) -> CleaningTask:
        """pending / in_progress -> cancelled. Cancelled cleans never count."""
        task = self._load(session, task_id)
        if task.status not in OPEN_STATUSES:
            raise InvalidStateError(
                f"Task {task_id} is already {task.status}",
                task_id=task_id,
                status=task.status,
            )

        now = as_utc(now) or utc_now()
        self._guarded_update(
            session,
            task,
            OPEN_STATUSES,
            {"status": TaskStatus.CANCELLED.value, "updated_at": now},
        )
        logger.info("Cancelled task %s", task.id)

        queue_event(session, Event(
            event_type=EventType.TASK_CANCELLED,
            data={"task_id": task.id, "property_id": task.property_id, "reservation_id": task.reservation_id},
        ))
        return task

    def cancel_for_reservation(self, session: Session, reservation_id: int, *, now: datetime | None = None) -> int:
        """Cancel every open task of a reservation. Returns how many were cancelled."""
        now = as_utc(now) or utc_now()
        result = session.execute(
            update(CleaningTask)
            .where(
                CleaningTask.reservation_id == reservation_id,
                CleaningTask.status.in_(OPEN_STATUSES),
            )
            .values(status=TaskStatus.CANCELLED.value, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        cancelled = result.rowcount
        if cancelled:
            logger.info("Cancelled %d cleaning tasks for reservation %s", cancelled, reservation_id)
        return cancelled

    def _load(self, session: Session, task_id: int) -> CleaningTask:
        task = session.get(CleaningTask, task_id)
        if task is None:
            raise TaskNotFoundError(f"Cleaning task {task_id} not found")
        return task

    @staticmethod
    def _awaiting_checkout(task: CleaningTask) -> bool:
        if task.reservation_id is None or task.task_type not in CHECKOUT_TASK_TYPES:
            return False
        if task.checkout_reported_at is not None:
            return False
        reservation = task.reservation
        return reservation is None or reservation.actual_checkout_time is None

    @staticmethod
    def _guarded_update(session: Session, task: CleaningTask, expected: tuple[str, ...], values: dict) -> None:
        result = session.execute(
            update(CleaningTask)
            .where(CleaningTask.id == task.id, CleaningTask.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.expire(task)
            logger.warning("Lost transition race on task %s (expected %s)", task.id, "/".join(expected))
            raise ConcurrencyConflictError(
                f"Task {task.id} was changed by someone else",
                task_id=task.id,
                status=task.status,
            )
        session.refresh(task)
