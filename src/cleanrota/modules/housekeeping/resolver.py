"""Decide which cleaning tasks a reservation needs, and when."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cleanrota.errors import TaskNotFoundError
from cleanrota.events import Event, EventType, queue_event
from cleanrota.models.reservation import Reservation
from cleanrota.models.task import CHECKOUT_TASK_TYPES, CleaningTask, TaskStatus, TaskType
from cleanrota.modules.housekeeping.rotation import RotationCounter
from cleanrota.modules.housekeeping.settings import TenantSettings
from cleanrota.timeutil import utc_now

logger = logging.getLogger(__name__)

# Reservations in these states never get new tasks
_NO_TASK_STATUSES = ("cancelled", "no_show")


@dataclass(frozen=True)
class PlannedTask:
    task_type: TaskType
    scheduled_date: date


def plan_tasks(
    check_in_date: date,
    check_out_date: date,
    stay_over_interval: int,
    checkout_task_type: TaskType = TaskType.CHECK_OUT,
) -> list[PlannedTask]:
    """Lay out the tasks for a stay.

    One check-out-type task on the check-out date, then a stay-over every
    ``stay_over_interval`` days after check-in, strictly before check-out.
    Stays of ``stay_over_interval`` nights or fewer get no stay-overs.
    """
    if check_out_date <= check_in_date:
        raise ValueError("Check-out date must be after check-in date")
    if stay_over_interval <= 0:
        raise ValueError("stay_over_interval must be positive")

    planned = [PlannedTask(checkout_task_type, check_out_date)]

    nights = (check_out_date - check_in_date).days
    if nights > stay_over_interval:
        step = timedelta(days=stay_over_interval)
        current = check_in_date + step
        while current < check_out_date:
            planned.append(PlannedTask(TaskType.STAY_OVER, current))
            current += step

    return planned


class TaskTypeResolver:
    """Turns reservation events into cleaning tasks. Flushes, never commits."""

    def __init__(self, rotation: RotationCounter | None = None) -> None:
        self.rotation = rotation or RotationCounter()

    def plan(self, session: Session, reservation: Reservation, settings: TenantSettings) -> list[PlannedTask]:
        checkout_type = self.rotation.peek_next_task_type(session, reservation.property_id, settings)
        return plan_tasks(
            reservation.check_in_date,
            reservation.check_out_date,
            settings.stay_over_interval,
            checkout_type,
        )

    def on_reservation_created(
        self,
        session: Session,
        reservation: Reservation,
        settings: TenantSettings,
    ) -> list[CleaningTask]:
        """Create the pending tasks for a new reservation.

        Calling it again for the same reservation returns the tasks already
        there instead of duplicating them. The partial unique indexes on
        ``cleaning_tasks`` settle the case where two writers both saw no
        tasks: the loser rolls back to its savepoint and gets the winner's rows.
        """
        if reservation.status in _NO_TASK_STATUSES:
            logger.info("Reservation %s is %s, no cleaning tasks", reservation.id, reservation.status)
            return []

        existing = open_or_done_tasks(session, reservation.id)
        if existing:
            logger.debug("Reservation %s already has %d tasks", reservation.id, len(existing))
            return existing

        tasks = [
            CleaningTask(
                tenant_id=reservation.tenant_id,
                property_id=reservation.property_id,
                reservation_id=reservation.id,
                task_type=planned.task_type.value,
                scheduled_date=planned.scheduled_date,
                status=TaskStatus.PENDING.value,
                is_priority=bool(reservation.is_priority),
                checkout_reported_at=None,
            )
            for planned in self.plan(session, reservation, settings)
        ]
        try:
            with session.begin_nested():
                session.add_all(tasks)
                session.flush()
        except IntegrityError:
            existing = open_or_done_tasks(session, reservation.id)
            if not existing:
                raise
            logger.info("Reservation %s got its cleaning tasks from a concurrent writer", reservation.id)
            return existing

        logger.info(
            "Created %d cleaning tasks for reservation %s (%s)",
            len(tasks),
            reservation.id,
            tasks[0].task_type,
        )
        queue_event(session, Event(
            event_type=EventType.CLEANING_TASKS_CREATED,
            data={
                "reservation_id": reservation.id,
                "property_id": reservation.property_id,
                "task_ids": [t.id for t in tasks],
                "checkout_task_type": tasks[0].task_type,
            },
        ))
        return tasks

    def on_checkout_reported(
        self,
        session: Session,
        reservation: Reservation,
        is_priority: bool | None = None,
        reported_at: datetime | None = None,
    ) -> CleaningTask:
        """Stamp the reservation's check-out task. Status is left alone."""
        task = checkout_task_for(session, reservation.id)
        if task is None:
            raise TaskNotFoundError(f"No check-out cleaning task for reservation {reservation.id}")

        task.checkout_reported_at = reported_at or utc_now()
        if is_priority is not None:
            task.is_priority = is_priority
        session.flush()
        return task


def open_or_done_tasks(session: Session, reservation_id: int) -> list[CleaningTask]:
    return list(
        session.scalars(
            select(CleaningTask)
            .where(
                CleaningTask.reservation_id == reservation_id,
                CleaningTask.status != TaskStatus.CANCELLED.value,
            )
            .order_by(CleaningTask.scheduled_date.desc(), CleaningTask.id)
        )
    )


def checkout_task_for(session: Session, reservation_id: int) -> CleaningTask | None:
    """The reservation's non-cancelled check_out / deep_cleaning task, if any."""
    return session.scalars(
        select(CleaningTask)
        .where(
            CleaningTask.reservation_id == reservation_id,
            CleaningTask.task_type.in_(CHECKOUT_TASK_TYPES),
            CleaningTask.status != TaskStatus.CANCELLED.value,
        )
        .order_by(CleaningTask.id.desc())
    ).first()
