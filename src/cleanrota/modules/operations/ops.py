"""Housekeeping operations: one call, one transaction.

OperationsManager is what the API and the scheduler talk to.
Each method opens a session, runs the housekeeping core inside it, commits
(which publishes any queued events) or rolls back, and closes the session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy import select

from cleanrota.config import settings
from cleanrota.database import get_session
from cleanrota.errors import (
    InvalidStateError,
    PropertyNotFoundError,
    ReservationNotFoundError,
    TaskNotFoundError,
)
from cleanrota.events import Event, EventType, queue_event
from cleanrota.models.property import Property
from cleanrota.models.reservation import Reservation
from cleanrota.models.task import CleaningTask, TaskStatus, TaskType
from cleanrota.modules.housekeeping.projector import CheckoutReportProjector
from cleanrota.modules.housekeeping.report import CheckoutReport, CheckoutReportRow, build_checkout_report
from cleanrota.modules.housekeeping.resolver import TaskTypeResolver, open_or_done_tasks
from cleanrota.modules.housekeeping.rotation import RotationCounter, RotationProgress
from cleanrota.modules.housekeeping.settings import load_tenant_settings
from cleanrota.modules.housekeeping.state_machine import CleaningTaskStateMachine
from cleanrota.timeutil import local_now, utc_now

logger = logging.getLogger(__name__)

# Reservations that still hold their dates
_LIVE_RESERVATION_STATUSES = ("active", "checked_in")


@dataclass
class DailyTasks:
    date: date
    tasks: list[CleaningTask] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def grouped(self) -> dict[str, list[CleaningTask]]:
        groups: dict[str, list[CleaningTask]] = {t.value: [] for t in TaskType}
        for task in self.tasks:
            groups.setdefault(task.task_type, []).append(task)
        return groups


class OperationsManager:
    """Runs the housekeeping core against the database."""

    def __init__(
        self,
        rotation: RotationCounter | None = None,
        resolver: TaskTypeResolver | None = None,
        state_machine: CleaningTaskStateMachine | None = None,
        projector: CheckoutReportProjector | None = None,
    ) -> None:
        hk_config = settings.get("housekeeping", {})
        self.rotation = rotation or RotationCounter()
        self.resolver = resolver or TaskTypeResolver(self.rotation)
        self.state_machine = state_machine or CleaningTaskStateMachine(
            self.rotation,
            require_checkout_report=bool(hk_config.get("require_checkout_report", False)),
        )
        self.projector = projector or CheckoutReportProjector(
            urgent_after=timedelta(minutes=hk_config.get("urgent_after_minutes", 30)),
        )

    # --- Reservations ---

    def create_reservation(
        self,
        property_id: int,
        check_in_date: date,
        check_out_date: date,
        *,
        guest_name: str | None = None,
        checkout_time: time | None = None,
        is_priority: bool = False,
        adults: int = 1,
        children: int = 0,
        infants: int = 0,
        notes: str | None = None,
    ) -> tuple[Reservation, list[CleaningTask]]:
        """Book a stay and plan its cleaning in one transaction.

        A stay overlapping another live reservation of the same property is
        refused. Back-to-back stays (check-out day == next check-in day) are fine.
        """
        if check_out_date <= check_in_date:
            raise ValueError("Check-out date must be after check-in date")

        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if prop is None:
                raise PropertyNotFoundError(f"Property {property_id} not found")

            clash = session.scalars(
                select(Reservation)
                .where(
                    Reservation.tenant_id == prop.tenant_id,
                    Reservation.property_id == property_id,
                    Reservation.status.in_(_LIVE_RESERVATION_STATUSES),
                    Reservation.check_in_date < check_out_date,
                    Reservation.check_out_date > check_in_date,
                )
                .order_by(Reservation.check_in_date)
            ).first()
            if clash is not None:
                raise InvalidStateError(
                    f"Property {prop.name} is already booked {clash.check_in_date}..{clash.check_out_date} "
                    f"(reservation {clash.id})",
                    status=clash.status,
                )

            reservation = Reservation(
                tenant_id=prop.tenant_id,
                property_id=property_id,
                guest_name=guest_name,
                check_in_date=check_in_date,
                check_out_date=check_out_date,
                checkout_time=checkout_time,
                status="active",
                is_priority=is_priority,
                adults=adults,
                children=children,
                infants=infants,
                notes=notes,
            )
            session.add(reservation)
            session.flush()

            tenant_settings = load_tenant_settings(session, prop.tenant_id)
            tasks = self.resolver.on_reservation_created(session, reservation, tenant_settings)
            queue_event(session, Event(
                event_type=EventType.RESERVATION_CREATED,
                data={
                    "reservation_id": reservation.id,
                    "tenant_id": reservation.tenant_id,
                    "property_id": property_id,
                    "check_in_date": str(check_in_date),
                    "check_out_date": str(check_out_date),
                    "is_priority": bool(is_priority),
                    "task_ids": [t.id for t in tasks],
                },
            ))
            session.commit()
            logger.info(
                "Created reservation %s for property %s (%s..%s), %d cleaning tasks",
                reservation.id,
                prop.name,
                check_in_date,
                check_out_date,
                len(tasks),
            )
            return reservation, tasks
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_cleaning_tasks(self, reservation_id: int) -> list[CleaningTask]:
        """Generate the check-out / deep-clean and stay-over tasks for a reservation."""
        session = get_session()
        try:
            reservation = self._get_reservation(session, reservation_id)
            tenant_settings = load_tenant_settings(session, reservation.tenant_id)
            tasks = self.resolver.on_reservation_created(session, reservation, tenant_settings)
            session.commit()
            return tasks
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def report_checkout(
        self,
        reservation_id: int,
        actual_checkout_time: time | None = None,
        is_priority: bool | None = None,
    ) -> CleaningTask:
        """Record that the guest left and flag the check-out task as ready to clean."""
        session = get_session()
        try:
            reservation = self._get_reservation(session, reservation_id)
            if reservation.status == "cancelled":
                raise InvalidStateError(f"Reservation {reservation_id} is cancelled")

            tenant_settings = load_tenant_settings(session, reservation.tenant_id)
            now = utc_now()
            if actual_checkout_time is None:
                actual_checkout_time = local_now(tenant_settings.zone, now).time().replace(microsecond=0)

            reservation.actual_checkout_time = actual_checkout_time
            reservation.status = "checked_out"
            if is_priority is not None:
                reservation.is_priority = is_priority

            try:
                task = self.resolver.on_checkout_reported(session, reservation, is_priority, reported_at=now)
            except TaskNotFoundError:
                logger.warning(
                    "Checkout reported for reservation %s but it has no cleaning task",
                    reservation_id,
                )
                raise

            queue_event(session, Event(
                event_type=EventType.CHECKOUT_REPORTED,
                data={
                    "reservation_id": reservation.id,
                    "task_id": task.id,
                    "tenant_id": reservation.tenant_id,
                    "property_id": reservation.property_id,
                    "property_name": reservation.prop.name,
                    "actual_checkout_time": actual_checkout_time.strftime("%H:%M"),
                    "guests": reservation.total_guests,
                    "task_type": task.task_type,
                    "is_priority": task.is_priority,
                },
            ))
            session.commit()
            logger.info("Checkout reported for reservation %s at %s", reservation_id, actual_checkout_time)
            return task
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def cancel_reservation(self, reservation_id: int) -> int:
        """Cancel a reservation and, in the same transaction, its open cleaning tasks."""
        session = get_session()
        try:
            reservation = self._get_reservation(session, reservation_id)
            if reservation.status == "cancelled":
                return 0
            reservation.status = "cancelled"
            cancelled = self.state_machine.cancel_for_reservation(session, reservation_id)
            queue_event(session, Event(
                event_type=EventType.RESERVATION_CANCELLED,
                data={
                    "reservation_id": reservation_id,
                    "tenant_id": reservation.tenant_id,
                    "property_id": reservation.property_id,
                    "property_name": reservation.prop.name,
                    "check_in_date": str(reservation.check_in_date),
                    "check_out_date": str(reservation.check_out_date),
                    "cleaning_tasks_cancelled": cancelled,
                },
            ))
            session.commit()
            logger.info("Cancelled reservation %s (%d tasks)", reservation_id, cancelled)
            return cancelled
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def reschedule_reservation(
        self,
        reservation_id: int,
        check_in_date: date,
        check_out_date: date,
    ) -> list[CleaningTask]:
        """Move a reservation's dates and regenerate its pending tasks.

        Refused once any of its cleaning has started or finished: those
        tasks can't be re-dated after the fact.
        """
        if check_out_date <= check_in_date:
            raise ValueError("Check-out date must be after check-in date")

        session = get_session()
        try:
            reservation = self._get_reservation(session, reservation_id)
            if reservation.status == "cancelled":
                raise InvalidStateError(f"Reservation {reservation_id} is cancelled")

            locked = [
                t for t in open_or_done_tasks(session, reservation_id)
                if t.status in (TaskStatus.IN_PROGRESS.value, TaskStatus.COMPLETED.value)
            ]
            if locked:
                raise InvalidStateError(
                    f"Reservation {reservation_id} has {len(locked)} started or completed "
                    "cleaning tasks; cancel and recreate it instead",
                    task_id=locked[0].id,
                    status=locked[0].status,
                )

            self.state_machine.cancel_for_reservation(session, reservation_id)
            reservation.check_in_date = check_in_date
            reservation.check_out_date = check_out_date
            session.flush()

            tenant_settings = load_tenant_settings(session, reservation.tenant_id)
            tasks = self.resolver.on_reservation_created(session, reservation, tenant_settings)
            queue_event(session, Event(
                event_type=EventType.RESERVATION_RESCHEDULED,
                data={
                    "reservation_id": reservation_id,
                    "check_in_date": str(check_in_date),
                    "check_out_date": str(check_out_date),
                },
            ))
            session.commit()
            return tasks
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- Task transitions ---

    def start_task(self, task_id: int, assigned_to: int | None = None) -> CleaningTask:
        return self._transition(self.state_machine.start, task_id, assigned_to)

    def complete_task(
        self,
        task_id: int,
        notes: str | None = None,
        completed_by: int | None = None,
    ) -> CleaningTask:
        return self._transition(self.state_machine.complete, task_id, notes, completed_by)

    def cancel_task(self, task_id: int) -> CleaningTask:
        return self._transition(self.state_machine.cancel, task_id)

    def assign_task(
        self,
        task_id: int,
        assigned_to: int | None = None,
        scheduled_date: date | None = None,
        notes: str | None = None,
    ) -> CleaningTask:
        """Hand a pending task to someone, move it to another day, or add notes."""
        return self._transition(
            self.state_machine.assign,
            task_id,
            assigned_to,
            scheduled_date=scheduled_date,
            notes=notes,
        )

    def _transition(self, action: Callable[..., CleaningTask], task_id: int, *args, **kwargs) -> CleaningTask:
        session = get_session()
        try:
            task = action(session, task_id, *args, **kwargs)
            session.commit()
            return task
        except InvalidStateError as exc:
            session.rollback()
            logger.warning("Rejected %s on task %s: %s", action.__name__, task_id, exc)
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_manual_task(
        self,
        property_id: int,
        task_type: str,
        scheduled_date: date,
        assigned_to: int | None = None,
        notes: str | None = None,
    ) -> CleaningTask:
        """Schedule a task with no reservation behind it, e.g. a one-off deep clean."""
        task_type = TaskType(task_type).value

        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if prop is None:
                raise PropertyNotFoundError(f"Property {property_id} not found")

            task = CleaningTask(
                tenant_id=prop.tenant_id,
                property_id=property_id,
                reservation_id=None,
                task_type=task_type,
                scheduled_date=scheduled_date,
                status=TaskStatus.PENDING.value,
                assigned_to=assigned_to,
                assigned_at=utc_now() if assigned_to is not None else None,
                notes=notes,
            )
            session.add(task)
            session.flush()
            queue_event(session, Event(
                event_type=EventType.CLEANING_TASKS_CREATED,
                data={"property_id": property_id, "task_ids": [task.id], "checkout_task_type": task_type},
            ))
            session.commit()
            logger.info("Created manual %s task for property %s on %s", task_type, property_id, scheduled_date)
            return task
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- Queries ---

    def get_task(self, task_id: int) -> CleaningTask:
        session = get_session()
        try:
            task = session.get(CleaningTask, task_id)
            if task is None:
                raise TaskNotFoundError(f"Cleaning task {task_id} not found")
            return task
        finally:
            session.close()

    def list_tasks(
        self,
        tenant_id: int | None = None,
        property_id: int | None = None,
        task_type: str | None = None,
        status: str | None = None,
        scheduled_date: date | None = None,
        assigned_to: int | None = None,
    ) -> list[CleaningTask]:
        session = get_session()
        try:
            query = select(CleaningTask)
            if tenant_id is not None:
                query = query.where(CleaningTask.tenant_id == tenant_id)
            if property_id is not None:
                query = query.where(CleaningTask.property_id == property_id)
            if task_type:
                query = query.where(CleaningTask.task_type == TaskType(task_type).value)
            if status:
                query = query.where(CleaningTask.status == TaskStatus(status).value)
            if scheduled_date is not None:
                query = query.where(CleaningTask.scheduled_date == scheduled_date)
            if assigned_to is not None:
                query = query.where(CleaningTask.assigned_to == assigned_to)
            query = query.order_by(CleaningTask.scheduled_date.asc(), CleaningTask.created_at.desc())
            return list(session.scalars(query))
        finally:
            session.close()

    def todays_tasks(self, tenant_id: int, day: date | None = None) -> DailyTasks:
        """Non-cancelled tasks scheduled for ``day`` (default: today in the tenant's timezone)."""
        session = get_session()
        try:
            tenant_settings = load_tenant_settings(session, tenant_id)
            day = day or local_now(tenant_settings.zone).date()
            tasks = session.scalars(
                select(CleaningTask)
                .join(Property, Property.id == CleaningTask.property_id)
                .where(
                    CleaningTask.tenant_id == tenant_id,
                    CleaningTask.scheduled_date == day,
                    CleaningTask.status != TaskStatus.CANCELLED.value,
                )
                .order_by(CleaningTask.is_priority.desc(), CleaningTask.task_type, Property.name)
            )
            return DailyTasks(date=day, tasks=list(tasks))
        finally:
            session.close()

    def checkout_report(
        self,
        tenant_id: int,
        day: date | None = None,
        statuses: list[str] | None = None,
        now: datetime | None = None,
    ) -> CheckoutReport:
        session = get_session()
        try:
            tenant_settings = load_tenant_settings(session, tenant_id)
            day = day or local_now(tenant_settings.zone, now).date()
            return build_checkout_report(
                session,
                tenant_id,
                day,
                tenant_settings,
                statuses,
                now=now,
                projector=self.projector,
            )
        finally:
            session.close()

    def waiting_too_long(self, tenant_id: int, now: datetime | None = None) -> list[CheckoutReportRow]:
        """Today's checked-out units whose cleaning hasn't started in time."""
        report = self.checkout_report(tenant_id, statuses=["checked_out"], now=now)
        return [row for row in report.rows if row.projection.is_urgent]

    def rotation_progress(self, property_id: int) -> RotationProgress:
        session = get_session()
        try:
            prop = session.get(Property, property_id)
            if prop is None:
                raise PropertyNotFoundError(f"Property {property_id} not found")
            tenant_settings = load_tenant_settings(session, prop.tenant_id)
            return self.rotation.progress(session, property_id, tenant_settings)
        finally:
            session.close()

    @staticmethod
    def _get_reservation(session, reservation_id: int) -> Reservation:
        reservation = session.get(Reservation, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return reservation

