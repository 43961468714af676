"""Tests for the checkout/cleaning status projection."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.orm import Session

from cleanrota.models.reservation import Reservation
from cleanrota.models.task import CleaningTask, TaskStatus, TaskType
from cleanrota.modules.housekeeping.projector import (
    CheckoutReportProjector,
    ProjectedStatus,
    Projection,
    format_elapsed,
)
from cleanrota.modules.housekeeping.resolver import TaskTypeResolver
from cleanrota.modules.housekeeping.settings import load_tenant_settings
from cleanrota.modules.housekeeping.state_machine import CleaningTaskStateMachine

BOGOTA = ZoneInfo("America/Bogota")  # UTC-5, no DST


def _reservation(actual_checkout_time=None) -> Reservation:
    return Reservation(
        tenant_id=1,
        property_id=1,
        check_in_date=date(2025, 3, 1),
        check_out_date=date(2025, 3, 4),
        actual_checkout_time=actual_checkout_time,
        status="active",
    )


def _task(status: TaskStatus, started_at=None, completed_at=None) -> CleaningTask:
    return CleaningTask(
        tenant_id=1,
        property_id=1,
        reservation_id=1,
        task_type=TaskType.CHECK_OUT.value,
        scheduled_date=date(2025, 3, 4),
        status=status.value,
        started_at=started_at,
        completed_at=completed_at,
    )


# 11:00 in Bogota
LEFT_AT = datetime(2025, 3, 4, 16, 0, tzinfo=timezone.utc)


def test_no_task():
    projection = CheckoutReportProjector().project(_reservation(), None, LEFT_AT, BOGOTA)
    assert projection.status == ProjectedStatus.NO_TASK
    assert projection.elapsed is None


def test_cancelled_task_counts_as_no_task():
    projection = CheckoutReportProjector().project(_reservation(), _task(TaskStatus.CANCELLED), LEFT_AT, BOGOTA)
    assert projection.status == ProjectedStatus.NO_TASK


def test_waiting_checkout():
    projection = CheckoutReportProjector().project(_reservation(), _task(TaskStatus.PENDING), LEFT_AT, BOGOTA)
    assert projection.status == ProjectedStatus.WAITING_CHECKOUT
    assert projection.elapsed is None
    assert projection.elapsed_display == "-"


def test_checked_out_elapsed_in_tenant_timezone():
    reservation = _reservation(actual_checkout_time=time(11, 0))
    now = LEFT_AT + timedelta(minutes=45)

    projection = CheckoutReportProjector().project(reservation, _task(TaskStatus.PENDING), now, BOGOTA)

    assert projection.status == ProjectedStatus.CHECKED_OUT
    assert projection.elapsed_minutes == 45
    assert projection.live is True
    assert projection.is_urgent is True


def test_checked_out_not_yet_urgent():
    reservation = _reservation(actual_checkout_time=time(11, 0))
    projection = CheckoutReportProjector().project(
        reservation, _task(TaskStatus.PENDING), LEFT_AT + timedelta(minutes=30), BOGOTA
    )
    assert projection.is_urgent is False


def test_future_checkout_clamps_elapsed():
    reservation = _reservation(actual_checkout_time=time(11, 0))
    projection = CheckoutReportProjector().project(
        reservation, _task(TaskStatus.PENDING), LEFT_AT - timedelta(minutes=10), BOGOTA
    )
    assert projection.status == ProjectedStatus.CHECKED_OUT
    assert projection.elapsed is None


def test_in_progress_elapsed_since_start():
    task = _task(TaskStatus.IN_PROGRESS, started_at=LEFT_AT)
    projection = CheckoutReportProjector().project(
        _reservation(time(11, 0)), task, LEFT_AT + timedelta(hours=1, minutes=5), BOGOTA
    )
    assert projection.status == ProjectedStatus.IN_PROGRESS
    assert projection.elapsed_display == "1h 5m"
    assert projection.is_urgent is False


def test_in_progress_even_without_checkout_report():
    task = _task(TaskStatus.IN_PROGRESS, started_at=LEFT_AT)
    projection = CheckoutReportProjector().project(_reservation(), task, LEFT_AT, BOGOTA)
    assert projection.status == ProjectedStatus.IN_PROGRESS


def test_completed_duration_is_frozen():
    task = _task(TaskStatus.COMPLETED, started_at=LEFT_AT, completed_at=LEFT_AT + timedelta(minutes=40))
    projector = CheckoutReportProjector()

    later = projector.project(_reservation(time(11, 0)), task, LEFT_AT + timedelta(days=1), BOGOTA)
    much_later = projector.project(_reservation(time(11, 0)), task, LEFT_AT + timedelta(days=9), BOGOTA)

    assert later.status == ProjectedStatus.COMPLETED
    assert later.elapsed_minutes == 40
    assert later.live is False
    assert later == much_later


def test_naive_timestamps_read_as_utc():
    task = _task(TaskStatus.IN_PROGRESS, started_at=datetime(2025, 3, 4, 16, 0))
    projection = CheckoutReportProjector().project(
        _reservation(), task, LEFT_AT + timedelta(minutes=12), BOGOTA
    )
    assert projection.elapsed_minutes == 12


def test_projection_is_repeatable():
    reservation = _reservation(time(11, 0))
    task = _task(TaskStatus.PENDING)
    projector = CheckoutReportProjector()
    now = LEFT_AT + timedelta(minutes=5)

    assert projector.project(reservation, task, now, BOGOTA) == projector.project(reservation, task, now, BOGOTA)
    assert task.status == TaskStatus.PENDING.value


@pytest.mark.parametrize(
    "elapsed,expected",
    [
        (None, "-"),
        (timedelta(seconds=59), "0m"),
        (timedelta(minutes=12), "12m"),
        (timedelta(hours=1), "1h 0m"),
        (timedelta(hours=2, minutes=7, seconds=30), "2h 7m"),
    ],
)
def test_format_elapsed(elapsed, expected):
    assert format_elapsed(elapsed) == expected


def test_matches_filter():
    checked_out = Projection(ProjectedStatus.CHECKED_OUT)
    no_task = Projection(ProjectedStatus.NO_TASK)

    assert checked_out.matches([])
    assert checked_out.matches(["checked_out", "in_progress"])
    assert not checked_out.matches(["completed"])
    assert no_task.matches(None)
    assert not no_task.matches(["waiting_checkout"])


def test_lifecycle_projection(db_session: Session, sample_reservation: Reservation):
    """waiting_checkout -> checked_out -> in_progress -> completed."""
    settings = load_tenant_settings(db_session, sample_reservation.tenant_id)
    resolver = TaskTypeResolver()
    machine = CleaningTaskStateMachine()
    projector = CheckoutReportProjector()
    (task,) = resolver.on_reservation_created(db_session, sample_reservation, settings)

    def status_at(now):
        return projector.project(sample_reservation, task, now, settings.zone).status

    assert status_at(LEFT_AT) == ProjectedStatus.WAITING_CHECKOUT

    sample_reservation.actual_checkout_time = time(11, 0)
    resolver.on_checkout_reported(db_session, sample_reservation, reported_at=LEFT_AT)
    assert status_at(LEFT_AT + timedelta(minutes=5)) == ProjectedStatus.CHECKED_OUT

    machine.start(db_session, task.id, now=LEFT_AT + timedelta(minutes=10))
    assert status_at(LEFT_AT + timedelta(minutes=15)) == ProjectedStatus.IN_PROGRESS

    machine.complete(db_session, task.id, now=LEFT_AT + timedelta(minutes=55))
    assert status_at(LEFT_AT + timedelta(minutes=60)) == ProjectedStatus.COMPLETED
