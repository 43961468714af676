"""Tests for task planning and creation from reservations."""

from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from cleanrota.database import Base
from cleanrota.errors import ConfigurationError, TaskNotFoundError
from cleanrota.events import EventType
from cleanrota.models.property import Property
from cleanrota.models.reservation import Reservation
from cleanrota.models.task import CleaningTask, TaskStatus, TaskType
from cleanrota.models.tenant import Tenant
from cleanrota.modules.housekeeping.resolver import TaskTypeResolver, open_or_done_tasks, plan_tasks
from cleanrota.modules.housekeeping.settings import TenantSettings, load_tenant_settings

from conftest import make_reservation, received_types


def test_plan_nine_night_stay():
    planned = plan_tasks(date(2025, 1, 1), date(2025, 1, 10), 3)

    assert [(p.task_type, p.scheduled_date) for p in planned] == [
        (TaskType.CHECK_OUT, date(2025, 1, 10)),
        (TaskType.STAY_OVER, date(2025, 1, 4)),
        (TaskType.STAY_OVER, date(2025, 1, 7)),
    ]


def test_plan_stay_over_never_on_checkout_day():
    planned = plan_tasks(date(2025, 1, 1), date(2025, 1, 7), 3)

    assert [p.scheduled_date for p in planned if p.task_type == TaskType.STAY_OVER] == [date(2025, 1, 4)]


@pytest.mark.parametrize("nights", [1, 2, 3])
def test_plan_short_stay_has_no_stay_over(nights):
    check_in = date(2025, 1, 1)
    planned = plan_tasks(check_in, date(2025, 1, 1 + nights), 3)

    assert [p.task_type for p in planned] == [TaskType.CHECK_OUT]


def test_plan_uses_given_checkout_type():
    planned = plan_tasks(date(2025, 1, 1), date(2025, 1, 2), 3, TaskType.DEEP_CLEANING)
    assert planned[0].task_type == TaskType.DEEP_CLEANING


def test_plan_rejects_bad_input():
    with pytest.raises(ValueError):
        plan_tasks(date(2025, 1, 5), date(2025, 1, 5), 3)
    with pytest.raises(ValueError):
        plan_tasks(date(2025, 1, 1), date(2025, 1, 5), 0)


def test_reservation_created_persists_tasks(db_session: Session, sample_property: Property, event_bus):
    reservation = make_reservation(db_session, sample_property, date(2025, 1, 1), date(2025, 1, 10), is_priority=True)
    settings = load_tenant_settings(db_session, sample_property.tenant_id)

    tasks = TaskTypeResolver().on_reservation_created(db_session, reservation, settings)
    db_session.commit()

    assert len(tasks) == 3
    assert all(t.status == TaskStatus.PENDING.value for t in tasks)
    assert all(t.reservation_id == reservation.id for t in tasks)
    assert all(t.is_priority for t in tasks)
    assert all(t.checkout_reported_at is None for t in tasks)
    assert sorted(t.scheduled_date for t in tasks) == [date(2025, 1, 4), date(2025, 1, 7), date(2025, 1, 10)]
    assert received_types(event_bus) == [EventType.CLEANING_TASKS_CREATED]
    assert event_bus.received[0].data["checkout_task_type"] == "check_out"


def test_reservation_created_is_idempotent(db_session: Session, sample_reservation: Reservation, event_bus):
    settings = load_tenant_settings(db_session, sample_reservation.tenant_id)
    resolver = TaskTypeResolver()

    first = resolver.on_reservation_created(db_session, sample_reservation, settings)
    second = resolver.on_reservation_created(db_session, sample_reservation, settings)
    db_session.commit()

    assert [t.id for t in first] == [t.id for t in second]
    count = db_session.query(CleaningTask).filter(CleaningTask.reservation_id == sample_reservation.id).count()
    assert count == 1
    assert received_types(event_bus) == [EventType.CLEANING_TASKS_CREATED]


@pytest.mark.parametrize("status", ["cancelled", "no_show"])
def test_no_tasks_for_dead_reservation(db_session: Session, sample_property: Property, status):
    reservation = make_reservation(db_session, sample_property, date(2025, 1, 1), date(2025, 1, 3), status=status)
    settings = load_tenant_settings(db_session, sample_property.tenant_id)

    assert TaskTypeResolver().on_reservation_created(db_session, reservation, settings) == []
    assert db_session.query(CleaningTask).count() == 0


def test_checkout_reported_stamps_task(db_session: Session, sample_reservation: Reservation, event_bus):
    settings = load_tenant_settings(db_session, sample_reservation.tenant_id)
    resolver = TaskTypeResolver()
    (task,) = resolver.on_reservation_created(db_session, sample_reservation, settings)
    reported = datetime(2025, 3, 4, 15, 30, tzinfo=timezone.utc)

    stamped = resolver.on_checkout_reported(db_session, sample_reservation, is_priority=True, reported_at=reported)

    assert stamped.id == task.id
    assert stamped.checkout_reported_at == reported
    assert stamped.is_priority is True
    assert stamped.status == TaskStatus.PENDING.value


def test_checkout_reported_without_task(db_session: Session, sample_reservation: Reservation):
    with pytest.raises(TaskNotFoundError):
        TaskTypeResolver().on_checkout_reported(db_session, sample_reservation)


def test_missing_tenant_is_configuration_error(db_session: Session):
    with pytest.raises(ConfigurationError):
        load_tenant_settings(db_session, 404)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"stay_over_interval": 0, "deep_cleaning_interval": 11, "timezone": "America/Bogota"},
        {"stay_over_interval": 3, "deep_cleaning_interval": -1, "timezone": "America/Bogota"},
        {"stay_over_interval": 3, "deep_cleaning_interval": 11, "timezone": "Mars/Olympus"},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        TenantSettings(**kwargs)


@pytest.fixture
def two_workers(tmp_path):
    """Two sessions on one SQLite file and a nine-night reservation with no tasks yet."""
    engine = create_engine(f"sqlite:///{tmp_path / 'workers.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    setup = factory()
    tenant = Tenant(name="Workers", stay_over_interval=3, deep_cleaning_interval=11, timezone="America/Bogota")
    setup.add(tenant)
    setup.flush()
    prop = Property(tenant_id=tenant.id, name="604")
    setup.add(prop)
    setup.flush()
    reservation = make_reservation(setup, prop, date(2025, 1, 1), date(2025, 1, 10))
    reservation_id = reservation.id
    setup.close()

    first, second = factory(), factory()
    yield first, second, reservation_id
    first.close()
    second.close()
    engine.dispose()


def test_concurrent_creation_keeps_one_set_of_tasks(two_workers, event_bus):
    first, second, reservation_id = two_workers
    resolver = TaskTypeResolver()

    lookups = []

    def lookup_before_other_commit(session, rid):
        lookups.append(rid)
        if len(lookups) == 1:
            # Second worker checked before the first one committed
            return []
        return open_or_done_tasks(session, rid)

    winner = resolver.on_reservation_created(
        first, first.get(Reservation, reservation_id), load_tenant_settings(first, 1),
    )
    first.commit()

    with patch(
        "cleanrota.modules.housekeeping.resolver.open_or_done_tasks",
        side_effect=lookup_before_other_commit,
    ):
        loser = resolver.on_reservation_created(
            second, second.get(Reservation, reservation_id), load_tenant_settings(second, 1),
        )
    second.commit()

    assert len(lookups) == 2
    assert sorted(t.id for t in loser) == sorted(t.id for t in winner)
    stored = second.query(CleaningTask).filter(CleaningTask.reservation_id == reservation_id).count()
    assert stored == 3
    assert received_types(event_bus) == [EventType.CLEANING_TASKS_CREATED]


def test_conflicting_insert_keeps_earlier_work(db_session: Session, sample_property: Property):
    """A unique-index clash only unwinds the task insert, not the rest of the transaction."""
    reservation = make_reservation(db_session, sample_property, date(2025, 1, 1), date(2025, 1, 3))
    settings = load_tenant_settings(db_session, sample_property.tenant_id)
    resolver = TaskTypeResolver()
    (existing,) = resolver.on_reservation_created(db_session, reservation, settings)
    db_session.commit()

    reservation.notes = "Late arrival"
    db_session.flush()
    with patch("cleanrota.modules.housekeeping.resolver.open_or_done_tasks", side_effect=[[], [existing]]):
        tasks = resolver.on_reservation_created(db_session, reservation, settings)
    db_session.commit()

    assert tasks == [existing]
    db_session.expire_all()
    assert db_session.get(Reservation, reservation.id).notes == "Late arrival"
    assert db_session.query(CleaningTask).count() == 1
