"""Shared test fixtures."""

from __future__ import annotations

import os
from datetime import date, time
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"  # In-memory DB for tests

from cleanrota.database import Base
from cleanrota.events import EventBus, EventType
from cleanrota.models.property import Property
from cleanrota.models.reservation import Reservation
from cleanrota.models.tenant import Tenant

# Import all models to register them
import cleanrota.models.task  # noqa: F401


def _noop_close(self):
    pass


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    session = session_factory()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def tenant(db_session: Session) -> Tenant:
    tenant = Tenant(name="Casa Delicias", stay_over_interval=3, deep_cleaning_interval=11, timezone="America/Bogota")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def sample_property(db_session: Session, tenant: Tenant) -> Property:
    prop = Property(tenant_id=tenant.id, name="402", cleaning_count=0)
    db_session.add(prop)
    db_session.commit()
    return prop


@pytest.fixture
def sample_reservation(db_session: Session, tenant: Tenant, sample_property: Property) -> Reservation:
    """Four-night stay, too short for a stay-over."""
    reservation = Reservation(
        tenant_id=tenant.id,
        property_id=sample_property.id,
        guest_name="Ana Gomez",
        check_in_date=date(2025, 3, 1),
        check_out_date=date(2025, 3, 4),
        checkout_time=time(11, 0),
        status="active",
        adults=2,
        children=1,
    )
    db_session.add(reservation)
    db_session.commit()
    return reservation


@pytest.fixture
def event_bus():
    """Fresh event bus wired in place of the global one, recording every event."""
    bus = EventBus()
    bus.received = []
    for event_type in EventType:
        bus.subscribe(event_type, bus.received.append)
    with patch("cleanrota.events.event_bus", bus):
        yield bus


@pytest.fixture
def ops_db(db_session: Session):
    """Route OperationsManager sessions to the test session."""
    with (
        patch("cleanrota.modules.operations.ops.get_session", return_value=db_session),
        patch.object(type(db_session), "close", _noop_close),
    ):
        yield db_session


def received_types(bus: EventBus) -> list[EventType]:
    return [e.event_type for e in bus.received]


def make_reservation(session: Session, prop: Property, check_in: date, check_out: date, **kwargs) -> Reservation:
    reservation = Reservation(
        tenant_id=prop.tenant_id,
        property_id=prop.id,
        check_in_date=check_in,
        check_out_date=check_out,
        status=kwargs.pop("status", "active"),
        **kwargs,
    )
    session.add(reservation)
    session.commit()
    return reservation

