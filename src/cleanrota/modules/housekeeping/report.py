"""Checkout report: today's departures with their cleaning progress."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from cleanrota.models.property import Property
from cleanrota.models.reservation import Reservation
from cleanrota.models.task import CHECKOUT_TASK_TYPES, CleaningTask, TaskStatus
from cleanrota.modules.housekeeping.projector import (
    CheckoutReportProjector,
    ProjectedStatus,
    Projection,
)
from cleanrota.modules.housekeeping.settings import TenantSettings
from cleanrota.timeutil import utc_now


@dataclass
class CheckoutReportRow:
    reservation: Reservation
    property_name: str
    task: CleaningTask | None
    projection: Projection

    @property
    def projected_status(self) -> ProjectedStatus:
        return self.projection.status


@dataclass
class CheckoutReport:
    date: date
    rows: list[CheckoutReportRow] = field(default_factory=list)
    # Counts across every departure of the day, before the status filter
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def total_checkouts(self) -> int:
        return sum(self.summary.values())


def build_checkout_report(
    session: Session,
    tenant_id: int,
    day: date,
    settings: TenantSettings,
    statuses: Iterable[str] | None = None,
    *,
    now: datetime | None = None,
    projector: CheckoutReportProjector | None = None,
) -> CheckoutReport:
    projector = projector or CheckoutReportProjector()
    now = now or utc_now()
    wanted = [ProjectedStatus(s) for s in statuses or []]

    departures = session.execute(
        select(Reservation, Property.name)
        .join(Property, Property.id == Reservation.property_id)
        .where(
            Reservation.tenant_id == tenant_id,
            Reservation.check_out_date == day,
            Reservation.status != "cancelled",
        )
        .order_by(Reservation.checkout_time.is_(None), Reservation.checkout_time, Property.name)
    ).all()

    tasks_by_reservation: dict[int, CleaningTask] = {}
    reservation_ids = [r.id for r, _ in departures]
    if reservation_ids:
        tasks = session.scalars(
            select(CleaningTask)
            .where(
                CleaningTask.reservation_id.in_(reservation_ids),
                CleaningTask.task_type.in_(CHECKOUT_TASK_TYPES),
                CleaningTask.status != TaskStatus.CANCELLED.value,
            )
            .order_by(CleaningTask.id)
        )
        for task in tasks:
            tasks_by_reservation[task.reservation_id] = task

    report = CheckoutReport(date=day)
    counts: Counter[str] = Counter({s.value: 0 for s in ProjectedStatus})
    for reservation, property_name in departures:
        task = tasks_by_reservation.get(reservation.id)
        projection = projector.project(reservation, task, now, settings.zone)
        counts[projection.status.value] += 1
        if projection.matches(wanted):
            report.rows.append(CheckoutReportRow(reservation, property_name, task, projection))

    report.summary = dict(counts)
    return report
