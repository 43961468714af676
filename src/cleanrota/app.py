"""FastAPI application exposing the housekeeping operations."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from cleanrota.config import settings, tenant_defaults
from cleanrota.database import get_session, init_db
from cleanrota.errors import ConfigurationError, InvalidStateError, NotFoundError
from cleanrota.models.property import Property
from cleanrota.models.tenant import Tenant
from cleanrota.modules.housekeeping.report import CheckoutReport
from cleanrota.modules.operations import OperationsManager
from cleanrota.scheduler import create_scheduler
from cleanrota.schemas import (
    CheckoutReportIn,
    CheckoutReportOut,
    CheckoutReportRowOut,
    CleaningTaskOut,
    DailyTasksOut,
    ManualTaskIn,
    RescheduleIn,
    ReservationCancelledOut,
    ReservationCreatedOut,
    ReservationIn,
    ReservationOut,
    RotationOut,
    TaskCompleteIn,
    TasksCreatedOut,
    TaskStartIn,
    TaskUpdateIn,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting CleanRota...")
    init_db()
    seed_tenants_from_config()

    scheduler = create_scheduler()
    scheduler.start()
    logger.info("Scheduler started.")

    yield

    scheduler.shutdown()
    logger.info("CleanRota shut down.")


app = FastAPI(title="CleanRota", lifespan=lifespan)
ops = OperationsManager()


def seed_tenants_from_config() -> None:
    """Seed tenants and their properties from config.yaml if not already in DB."""
    defaults = tenant_defaults()
    session = get_session()
    try:
        for tenant_cfg in settings.get("tenants", []):
            tenant = session.query(Tenant).filter(Tenant.name == tenant_cfg["name"]).first()
            if tenant is None:
                tenant = Tenant(
                    name=tenant_cfg["name"],
                    stay_over_interval=tenant_cfg.get("stay_over_interval", defaults.get("stay_over_interval", 3)),
                    deep_cleaning_interval=tenant_cfg.get(
                        "deep_cleaning_interval", defaults.get("deep_cleaning_interval", 11)
                    ),
                    timezone=tenant_cfg.get("timezone", defaults.get("timezone", "America/Bogota")),
                )
                session.add(tenant)
                session.flush()
                logger.info("Seeded tenant: %s", tenant.name)

            for prop_cfg in tenant_cfg.get("properties", []):
                name = str(prop_cfg["name"])
                existing = (
                    session.query(Property)
                    .filter(Property.tenant_id == tenant.id, Property.name == name)
                    .first()
                )
                if existing:
                    continue
                session.add(Property(tenant_id=tenant.id, name=name, notes=prop_cfg.get("notes")))
                logger.info("Seeded property: %s", name)
        session.commit()
    finally:
        session.close()


# --- Error mapping ---


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"error": str(exc), "status": exc.status})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error: %s", exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"error": str(exc)})


# --- Reservations ---


@app.post("/reservations", response_model=ReservationCreatedOut, status_code=201)
def create_reservation(body: ReservationIn):
    """Book a stay; its cleaning tasks are created in the same transaction."""
    reservation, tasks = ops.create_reservation(
        body.property_id,
        body.check_in_date,
        body.check_out_date,
        guest_name=body.guest_name,
        checkout_time=body.checkout_time,
        is_priority=body.is_priority,
        adults=body.adults,
        children=body.children,
        infants=body.infants,
        notes=body.notes,
    )
    return ReservationCreatedOut(
        reservation=ReservationOut.model_validate(reservation),
        cleaning_tasks_created=len(tasks),
        tasks=[CleaningTaskOut.model_validate(t) for t in tasks],
    )


@app.post("/reservations/{reservation_id}/cleaning-tasks", response_model=TasksCreatedOut, status_code=201)
def create_cleaning_tasks(reservation_id: int):
    """Generate the cleaning tasks for a reservation (idempotent)."""
    tasks = ops.create_cleaning_tasks(reservation_id)
    return TasksCreatedOut(
        cleaning_tasks_created=len(tasks),
        tasks=[CleaningTaskOut.model_validate(t) for t in tasks],
    )


@app.post("/reservations/{reservation_id}/checkout", response_model=CleaningTaskOut)
def report_checkout(reservation_id: int, body: CheckoutReportIn):
    return ops.report_checkout(reservation_id, body.actual_checkout_time, body.is_priority)


@app.post("/reservations/{reservation_id}/cancel", response_model=ReservationCancelledOut)
def cancel_reservation(reservation_id: int):
    cancelled = ops.cancel_reservation(reservation_id)
    return ReservationCancelledOut(reservation_id=reservation_id, cleaning_tasks_cancelled=cancelled)


@app.put("/reservations/{reservation_id}/dates", response_model=TasksCreatedOut)
def reschedule_reservation(reservation_id: int, body: RescheduleIn):
    tasks = ops.reschedule_reservation(reservation_id, body.check_in_date, body.check_out_date)
    return TasksCreatedOut(
        cleaning_tasks_created=len(tasks),
        tasks=[CleaningTaskOut.model_validate(t) for t in tasks],
    )


# --- Cleaning tasks ---


@app.get("/cleaning-tasks", response_model=list[CleaningTaskOut])
def list_cleaning_tasks(
    tenant_id: int | None = None,
    property_id: int | None = None,
    task_type: str | None = None,
    status: str | None = None,
    scheduled_date: date | None = Query(default=None, alias="date"),
    assigned_to: int | None = None,
):
    return ops.list_tasks(tenant_id, property_id, task_type, status, scheduled_date, assigned_to)


@app.get("/cleaning-tasks/today", response_model=DailyTasksOut)
def todays_cleaning_tasks(tenant_id: int, day: date | None = Query(default=None, alias="date")):
    daily = ops.todays_tasks(tenant_id, day)
    return DailyTasksOut(
        day=daily.date,
        total=daily.total,
        tasks=[CleaningTaskOut.model_validate(t) for t in daily.tasks],
        grouped={k: [CleaningTaskOut.model_validate(t) for t in v] for k, v in daily.grouped.items()},
    )


@app.get("/cleaning-tasks/{task_id}", response_model=CleaningTaskOut)
def get_cleaning_task(task_id: int):
    return ops.get_task(task_id)


@app.put("/cleaning-tasks/{task_id}", response_model=CleaningTaskOut)
def update_cleaning_task(task_id: int, body: TaskUpdateIn):
    """Assign, re-date or annotate a pending task. Status changes go through start/complete/DELETE."""
    return ops.assign_task(task_id, body.assigned_to, body.scheduled_date, body.notes)


@app.post("/cleaning-tasks", response_model=CleaningTaskOut, status_code=201)
def create_manual_task(body: ManualTaskIn):
    return ops.create_manual_task(
        body.property_id,
        body.task_type.value,
        body.scheduled_date,
        body.assigned_to,
        body.notes,
    )


@app.put("/cleaning-tasks/{task_id}/start", response_model=CleaningTaskOut)
def start_cleaning_task(task_id: int, body: TaskStartIn | None = None):
    return ops.start_task(task_id, body.assigned_to if body else None)


@app.put("/cleaning-tasks/{task_id}/complete", response_model=CleaningTaskOut)
def complete_cleaning_task(task_id: int, body: TaskCompleteIn | None = None):
    body = body or TaskCompleteIn()
    return ops.complete_task(task_id, body.notes, body.completed_by)


@app.delete("/cleaning-tasks/{task_id}", response_model=CleaningTaskOut)
def cancel_cleaning_task(task_id: int):
    return ops.cancel_task(task_id)


# --- Rotation & reports ---


@app.get("/properties/{property_id}/rotation", response_model=RotationOut)
def property_rotation(property_id: int):
    progress = ops.rotation_progress(property_id)
    return RotationOut(
        property_id=progress.property_id,
        cleaning_count=progress.cleaning_count,
        deep_cleaning_interval=progress.deep_cleaning_interval,
        next_task_type=progress.next_task_type,
        remaining=progress.remaining,
    )


@app.get("/reports/checkouts", response_model=CheckoutReportOut)
def checkout_report(
    tenant_id: int,
    day: date | None = Query(default=None, alias="date"),
    status: list[str] | None = Query(default=None),
):
    report = ops.checkout_report(tenant_id, day, status)
    return _report_out(report)


def _report_out(report: CheckoutReport) -> CheckoutReportOut:
    rows = []
    for row in report.rows:
        reservation = row.reservation
        rows.append(CheckoutReportRowOut(
            reservation_id=reservation.id,
            property_name=row.property_name,
            check_out_date=reservation.check_out_date,
            checkout_time=reservation.checkout_time,
            actual_checkout_time=reservation.actual_checkout_time,
            guests=reservation.total_guests,
            is_priority=bool(reservation.is_priority),
            task=CleaningTaskOut.model_validate(row.task) if row.task else None,
            projected_status=row.projected_status.value,
            elapsed_minutes=row.projection.elapsed_minutes,
            elapsed=row.projection.elapsed_display,
            is_urgent=row.projection.is_urgent,
        ))
    return CheckoutReportOut(
        day=report.date,
        total_checkouts=report.total_checkouts,
        summary=report.summary,
        checkouts=rows,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


def main() -> None:
    """Entry point for running the app."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    init_db()
    logger.info("Database initialized.")

    uvicorn.run(
        "cleanrota.app:app",
        host=settings.get("server", {}).get("host", "127.0.0.1"),
        port=settings.get("server", {}).get("port", 8000),
    )


if __name__ == "__main__":
    main()
