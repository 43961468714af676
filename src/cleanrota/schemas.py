"""Request and response bodies for the JSON API."""

from __future__ import annotations

from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, Field

from cleanrota.models.task import TaskType


class CleaningTaskOut(BaseModel):
    id: int
    tenant_id: int
    property_id: int
    reservation_id: int | None = None
    task_type: str
    status: str
    scheduled_date: date
    assigned_to: int | None = None
    assigned_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by: int | None = None
    checkout_reported_at: datetime | None = None
    is_priority: bool = False
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class TasksCreatedOut(BaseModel):
    cleaning_tasks_created: int
    tasks: list[CleaningTaskOut]


class ReservationIn(BaseModel):
    property_id: int
    check_in_date: date
    check_out_date: date
    guest_name: str | None = None
    checkout_time: time | None = None
    is_priority: bool = False
    adults: int = Field(default=1, ge=0)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)
    notes: str | None = None


class ReservationOut(BaseModel):
    id: int
    tenant_id: int
    property_id: int
    guest_name: str | None = None
    check_in_date: date
    check_out_date: date
    checkout_time: time | None = None
    status: str
    is_priority: bool = False

    model_config = ConfigDict(from_attributes=True)


class ReservationCreatedOut(BaseModel):
    reservation: ReservationOut
    cleaning_tasks_created: int
    tasks: list[CleaningTaskOut]


class CheckoutReportIn(BaseModel):
    actual_checkout_time: time | None = None  # defaults to now, tenant time
    is_priority: bool | None = None


class TaskStartIn(BaseModel):
    assigned_to: int | None = None


class TaskCompleteIn(BaseModel):
    notes: str | None = None
    completed_by: int | None = None


class TaskUpdateIn(BaseModel):
    assigned_to: int | None = None
    scheduled_date: date | None = None
    notes: str | None = None


class ManualTaskIn(BaseModel):
    property_id: int
    task_type: TaskType
    scheduled_date: date
    assigned_to: int | None = None
    notes: str | None = None


class RescheduleIn(BaseModel):
    check_in_date: date
    check_out_date: date


class ReservationCancelledOut(BaseModel):
    reservation_id: int
    cleaning_tasks_cancelled: int


class DailyTasksOut(BaseModel):
    day: date = Field(serialization_alias="date")
    total: int
    tasks: list[CleaningTaskOut]
    grouped: dict[str, list[CleaningTaskOut]]


class RotationOut(BaseModel):
    property_id: int
    cleaning_count: int
    deep_cleaning_interval: int
    next_task_type: TaskType
    remaining: int


class CheckoutReportRowOut(BaseModel):
    reservation_id: int
    property_name: str
    check_out_date: date
    checkout_time: time | None = None
    actual_checkout_time: time | None = None
    guests: int
    is_priority: bool
    task: CleaningTaskOut | None = None
    projected_status: str
    elapsed_minutes: int | None = None
    elapsed: str = "-"
    is_urgent: bool = False


class CheckoutReportOut(BaseModel):
    day: date = Field(serialization_alias="date")
    total_checkouts: int
    summary: dict[str, int] = Field(default_factory=dict)
    checkouts: list[CheckoutReportRowOut]
