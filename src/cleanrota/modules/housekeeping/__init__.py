"""Housekeeping core: rotation counter, task resolution, task lifecycle, projections."""

from cleanrota.modules.housekeeping.projector import (
    CheckoutReportProjector,
    ProjectedStatus,
    Projection,
    format_elapsed,
)
from cleanrota.modules.housekeeping.report import CheckoutReport, build_checkout_report
from cleanrota.modules.housekeeping.resolver import PlannedTask, TaskTypeResolver, plan_tasks
from cleanrota.modules.housekeeping.rotation import RotationCounter, next_task_type
from cleanrota.modules.housekeeping.settings import TenantSettings, load_tenant_settings
from cleanrota.modules.housekeeping.state_machine import CleaningTaskStateMachine

__all__ = [
    "CheckoutReport",
    "CheckoutReportProjector",
    "CleaningTaskStateMachine",
    "PlannedTask",
    "ProjectedStatus",
    "Projection",
    "RotationCounter",
    "TaskTypeResolver",
    "TenantSettings",
    "build_checkout_report",
    "format_elapsed",
    "load_tenant_settings",
    "next_task_type",
    "plan_tasks",
]
