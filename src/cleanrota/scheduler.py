"""APScheduler setup for periodic staff notifications.

Jobs only read and notify. Cleaning tasks are created together with their
reservation, never by polling.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from cleanrota.config import settings

logger = logging.getLogger(__name__)


def create_scheduler() -> BackgroundScheduler:
    """Create and configure the background scheduler."""
    from cleanrota.modules.notifications import StaffNotifier
    from cleanrota.modules.operations import OperationsManager

    scheduler = BackgroundScheduler()
    sched_config = settings.get("scheduler", {})

    ops_manager = OperationsManager()
    notifier = StaffNotifier(ops_manager)

    # Wire up event handlers
    notifier.setup_event_handlers()

    # Morning digest of today's cleaning (daily, 7 AM by default)
    scheduler.add_job(
        notifier.send_morning_digest,
        "cron",
        hour=sched_config.get("morning_digest_hour", 7),
        minute=0,
        id="morning_digest",
        name="Morning Cleaning Digest",
    )

    # Checked-out units still waiting for cleaning (every 15 min by default)
    scheduler.add_job(
        notifier.alert_waiting_checkouts,
        "interval",
        minutes=sched_config.get("waiting_alert_interval", 15),
        id="waiting_alert",
        name="Waiting Checkout Alert",
    )

    logger.info("Scheduler configured with %d jobs", len(scheduler.get_jobs()))
    return scheduler
