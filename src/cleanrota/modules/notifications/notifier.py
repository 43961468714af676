"""Staff notifications - checkout alerts, completion notices and daily digests.

Delivery is fire-and-forget: a failed SMS is logged and dropped, it never
undoes the housekeeping change that triggered it.
"""

from __future__ import annotations

import logging
from datetime import datetime

from jinja2 import DictLoader, Environment, select_autoescape
from sqlalchemy import select

from cleanrota.config import get_env, settings
from cleanrota.database import get_session
from cleanrota.events import Event, EventType, event_bus
from cleanrota.models.tenant import Tenant
from cleanrota.modules.operations.ops import OperationsManager

logger = logging.getLogger(__name__)

TASK_LABELS = {
    "check_out": "Check-out clean",
    "stay_over": "Stay-over clean",
    "deep_cleaning": "Deep clean",
}

TEMPLATES = {
    "checkout_reported": (
        "{% if is_priority %}PRIORITY - {% endif %}Checkout reported\n"
        "Property: {{ property_name }}\n"
        "Time: {{ actual_checkout_time }}\n"
        "Guests: {{ guests }}\n"
        "Task: {{ task_label }}"
    ),
    "task_completed": (
        "{{ task_label }} completed at {{ property_name }}.\n"
        "{% if task_type == 'check_out' %}Rotation: {{ cleaning_count }} check-outs since last deep clean."
        "{% elif task_type == 'deep_cleaning' %}Rotation counter reset."
        "{% endif %}"
    ),
    "reservation_cancelled": (
        "Reservation cancelled at {{ property_name }} ({{ check_in_date }} to {{ check_out_date }}).\n"
        "{{ cleaning_tasks_cancelled }} cleaning tasks removed from the schedule."
    ),
    "morning_digest": (
        "Cleaning for {{ day.strftime('%A, %B %d') }}: {{ total }} tasks\n"
        "{% for type, tasks in grouped.items() if tasks %}"
        "- {{ labels[type] }}: {{ tasks | length }}\n"
        "{% endfor %}"
    ),
    "waiting_alert": (
        "Waiting for cleaning:\n"
        "{% for row in rows %}"
        "- {{ row.property_name }}: {{ row.projection.elapsed_display }} since checkout\n"
        "{% endfor %}"
    ),
}


class StaffNotifier:
    """Sends housekeeping alerts to staff by SMS."""

    def __init__(self, ops: OperationsManager | None = None) -> None:
        self._twilio_client = None
        self.ops = ops or OperationsManager()
        self._jinja_env = Environment(
            loader=DictLoader(TEMPLATES),
            autoescape=select_autoescape(default=False),
            trim_blocks=True,
        )

    def setup_event_handlers(self) -> None:
        event_bus.subscribe(EventType.CHECKOUT_REPORTED, self._on_checkout_reported)
        event_bus.subscribe(EventType.TASK_COMPLETED, self._on_task_completed)
        event_bus.subscribe(EventType.RESERVATION_CANCELLED, self._on_reservation_cancelled)

    def _on_checkout_reported(self, event: Event) -> None:
        data = dict(event.data)
        data["task_label"] = TASK_LABELS.get(data.get("task_type"), data.get("task_type"))
        self.broadcast(self.render("checkout_reported", **data))

    def _on_task_completed(self, event: Event) -> None:
        data = dict(event.data)
        data["task_label"] = TASK_LABELS.get(data.get("task_type"), data.get("task_type"))
        self.broadcast(self.render("task_completed", **data))

    def _on_reservation_cancelled(self, event: Event) -> None:
        if event.data.get("cleaning_tasks_cancelled"):
            self.broadcast(self.render("reservation_cancelled", **event.data))

    def render(self, template_name: str, **context) -> str:
        return self._jinja_env.get_template(template_name).render(**context).strip()

    # --- Scheduled jobs ---

    def send_morning_digest(self) -> None:
        """Today's cleaning workload, per tenant."""
        for tenant_id in self._tenant_ids():
            daily = self.ops.todays_tasks(tenant_id)
            if not daily.total:
                continue
            self.broadcast(self.render(
                "morning_digest",
                day=daily.date,
                total=daily.total,
                grouped=daily.grouped,
                labels=TASK_LABELS,
            ))

    def alert_waiting_checkouts(self, now: datetime | None = None) -> None:
        """Units the guest left a while ago with no cleaning started."""
        for tenant_id in self._tenant_ids():
            rows = self.ops.waiting_too_long(tenant_id, now=now)
            if rows:
                self.broadcast(self.render("waiting_alert", rows=rows))

    def _tenant_ids(self) -> list[int]:
        session = get_session()
        try:
            return list(session.scalars(select(Tenant.id).order_by(Tenant.id)))
        finally:
            session.close()

    # --- Delivery ---

    def broadcast(self, message: str) -> int:
        """Send to every staff phone in config.yaml. Returns how many were sent."""
        sent = 0
        for member in settings.get("staff", []):
            phone = member.get("phone")
            if phone and self._send_sms(phone, message):
                sent += 1
        return sent

    def _send_sms(self, to_number: str, message: str) -> bool:
        """Send SMS via Twilio."""
        account_sid = get_env("TWILIO_ACCOUNT_SID")
        auth_token = get_env("TWILIO_AUTH_TOKEN")
        from_number = get_env("TWILIO_FROM_NUMBER")

        if not all([account_sid, auth_token, from_number]):
            logger.warning("Twilio not configured, SMS not sent")
            return False

        try:
            if self._twilio_client is None:
                from twilio.rest import Client

                self._twilio_client = Client(account_sid, auth_token)

            self._twilio_client.messages.create(
                body=message,
                from_=from_number,
                to=to_number,
            )
            logger.info("SMS sent to %s", to_number)
            return True
        except Exception:
            logger.exception("Failed to send SMS to %s", to_number)
            return False
