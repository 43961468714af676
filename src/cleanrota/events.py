"""Lightweight in-process pub/sub event bus.

Domain code running inside a transaction doesn't publish directly: it queues
events on the session with :func:`queue_event`, and they are published only
once that session commits. A rollback drops them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_PENDING_KEY = "cleanrota.pending_events"


class EventType(str, Enum):
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_RESCHEDULED = "reservation_rescheduled"
    CLEANING_TASKS_CREATED = "cleaning_tasks_created"
    CHECKOUT_REPORTED = "checkout_reported"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_CANCELLED = "task_cancelled"


@dataclass
class Event:
    event_type: EventType
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# Type for subscriber callbacks
Subscriber = Callable[[Event], None]


class EventBus:
    """Simple synchronous pub/sub event bus."""

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event_type: EventType, callback: Subscriber) -> None:
        """Register a callback for an event type."""
        self._subscribers[event_type].append(callback)
        logger.debug("Subscribed %s to %s", callback.__name__, event_type.value)

    def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        logger.info("Publishing event: %s", event.event_type.value)
        for callback in self._subscribers.get(event.event_type, []):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Error in subscriber %s for event %s",
                    callback.__name__,
                    event.event_type.value,
                )


# Global event bus instance
event_bus = EventBus()


def queue_event(session: Session, event: Event) -> None:
    """Hold an event until ``session`` commits."""
    session.info.setdefault(_PENDING_KEY, []).append(event)


def pending_events(session: Session) -> list[Event]:
    return list(session.info.get(_PENDING_KEY, []))


@sa_event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    events = session.info.pop(_PENDING_KEY, [])
    for evt in events:
        event_bus.publish(evt)


@sa_event.listens_for(Session, "after_rollback")
def _discard_pending(session: Session) -> None:
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug("Discarded %d events on rollback", len(dropped))
