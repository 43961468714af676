"""Per-property cleaning rotation counter.

``Property.cleaning_count`` counts check-out cleans completed since the last
deep clean. Writes are single SQL statements (``cleaning_count + 1`` / ``0``)
executed in the caller's transaction, so two completions on the same property
can't lose an increment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from cleanrota.errors import PropertyNotFoundError
from cleanrota.models.property import Property
from cleanrota.models.task import TaskType
from cleanrota.modules.housekeeping.settings import TenantSettings

logger = logging.getLogger(__name__)


def next_task_type(cleaning_count: int, deep_cleaning_interval: int) -> TaskType:
    """Task type for the next check-out given the current count.

    ``>=`` rather than ``==``: a counter already past a lowered interval
    still escalates.
    """
    if cleaning_count + 1 >= deep_cleaning_interval:
        return TaskType.DEEP_CLEANING
    return TaskType.CHECK_OUT


@dataclass
class RotationProgress:
    property_id: int
    cleaning_count: int
    deep_cleaning_interval: int
    next_task_type: TaskType

    @property
    def remaining(self) -> int:
        """Check-out cleans left before the deep clean is scheduled."""
        return max(self.deep_cleaning_interval - self.cleaning_count - 1, 0)


class RotationCounter:
    """Reads and mutates ``Property.cleaning_count``. Never commits."""

    def current_count(self, session: Session, property_id: int) -> int:
        count = session.execute(
            select(Property.cleaning_count).where(Property.id == property_id)
        ).scalar_one_or_none()
        if count is None:
            raise PropertyNotFoundError(f"Property {property_id} not found")
        return count

    def peek_next_task_type(self, session: Session, property_id: int, settings: TenantSettings) -> TaskType:
        """Pure read: would the next check-out clean be a deep clean?"""
        count = self.current_count(session, property_id)
        return next_task_type(count, settings.deep_cleaning_interval)

    def progress(self, session: Session, property_id: int, settings: TenantSettings) -> RotationProgress:
        count = self.current_count(session, property_id)
        return RotationProgress(
            property_id=property_id,
            cleaning_count=count,
            deep_cleaning_interval=settings.deep_cleaning_interval,
            next_task_type=next_task_type(count, settings.deep_cleaning_interval),
        )

    def advance(self, session: Session, property_id: int) -> None:
        """Count one more completed check-out clean."""
        self._update(session, property_id, Property.cleaning_count + 1)
        logger.info("Advanced cleaning_count for property %s", property_id)

    def reset(self, session: Session, property_id: int) -> None:
        """Deep clean done: start the rotation over."""
        self._update(session, property_id, 0)
        logger.info("Reset cleaning_count for property %s", property_id)

    def _update(self, session: Session, property_id: int, value) -> None:
        result = session.execute(
            update(Property)
            .where(Property.id == property_id)
            .values(cleaning_count=value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise PropertyNotFoundError(f"Property {property_id} not found")

        # Loaded Property instances now hold a stale count
        loaded = session.identity_map.get(Session.identity_key(Property, property_id))
        if loaded is not None:
            session.expire(loaded, ["cleaning_count"])
