"""Reservation model."""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cleanrota.database import Base

RESERVATION_STATUSES = ["active", "checked_in", "checked_out", "cancelled", "no_show"]


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    checkin_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    checkout_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    actual_checkin_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    actual_checkout_time: Mapped[time | None] = mapped_column(Time, nullable=True)  # null until reported
    status: Mapped[str] = mapped_column(String(50), default="active")  # see RESERVATION_STATUSES
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False)
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    infants: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    prop: Mapped["Property"] = relationship(back_populates="reservations")  # noqa: F821
    cleaning_tasks: Mapped[list["CleaningTask"]] = relationship(back_populates="reservation")  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Reservation id={self.id} property_id={self.property_id} "
            f"{self.check_in_date}..{self.check_out_date} status={self.status!r}>"
        )

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days

    @property
    def total_guests(self) -> int:
        return (self.adults or 0) + (self.children or 0) + (self.infants or 0)
