"""Tenant model holding the housekeeping settings."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cleanrota.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    stay_over_interval: Mapped[int] = mapped_column(Integer, default=3)  # days
    deep_cleaning_interval: Mapped[int] = mapped_column(Integer, default=11)  # check-outs
    timezone: Mapped[str] = mapped_column(String(64), default="America/Bogota")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    properties: Mapped[list["Property"]] = relationship(back_populates="tenant")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"
