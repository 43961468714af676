"""Property model."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cleanrota.database import Base


class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (CheckConstraint("cleaning_count >= 0", name="ck_properties_cleaning_count"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Check-out cleans since the last deep clean. Only RotationCounter writes it.
    cleaning_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    tenant: Mapped["Tenant"] = relationship(back_populates="properties")  # noqa: F821
    reservations: Mapped[list["Reservation"]] = relationship(back_populates="prop")  # noqa: F821
    cleaning_tasks: Mapped[list["CleaningTask"]] = relationship(back_populates="prop")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Property id={self.id} name={self.name!r} cleaning_count={self.cleaning_count}>"
