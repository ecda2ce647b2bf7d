from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from omis.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class Sensor(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "sensors"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Only ever loaded explicitly (selectinload); readings are removed in bulk
    # before their sensor, so the ORM never has to touch them on delete.
    readings: Mapped[list[SensorReading]] = relationship(
        back_populates="sensor",
        lazy="raise",
        passive_deletes="all",
        order_by="SensorReading.timestamp",
    )


class SensorReading(Base, IntegerPrimaryKeyMixin):
    __tablename__ = "sensor_readings"

    sensor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sensors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    purpose: Mapped[str] = mapped_column(String(500), nullable=False)

    sensor: Mapped[Sensor] = relationship(back_populates="readings", lazy="raise")
