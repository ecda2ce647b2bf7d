"""SQLAlchemy models: import all models here so metadata sees every table."""

from omis.models.base import Base
from omis.models.sensor import Sensor, SensorReading

__all__ = [
    "Base",
    "Sensor",
    "SensorReading",
]
