"""Sensor and sensor reading schemas."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator


class CreateSensorRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    type: str = Field(..., min_length=2, max_length=50)
    location: str | None = Field(None, max_length=200)
    is_active: bool = True

    @field_validator("name", "type")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class UpdateSensorRequest(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=100)
    type: str | None = Field(None, min_length=2, max_length=50)
    location: str | None = Field(None, max_length=200)
    is_active: bool | None = None

    # Omitted fields are left alone; only location may be cleared with null.
    @field_validator("name", "type", "is_active")
    @classmethod
    def not_null(cls, value: str | bool | None) -> str | bool:
        if value is None:
            raise ValueError("must not be null")
        if isinstance(value, str) and not value.strip():
            raise ValueError("must not be blank")
        return value


class SensorInfo(BaseModel):
    id: int
    name: str
    type: str
    location: str | None
    is_active: bool
    created_at: datetime


class SensorListResponse(BaseModel):
    sensors: list[SensorInfo]
    total: int


class CreateReadingRequest(BaseModel):
    timestamp: datetime
    purpose: str = Field(..., min_length=3, max_length=500)

    @field_validator("timestamp")
    @classmethod
    def not_in_future(cls, value: datetime) -> datetime:
        aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if aware > datetime.now(timezone.utc):
            raise ValueError("timestamp cannot be in the future")
        return aware


class ReadingInfo(BaseModel):
    id: int
    sensor_id: int
    timestamp: datetime
    purpose: str


class ReadingListResponse(BaseModel):
    sensor_id: int
    readings: list[ReadingInfo]
