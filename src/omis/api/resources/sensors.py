"""Sensor endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from omis.api.deps import DBSession, SecondLevelCacheDep
from omis.schemas.sensors import (
    CreateReadingRequest,
    CreateSensorRequest,
    ReadingInfo,
    ReadingListResponse,
    SensorInfo,
    SensorListResponse,
    UpdateSensorRequest,
)
from omis.services.sensor_service import SensorService

router = APIRouter()


@router.post("/", response_model=SensorInfo, status_code=201, summary="Register sensor")
async def create_sensor(
    body: CreateSensorRequest, db: DBSession, cache: SecondLevelCacheDep
) -> SensorInfo:
    return await SensorService(db, cache).create_sensor(body)


@router.get("/", response_model=SensorListResponse, summary="List sensors")
async def list_sensors(
    db: DBSession,
    cache: SecondLevelCacheDep,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    type: str | None = Query(None, max_length=50),
) -> SensorListResponse:
    service = SensorService(db, cache)
    return await service.list_sensors(offset=offset, limit=limit, sensor_type=type)


@router.get("/name/{name}", response_model=SensorInfo, summary="Find sensor by name")
async def get_sensor_by_name(name: str, db: DBSession, cache: SecondLevelCacheDep) -> SensorInfo:
    return await SensorService(db, cache).get_sensor_by_name(name)


@router.get("/{sensor_id}", response_model=SensorInfo, summary="Get sensor")
async def get_sensor(sensor_id: int, db: DBSession, cache: SecondLevelCacheDep) -> SensorInfo:
    return await SensorService(db, cache).get_sensor(sensor_id)


@router.patch("/{sensor_id}", response_model=SensorInfo, summary="Update sensor")
async def update_sensor(
    sensor_id: int, body: UpdateSensorRequest, db: DBSession, cache: SecondLevelCacheDep
) -> SensorInfo:
    return await SensorService(db, cache).update_sensor(sensor_id, body)


@router.delete("/{sensor_id}", status_code=204, summary="Remove sensor")
async def delete_sensor(sensor_id: int, db: DBSession, cache: SecondLevelCacheDep) -> None:
    await SensorService(db, cache).delete_sensor(sensor_id)


@router.get(
    "/{sensor_id}/readings", response_model=ReadingListResponse, summary="List sensor readings"
)
async def list_readings(
    sensor_id: int, db: DBSession, cache: SecondLevelCacheDep
) -> ReadingListResponse:
    return await SensorService(db, cache).list_readings(sensor_id)


@router.post(
    "/{sensor_id}/readings",
    response_model=ReadingInfo,
    status_code=201,
    summary="Record sensor reading",
)
async def add_reading(
    sensor_id: int, body: CreateReadingRequest, db: DBSession, cache: SecondLevelCacheDep
) -> ReadingInfo:
    return await SensorService(db, cache).add_reading(sensor_id, body)
