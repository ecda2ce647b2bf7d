"""Sensor CRUD service, read through the second-level cache.

Writes queue their evictions on the session; the cache settles them when
the request transaction commits or ends.
"""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from omis.common.errors import ConflictError, NotFoundError
from omis.core.cache.second_level import SecondLevelCache
from omis.models.sensor import Sensor, SensorReading
from omis.schemas.sensors import (
    CreateReadingRequest,
    CreateSensorRequest,
    ReadingInfo,
    ReadingListResponse,
    SensorInfo,
    SensorListResponse,
    UpdateSensorRequest,
)

READINGS = "readings"


class SensorService:
    def __init__(self, db: AsyncSession, cache: SecondLevelCache) -> None:
        self.db = db
        self.cache = cache

    async def create_sensor(self, req: CreateSensorRequest) -> SensorInfo:
        sensor = Sensor(
            name=req.name,
            type=req.type,
            location=req.location,
            is_active=req.is_active,
        )
        self.db.add(sensor)
        await self._flush_unique(req.name)
        self.cache.evict_queries_on_commit(self.db)
        return self._to_info(sensor)

    async def get_sensor(self, sensor_id: int) -> SensorInfo:
        cached = self.cache.get_entity(Sensor, sensor_id)
        if cached is not None:
            return SensorInfo.model_validate(cached)

        sensor = await self.db.get(Sensor, sensor_id)
        if sensor is None:
            raise NotFoundError(f"Sensor not found: {sensor_id}")

        info = self._to_info(sensor)
        self.cache.put_entity(Sensor, sensor_id, info.model_dump())
        return info

    async def get_sensor_by_name(self, name: str) -> SensorInfo:
        stmt = select(Sensor).where(Sensor.name == name)
        cached = self.cache.get_query(stmt)
        if cached is None:
            result = await self.db.execute(stmt)
            sensor = result.scalar_one_or_none()
            if sensor is None:
                raise NotFoundError(f"Sensor not found: {name!r}")
            cached = self._to_info(sensor).model_dump()
            self.cache.put_query(stmt, cached)
        return SensorInfo.model_validate(cached)

    async def list_sensors(
        self, offset: int = 0, limit: int = 50, sensor_type: str | None = None
    ) -> SensorListResponse:
        count_stmt = select(func.count(Sensor.id))
        page_stmt = select(Sensor).order_by(Sensor.id.asc()).offset(offset).limit(limit)
        if sensor_type is not None:
            count_stmt = count_stmt.where(Sensor.type == sensor_type)
            page_stmt = page_stmt.where(Sensor.type == sensor_type)

        total = self.cache.get_query(count_stmt)
        if total is None:
            total = (await self.db.execute(count_stmt)).scalar_one()
            self.cache.put_query(count_stmt, total)

        page = self.cache.get_query(page_stmt)
        if page is None:
            sensors = (await self.db.execute(page_stmt)).scalars().all()
            page = [self._to_info(s).model_dump() for s in sensors]
            self.cache.put_query(page_stmt, page)

        return SensorListResponse(
            sensors=[SensorInfo.model_validate(s) for s in page],
            total=total,
        )

    async def update_sensor(self, sensor_id: int, req: UpdateSensorRequest) -> SensorInfo:
        sensor = await self._load(sensor_id)

        update_data = req.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(sensor, field, value)

        await self._flush_unique(update_data.get("name", sensor.name))
        self.cache.evict_entity_on_commit(self.db, Sensor, sensor_id)
        self.cache.evict_queries_on_commit(self.db)
        return self._to_info(sensor)

    async def delete_sensor(self, sensor_id: int) -> None:
        sensor = await self._load(sensor_id)

        await self.db.execute(delete(SensorReading).where(SensorReading.sensor_id == sensor_id))
        await self.db.delete(sensor)
        await self.db.flush()

        self.cache.evict_entity_on_commit(self.db, Sensor, sensor_id)
        self.cache.evict_collection_on_commit(self.db, Sensor, READINGS, sensor_id)
        self.cache.evict_queries_on_commit(self.db)

    async def list_readings(self, sensor_id: int) -> ReadingListResponse:
        cached = self.cache.get_collection(Sensor, READINGS, sensor_id)
        if cached is None:
            result = await self.db.execute(
                select(Sensor).options(selectinload(Sensor.readings)).where(Sensor.id == sensor_id)
            )
            sensor = result.scalar_one_or_none()
            if sensor is None:
                raise NotFoundError(f"Sensor not found: {sensor_id}")
            cached = [self._reading_info(r).model_dump() for r in sensor.readings]
            self.cache.put_collection(Sensor, READINGS, sensor_id, cached)

        return ReadingListResponse(
            sensor_id=sensor_id,
            readings=[ReadingInfo.model_validate(r) for r in cached],
        )

    async def add_reading(self, sensor_id: int, req: CreateReadingRequest) -> ReadingInfo:
        await self._load(sensor_id)

        reading = SensorReading(sensor_id=sensor_id, timestamp=req.timestamp, purpose=req.purpose)
        self.db.add(reading)
        await self.db.flush()

        self.cache.evict_collection_on_commit(self.db, Sensor, READINGS, sensor_id)
        return self._reading_info(reading)

    async def _load(self, sensor_id: int) -> Sensor:
        sensor = await self.db.get(Sensor, sensor_id)
        if sensor is None:
            raise NotFoundError(f"Sensor not found: {sensor_id}")
        return sensor

    async def _flush_unique(self, name: str) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"Sensor name already exists: {name!r}") from e

    @staticmethod
    def _to_info(s: Sensor) -> SensorInfo:
        return SensorInfo(
            id=s.id,
            name=s.name,
            type=s.type,
            location=s.location,
            is_active=s.is_active,
            created_at=s.created_at,
        )

    @staticmethod
    def _reading_info(r: SensorReading) -> ReadingInfo:
        return ReadingInfo(
            id=r.id,
            sensor_id=r.sensor_id,
            timestamp=r.timestamp,
            purpose=r.purpose,
        )
