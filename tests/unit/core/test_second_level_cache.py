"""Tests for the second-level cache provider."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from omis.common.errors import ProviderUnavailableError
from omis.config import CacheSettings, DatabaseSettings
from omis.core.cache.second_level import (
    PENDING_EVICTIONS,
    QUERY_REGION,
    SecondLevelCache,
    collection_region,
    entity_region,
    query_key,
)
from omis.db.session import Database
from omis.models.sensor import Sensor, SensorReading


@pytest.fixture
def cache() -> SecondLevelCache:
    return SecondLevelCache(CacheSettings())


@pytest.mark.unit
class TestEntityRegion:
    def test_miss_put_hit(self, cache: SecondLevelCache) -> None:
        assert cache.get_entity(Sensor, 1) is None
        cache.put_entity(Sensor, 1, {"id": 1, "name": "mic"})
        assert cache.get_entity(Sensor, 1) == {"id": 1, "name": "mic"}

        stats = cache.read_statistics()
        assert stats.second_level_cache_miss_count == 1
        assert stats.second_level_cache_put_count == 1
        assert stats.second_level_cache_hit_count == 1
        assert stats.query_cache_hit_count == 0

    def test_evict_entity(self, cache: SecondLevelCache) -> None:
        cache.put_entity(Sensor, 1, {"id": 1})
        cache.evict_entity(Sensor, 1)
        assert cache.get_entity(Sensor, 1) is None

    def test_regions_are_named_after_entity_and_role(self, cache: SecondLevelCache) -> None:
        cache.put_entity(Sensor, 1, {"id": 1})
        cache.put_collection(Sensor, "readings", 1, [])
        assert cache.region_names() == sorted(
            [entity_region(Sensor), collection_region(Sensor, "readings")]
        )
        assert entity_region(Sensor) == "omis.models.sensor.Sensor"


@pytest.mark.unit
class TestCollectionRegion:
    def test_collection_counts_as_second_level(self, cache: SecondLevelCache) -> None:
        assert cache.get_collection(Sensor, "readings", 5) is None
        cache.put_collection(Sensor, "readings", 5, [{"id": 1}])
        assert cache.get_collection(Sensor, "readings", 5) == [{"id": 1}]

        stats = cache.read_statistics()
        assert stats.second_level_cache_miss_count == 1
        assert stats.second_level_cache_put_count == 1
        assert stats.second_level_cache_hit_count == 1

    def test_empty_collection_is_a_hit(self, cache: SecondLevelCache) -> None:
        cache.put_collection(Sensor, "readings", 5, [])
        assert cache.get_collection(Sensor, "readings", 5) == []
        assert cache.read_statistics().second_level_cache_hit_count == 1


@pytest.mark.unit
class TestQueryRegion:
    def test_keyed_by_sql_and_parameters(self, cache: SecondLevelCache) -> None:
        by_mic = select(Sensor).where(Sensor.type == "microphone")
        by_cam = select(Sensor).where(Sensor.type == "camera")
        assert query_key(by_mic) != query_key(by_cam)
        assert query_key(by_mic) == query_key(select(Sensor).where(Sensor.type == "microphone"))

        cache.put_query(by_mic, [{"id": 1}])
        assert cache.get_query(by_cam) is None
        assert cache.get_query(by_mic) == [{"id": 1}]

        stats = cache.read_statistics()
        assert stats.query_cache_put_count == 1
        assert stats.query_cache_miss_count == 1
        assert stats.query_cache_hit_count == 1
        assert stats.second_level_cache_hit_count == 0

    def test_zero_count_is_cached(self, cache: SecondLevelCache) -> None:
        stmt = select(Sensor.id)
        cache.put_query(stmt, 0)
        assert cache.get_query(stmt) == 0

    def test_stored_none_is_a_hit(self, cache: SecondLevelCache) -> None:
        stmt = select(Sensor).where(Sensor.name == "absent")
        cache.put_query(stmt, None)
        assert cache.get_query(stmt) is None
        assert cache.get_query(stmt) is None

        stats = cache.read_statistics()
        assert stats.query_cache_hit_count == 2
        assert stats.query_cache_miss_count == 0

    def test_evict_queries(self, cache: SecondLevelCache) -> None:
        stmt = select(Sensor)
        cache.put_query(stmt, [])
        cache.put_entity(Sensor, 1, {"id": 1})
        cache.evict_queries()
        assert cache.get_query(stmt) is None
        assert cache.get_entity(Sensor, 1) == {"id": 1}

    def test_disabled_query_cache_bypasses_region(self) -> None:
        cache = SecondLevelCache(CacheSettings(query_cache_enabled=False))
        stmt = select(Sensor)
        cache.put_query(stmt, [])
        assert cache.get_query(stmt) is None
        stats = cache.read_statistics()
        assert stats.query_cache_put_count == 0
        assert stats.query_cache_miss_count == 0
        assert QUERY_REGION not in cache.region_names()


@pytest.mark.unit
class TestEvictOnCommit:
    def test_entry_dropped_and_puts_ignored_until_released(self, cache: SecondLevelCache) -> None:
        session = Session()
        cache.put_entity(Sensor, 1, {"id": 1, "name": "old"})

        cache.evict_entity_on_commit(session, Sensor, 1)
        assert session.info[PENDING_EVICTIONS] == {(entity_region(Sensor), 1)}
        assert cache.get_entity(Sensor, 1) is None

        cache.put_entity(Sensor, 1, {"id": 1, "name": "old"})
        assert cache.get_entity(Sensor, 1) is None
        assert cache.read_statistics().second_level_cache_put_count == 1

        # Other keys are unaffected
        cache.put_entity(Sensor, 2, {"id": 2})
        assert cache.get_entity(Sensor, 2) == {"id": 2}

    def test_query_region_pending_as_a_whole(self, cache: SecondLevelCache) -> None:
        session = Session()
        cache.put_query(select(Sensor), [{"id": 1}])

        cache.evict_queries_on_commit(session)
        assert cache.get_query(select(Sensor)) is None
        cache.put_query(select(Sensor.id), [1])
        assert cache.get_query(select(Sensor.id)) is None

    def test_repeated_eviction_queued_once(self, cache: SecondLevelCache) -> None:
        session = Session()
        cache.evict_collection_on_commit(session, Sensor, "readings", 3)
        cache.evict_collection_on_commit(session, Sensor, "readings", 3)
        assert len(session.info[PENDING_EVICTIONS]) == 1


@pytest.mark.unit
class TestEvictAll:
    def test_clears_every_region_but_keeps_counters(self, cache: SecondLevelCache) -> None:
        cache.put_entity(Sensor, 1, {"id": 1})
        cache.put_collection(Sensor, "readings", 1, [])
        cache.put_query(select(Sensor), [])
        cache.get_entity(Sensor, 1)
        before = cache.read_statistics()

        cache.evict_all()

        after = cache.read_statistics()
        assert after == before
        assert cache.get_entity(Sensor, 1) is None
        assert cache.get_collection(Sensor, "readings", 1) is None
        assert cache.get_query(select(Sensor)) is None

    def test_idempotent(self, cache: SecondLevelCache) -> None:
        cache.evict_all()
        cache.evict_all()
        assert cache.read_statistics().second_level_cache_put_count == 0

    def test_expired_entries_are_misses(self) -> None:
        cache = SecondLevelCache(CacheSettings(region_ttl_seconds=1))
        cache.put_entity(Sensor, 1, {"id": 1})
        region = cache._regions[entity_region(Sensor)]
        region.expire(time=region.timer() + 5)
        assert cache.get_entity(Sensor, 1) is None


@pytest.mark.unit
class TestStatisticsToggle:
    def test_disabled_statistics(self) -> None:
        cache = SecondLevelCache(CacheSettings(statistics_enabled=False))
        cache.put_entity(Sensor, 1, {"id": 1})
        cache.get_entity(Sensor, 1)

        stats = cache.read_statistics()
        assert stats.statistics_enabled is False
        assert stats.second_level_cache_hit_count == 0
        assert stats.second_level_cache_put_count == 0

    def test_enable_at_runtime(self, cache: SecondLevelCache) -> None:
        cache.set_statistics_enabled(False)
        cache.get_entity(Sensor, 1)
        cache.set_statistics_enabled(True)
        cache.get_entity(Sensor, 1)
        assert cache.read_statistics().second_level_cache_miss_count == 1


@pytest.mark.unit
class TestClose:
    def test_closed_cache_is_unavailable(self, cache: SecondLevelCache) -> None:
        cache.close()
        assert cache.closed
        with pytest.raises(ProviderUnavailableError):
            cache.read_statistics()
        with pytest.raises(ProviderUnavailableError):
            cache.evict_all()
        with pytest.raises(ProviderUnavailableError):
            cache.get_entity(Sensor, 1)


@pytest.fixture
async def database() -> AsyncIterator[Database]:
    db = Database(DatabaseSettings(url="sqlite+aiosqlite:///:memory:"))
    await db.create_schema()
    yield db
    await db.dispose()


@pytest.mark.unit
class TestInstrumentation:
    async def test_counts_entity_and_collection_loads(
        self, cache: SecondLevelCache, database: Database
    ) -> None:
        cache.instrument(database.sync_maker)

        async with database.session_factory() as session:
            sensor = Sensor(name="mic-1", type="microphone")
            session.add(sensor)
            await session.flush()
            for purpose in ("calibration", "baseline"):
                session.add(
                    SensorReading(
                        sensor_id=sensor.id,
                        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
                        purpose=purpose,
                    )
                )
            await session.commit()
            sensor_id = sensor.id

        # Inserts are not fetches
        assert cache.read_statistics().entity_fetch_count == 0

        async with database.session_factory() as session:
            loaded = await session.get(Sensor, sensor_id)
            assert loaded is not None
        assert cache.read_statistics().entity_fetch_count == 1

        async with database.session_factory() as session:
            result = await session.execute(
                select(Sensor).options(selectinload(Sensor.readings)).where(Sensor.id == sensor_id)
            )
            assert len(result.scalar_one().readings) == 2

        stats = cache.read_statistics()
        # one sensor plus two readings
        assert stats.entity_fetch_count == 4
        assert stats.collection_fetch_count >= 1

    async def test_plain_queries_are_not_collection_loads(
        self, cache: SecondLevelCache, database: Database
    ) -> None:
        cache.instrument(database.sync_maker)
        async with database.session_factory() as session:
            await session.execute(select(Sensor))
        assert cache.read_statistics().collection_fetch_count == 0
