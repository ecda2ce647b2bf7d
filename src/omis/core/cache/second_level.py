"""
Second-level cache for ORM data.

Shared across sessions for the lifetime of the process. Values are stored
dehydrated (plain dicts), never as ORM instances, so a cached entry can be
handed to any request without binding it to a session.

Regions:
  entity      one per cached entity class, keyed by primary key
  collection  one per collection role (e.g. ``Sensor.readings``), keyed by owner id
  query       a single region keyed by compiled SQL + bound parameters

Entity and collection traffic counts toward the second-level counters,
query traffic toward the query-cache counters. Eviction, sizing and expiry
are delegated to ``cachetools.TTLCache``.

Writes invalidate through the session: the entry is dropped as soon as the
write is queued and again once the transaction commits. Between the two the
key is pending and puts to it are ignored, so a reader that loaded the old
row before the commit cannot put it back.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Hashable
from typing import Any

import structlog
from cachetools import TTLCache
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ORMExecuteState, Session, SessionTransaction, sessionmaker
from sqlalchemy.sql import Executable

from omis.common.errors import ProviderUnavailableError
from omis.config import CacheSettings
from omis.core.cache.statistics import CacheStatistics, StatisticsCounters

logger = structlog.stdlib.get_logger()

QUERY_REGION = "default-query-results-region"

# session.info key holding the (region, key) pairs a transaction will evict on commit
PENDING_EVICTIONS = "omis.cache.pending_evictions"

_MISSING = object()
_WHOLE_REGION = object()


def entity_region(entity: type) -> str:
    return f"{entity.__module__}.{entity.__qualname__}"


def collection_region(owner: type, attribute: str) -> str:
    return f"{entity_region(owner)}.{attribute}"


def query_key(statement: Executable) -> tuple[str, tuple[tuple[str, Any], ...]]:
    """Cache key for a SQL statement: its SQL text plus sorted bound values."""
    compiled = statement.compile()
    params = tuple(sorted((k, _hashable(v)) for k, v in compiled.params.items()))
    return str(compiled), params


def _hashable(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(_hashable(v) for v in value)
    if isinstance(value, Hashable):
        return value
    return repr(value)


class SecondLevelCache:
    """Region-based cache with hit/miss/put and fetch statistics."""

    def __init__(self, settings: CacheSettings) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self._regions: dict[str, TTLCache] = {}
        self._stats = StatisticsCounters(enabled=settings.statistics_enabled)
        self._pending: Counter[tuple[str, Any]] = Counter()
        self._closed = False

    # Lifecycle

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._regions.clear()
            self._closed = True
        logger.info("cache.provider.closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise ProviderUnavailableError("Second-level cache has been shut down")

    # Statistics

    @property
    def statistics_enabled(self) -> bool:
        return self._stats.enabled

    def set_statistics_enabled(self, enabled: bool) -> None:
        self._stats.enabled = enabled
        logger.info("cache.statistics.toggled", enabled=enabled)

    def read_statistics(self) -> CacheStatistics:
        self._ensure_open()
        return self._stats.snapshot()

    def record_entity_fetch(self, count: int = 1) -> None:
        self._stats.increment("entity_fetch_count", count)

    def record_collection_fetch(self, count: int = 1) -> None:
        self._stats.increment("collection_fetch_count", count)

    # Regions

    def _region(self, name: str) -> TTLCache:
        region = self._regions.get(name)
        if region is None:
            region = TTLCache(
                maxsize=self._settings.region_max_entries,
                ttl=self._settings.region_ttl_seconds,
            )
            self._regions[name] = region
        return region

    def region_names(self) -> list[str]:
        with self._lock:
            return sorted(self._regions)

    def _get(self, region_name: str, key: Hashable, prefix: str) -> Any | None:
        self._ensure_open()
        with self._lock:
            value = self._region(region_name).get(key, _MISSING)
        if value is _MISSING:
            self._stats.increment(f"{prefix}_miss_count")
            return None
        self._stats.increment(f"{prefix}_hit_count")
        return value

    def _put(self, region_name: str, key: Hashable, value: Any, prefix: str) -> None:
        self._ensure_open()
        with self._lock:
            if self._pending[(region_name, key)] or self._pending[(region_name, _WHOLE_REGION)]:
                logger.debug("cache.put.skipped_pending", region=region_name)
                return
            self._region(region_name)[key] = value
        self._stats.increment(f"{prefix}_put_count")

    def _evict(self, region_name: str, key: Hashable) -> None:
        self._ensure_open()
        with self._lock:
            region = self._regions.get(region_name)
            if region is not None:
                region.pop(key, None)

    # Entity regions

    def get_entity(self, entity: type, entity_id: Hashable) -> dict[str, Any] | None:
        return self._get(entity_region(entity), entity_id, "second_level_cache")

    def put_entity(self, entity: type, entity_id: Hashable, state: dict[str, Any]) -> None:
        self._put(entity_region(entity), entity_id, state, "second_level_cache")

    def evict_entity(self, entity: type, entity_id: Hashable) -> None:
        self._evict(entity_region(entity), entity_id)

    # Collection regions

    def get_collection(
        self, owner: type, attribute: str, owner_id: Hashable
    ) -> list[dict[str, Any]] | None:
        return self._get(collection_region(owner, attribute), owner_id, "second_level_cache")

    def put_collection(
        self, owner: type, attribute: str, owner_id: Hashable, items: list[dict[str, Any]]
    ) -> None:
        self._put(collection_region(owner, attribute), owner_id, items, "second_level_cache")

    def evict_collection(self, owner: type, attribute: str, owner_id: Hashable) -> None:
        self._evict(collection_region(owner, attribute), owner_id)

    # Query region

    @property
    def query_cache_enabled(self) -> bool:
        return self._settings.query_cache_enabled

    def get_query(self, statement: Executable) -> Any | None:
        if not self.query_cache_enabled:
            return None
        return self._get(QUERY_REGION, query_key(statement), "query_cache")

    def put_query(self, statement: Executable, result: Any) -> None:
        if not self.query_cache_enabled:
            return
        self._put(QUERY_REGION, query_key(statement), result, "query_cache")

    def evict_queries(self) -> None:
        self._ensure_open()
        with self._lock:
            region = self._regions.get(QUERY_REGION)
            if region is not None:
                region.clear()

    # Eviction bound to a transaction

    def evict_entity_on_commit(
        self, session: Session | AsyncSession, entity: type, entity_id: Hashable
    ) -> None:
        self._defer_evict(session, entity_region(entity), entity_id)

    def evict_collection_on_commit(
        self, session: Session | AsyncSession, owner: type, attribute: str, owner_id: Hashable
    ) -> None:
        self._defer_evict(session, collection_region(owner, attribute), owner_id)

    def evict_queries_on_commit(self, session: Session | AsyncSession) -> None:
        self._defer_evict(session, QUERY_REGION, _WHOLE_REGION)

    def _defer_evict(self, session: Session | AsyncSession, region_name: str, key: Any) -> None:
        self._ensure_open()
        pending: set[tuple[str, Any]] = session.info.setdefault(PENDING_EVICTIONS, set())
        with self._lock:
            if (region_name, key) not in pending:
                pending.add((region_name, key))
                self._pending[(region_name, key)] += 1
            self._drop(region_name, key)

    def _release(self, session: Session, *, evict: bool) -> None:
        pending: set[tuple[str, Any]] = session.info.pop(PENDING_EVICTIONS, set())
        if not pending:
            return
        with self._lock:
            for region_name, key in pending:
                if evict:
                    self._drop(region_name, key)
                self._pending[(region_name, key)] -= 1
                if self._pending[(region_name, key)] <= 0:
                    del self._pending[(region_name, key)]
        logger.debug("cache.pending.released", entries=len(pending), evicted=evict)

    def _drop(self, region_name: str, key: Any) -> None:
        # caller holds self._lock
        region = self._regions.get(region_name)
        if region is None:
            return
        if key is _WHOLE_REGION:
            region.clear()
        else:
            region.pop(key, None)

    # Global eviction

    def evict_all(self) -> None:
        """Drop every entry of every region. Counters are left untouched."""
        self._ensure_open()
        with self._lock:
            evicted = sum(len(region) for region in self._regions.values())
            for region in self._regions.values():
                region.clear()
            regions = len(self._regions)
        logger.info("cache.evict_all", regions=regions, entries=evicted)

    # ORM instrumentation

    def instrument(self, maker: sessionmaker[Session]) -> None:
        """Hook every session ``maker`` creates.

        Counts entity and collection loads, and settles the evictions a
        session queued through the ``*_on_commit`` methods: evicted after
        commit, released without eviction when the transaction ends otherwise.
        """

        @event.listens_for(maker, "after_commit")
        def _on_commit(session: Session) -> None:
            self._release(session, evict=True)

        @event.listens_for(maker, "after_transaction_end")
        def _on_transaction_end(session: Session, transaction: SessionTransaction) -> None:
            # after a commit the queue is already empty; otherwise rolled back or closed
            if transaction.parent is None:
                self._release(session, evict=False)

        @event.listens_for(maker, "loaded_as_persistent")
        def _on_entity_loaded(session: Session, instance: object) -> None:
            self.record_entity_fetch()

        @event.listens_for(maker, "do_orm_execute")
        def _on_orm_execute(orm_execute_state: ORMExecuteState) -> None:
            # Every relationship in the model is one-to-many, so any
            # relationship load is a collection load.
            if orm_execute_state.is_select and orm_execute_state.is_relationship_load:
                self.record_collection_fetch()
