"""
Cache statistics.

``StatisticsCounters`` is the live, provider-owned tally. ``CacheStatistics``
is the frozen snapshot handed to callers; it is rebuilt on every read and
never kept in sync with later activity.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, fields


@dataclass(frozen=True)
class CacheStatistics:
    second_level_cache_hit_count: int = 0
    second_level_cache_miss_count: int = 0
    second_level_cache_put_count: int = 0
    query_cache_hit_count: int = 0
    query_cache_miss_count: int = 0
    query_cache_put_count: int = 0
    entity_fetch_count: int = 0
    collection_fetch_count: int = 0
    statistics_enabled: bool = False

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name == "statistics_enabled":
                continue
            value = getattr(self, f.name)
            if value is None or value < 0:
                raise ValueError(f"{f.name} must be a non-negative integer, got {value!r}")

    @classmethod
    def disabled(cls) -> CacheStatistics:
        return cls(statistics_enabled=False)


class StatisticsCounters:
    """Thread-safe counters. Increments are dropped while disabled."""

    _COUNTERS = (
        "second_level_cache_hit_count",
        "second_level_cache_miss_count",
        "second_level_cache_put_count",
        "query_cache_hit_count",
        "query_cache_miss_count",
        "query_cache_put_count",
        "entity_fetch_count",
        "collection_fetch_count",
    )

    def __init__(self, enabled: bool = True) -> None:
        self._lock = threading.Lock()
        self._enabled = enabled
        self._values = dict.fromkeys(self._COUNTERS, 0)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        with self._lock:
            self._enabled = value

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._values:
            raise KeyError(name)
        with self._lock:
            if self._enabled:
                self._values[name] += amount

    def snapshot(self) -> CacheStatistics:
        with self._lock:
            if not self._enabled:
                return CacheStatistics.disabled()
            return CacheStatistics(statistics_enabled=True, **self._values)
