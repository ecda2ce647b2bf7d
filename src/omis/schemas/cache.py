"""Cache management schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from omis.core.cache.statistics import CacheStatistics


class CacheStatsResponse(BaseModel):
    """Wire form of ``CacheStatistics``; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    second_level_cache_hit_count: int = Field(..., ge=0)
    second_level_cache_miss_count: int = Field(..., ge=0)
    second_level_cache_put_count: int = Field(..., ge=0)
    query_cache_hit_count: int = Field(..., ge=0)
    query_cache_miss_count: int = Field(..., ge=0)
    query_cache_put_count: int = Field(..., ge=0)
    entity_fetch_count: int = Field(..., ge=0)
    collection_fetch_count: int = Field(..., ge=0)
    statistics_enabled: bool = Field(..., alias="isStatisticsEnabled")

    @classmethod
    def from_statistics(cls, stats: CacheStatistics) -> CacheStatsResponse:
        return cls(
            second_level_cache_hit_count=stats.second_level_cache_hit_count,
            second_level_cache_miss_count=stats.second_level_cache_miss_count,
            second_level_cache_put_count=stats.second_level_cache_put_count,
            query_cache_hit_count=stats.query_cache_hit_count,
            query_cache_miss_count=stats.query_cache_miss_count,
            query_cache_put_count=stats.query_cache_put_count,
            entity_fetch_count=stats.entity_fetch_count,
            collection_fetch_count=stats.collection_fetch_count,
            statistics_enabled=stats.statistics_enabled,
        )
