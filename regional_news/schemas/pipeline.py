"""
Pipeline state models: provider requests/results, cache entries,
per-partition statistics and the aggregation result handed to callers.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from .base import CacheTier, StrategyKind
from .news import NewsItem
from ..errors import AggregationError


# Query params that never take part in a request signature
_SECRET_PARAMS = {"apikey", "apiKey", "api_key", "token", "access_key"}


@dataclass(frozen=True)
class FetchRequest:
    """One outbound provider call, described independently of its transport."""
    provider: str
    endpoint: str
    params: Tuple[Tuple[str, Any], ...] = ()
    volatility: CacheTier = CacheTier.FAST

    @classmethod
    def build(
        cls,
        provider: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        volatility: CacheTier = CacheTier.FAST,
    ) -> "FetchRequest":
        items = tuple(sorted((k, v) for k, v in (params or {}).items() if v is not None))
        return cls(provider=provider, endpoint=endpoint, params=items, volatility=volatility)

    def signature(self) -> str:
        """Exact request signature used as the cache key (credentials excluded)."""
        query = "&".join(f"{k}={v}" for k, v in self.params if k not in _SECRET_PARAMS)
        return f"{self.provider}:{self.endpoint}?{query}"

    def query_params(self) -> Dict[str, Any]:
        return dict(self.params)


@dataclass
class FetchResult:
    """Outcome of RateLimitedClient.fetch: either a payload or an error, never both."""
    request: FetchRequest
    payload: Optional[Dict[str, Any]] = None
    error: Optional[AggregationError] = None
    from_cache: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.payload is not None


@dataclass
class CacheEntry:
    key: str
    payload: Any
    tier: CacheTier
    stored_at: float

    def is_fresh(self, ttl_seconds: float, now: float) -> bool:
        return (now - self.stored_at) < ttl_seconds


class PartitionStats(BaseModel):
    """Per-partition, per-day aggregate. Upserted additively after each batch."""
    partition_key: str
    day: date = Field(default_factory=lambda: datetime.now(timezone.utc).date())
    total_items: int = 0
    high_relevance_items: int = 0
    distinct_sources: int = 0
    avg_topical_score: float = 0.0
    provider_calls: int = 0

    def merge(self, delta: "PartitionStats") -> "PartitionStats":
        """Fold a batch delta into this row. Averages are weighted by item count."""
        total = self.total_items + delta.total_items
        if total:
            avg = (
                self.avg_topical_score * self.total_items
                + delta.avg_topical_score * delta.total_items
            ) / total
        else:
            avg = 0.0
        return PartitionStats(
            partition_key=self.partition_key,
            day=self.day,
            total_items=total,
            high_relevance_items=self.high_relevance_items + delta.high_relevance_items,
            distinct_sources=max(self.distinct_sources, delta.distinct_sources),
            avg_topical_score=round(avg, 2),
            provider_calls=self.provider_calls + delta.provider_calls,
        )


class StrategyOutcome(BaseModel):
    """Per-strategy diagnostics reported back to callers."""
    strategy: StrategyKind
    success: bool = False
    items_found: int = 0
    provider_calls: int = 0
    errors: List[str] = Field(default_factory=list)


class AggregationResult(BaseModel):
    """What aggregate() returns: committed items plus run metadata."""
    partition_key: str
    success: bool = False
    items: List[NewsItem] = Field(default_factory=list)
    total_found: int = 0
    committed: int = 0
    provider_calls: int = 0
    strategies: List[StrategyOutcome] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
