"""
Retention: decides which scored items each partition keeps.

Two policies:
  RelevanceWindowPolicy  items published within the trailing window whose
                         region_relevance clears the threshold, ranked by
                         the scorer's ordering, capped at `limit`
  FifoBoundedPolicy      at most `capacity` items regardless of score;
                         overflow evicts the oldest published_at first

RetentionManager holds the retained set per partition in memory, mirrors
commits and evictions to the persistence sink, and upserts the day's
PartitionStats from the newly committed items only. Items, evictions and
the stats delta go to the sink as one commit. A sink failure is logged,
the in-memory result is still returned, and the unwritten part is kept
as pending and retried with the partition's next batch.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..config import STARTUP_KEYWORDS, get_settings
from ..database import InMemorySink, PersistenceSink
from ..errors import PersistenceError
from ..schemas import NewsItem, PartitionStats
from .scorer import rank

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _merge_unique(existing: Sequence[NewsItem], incoming: Iterable[NewsItem]) -> List[NewsItem]:
    """existing + incoming with identity_key collisions resolved in favour of what is already held."""
    seen = {i.identity_key for i in existing}
    merged = list(existing)
    for item in incoming:
        if item.identity_key not in seen:
            seen.add(item.identity_key)
            merged.append(item)
    return merged


@dataclass
class PendingWrites:
    """Commit state the sink has not accepted yet for one partition."""
    items: Dict[str, NewsItem] = field(default_factory=dict)
    evicted: Set[str] = field(default_factory=set)
    stats: Dict[date, PartitionStats] = field(default_factory=dict)

    def add_stats(self, delta: PartitionStats) -> None:
        current = self.stats.get(delta.day)
        self.stats[delta.day] = current.merge(delta) if current is not None else delta

    def __bool__(self):
        return bool(self.items or self.evicted or self.stats)


class RetentionPolicy:
    """Decides the retained set for one partition."""

    def apply(self, existing: Sequence[NewsItem], incoming: Sequence[NewsItem], now: datetime) -> List[NewsItem]:
        """Return the new retained set for a partition."""
        raise NotImplementedError

    def hydrate(self, sink: PersistenceSink, partition_key: str, now: datetime) -> List[NewsItem]:
        """Load what the sink already holds for this partition."""
        raise NotImplementedError


class RelevanceWindowPolicy(RetentionPolicy):
    """Ranked, thresholded, time-bounded."""

    def __init__(self, window_days: int = 7, min_region_relevance: int = 60, limit: int = 20):
        self.window_days = window_days
        self.min_region_relevance = min_region_relevance
        self.limit = limit

    def apply(self, existing, incoming, now):
        cutoff = now - timedelta(days=self.window_days)
        candidates = [
            i for i in _merge_unique(existing, incoming)
            if i.published_at >= cutoff and i.region_relevance >= self.min_region_relevance
        ]
        return rank(candidates)[:self.limit]

    def hydrate(self, sink, partition_key, now):
        return sink.query_by_partition(
            partition_key,
            min_relevance=self.min_region_relevance,
            limit=self.limit,
            since=now - timedelta(days=self.window_days),
        )

    def __repr__(self):
        return (f"RelevanceWindowPolicy(window_days={self.window_days}, "
                f"min_region_relevance={self.min_region_relevance}, limit={self.limit})")


class FifoBoundedPolicy(RetentionPolicy):
    """Newest `capacity` items by published_at."""

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity

    def apply(self, existing, incoming, now):
        # Oldest published first; stable so equal timestamps keep arrival order
        ordered = sorted(_merge_unique(existing, incoming), key=lambda i: i.published_at)
        kept = ordered[-self.capacity:]
        kept.reverse()
        return kept

    def hydrate(self, sink, partition_key, now):
        return sink.query_by_partition(partition_key, min_relevance=0, limit=self.capacity)

    def __repr__(self):
        return f"FifoBoundedPolicy(capacity={self.capacity})"


class RetentionManager:
    """Per-partition retained sets plus the stats that summarise them."""

    def __init__(
        self,
        sink: Optional[PersistenceSink] = None,
        default_policy: Optional[RetentionPolicy] = None,
        policies: Optional[Dict[str, RetentionPolicy]] = None,
        high_relevance_threshold: int = 80,
        clock: Clock = _utcnow,
    ):
        self.sink = sink if sink is not None else InMemorySink()
        self.default_policy = default_policy or RelevanceWindowPolicy()
        self._policies: Dict[str, RetentionPolicy] = {k.upper(): v for k, v in (policies or {}).items()}
        self.high_relevance_threshold = high_relevance_threshold
        self._clock = clock
        self._retained: Dict[str, List[NewsItem]] = {}
        self._pending: Dict[str, PendingWrites] = {}
        # Sources seen per (partition, day); distinct_sources is an absolute count
        self._day_sources: Dict[Tuple[str, date], Set[str]] = {}

    @classmethod
    def from_settings(cls, sink: Optional[PersistenceSink] = None, settings=None, clock: Clock = _utcnow):
        settings = settings or get_settings()
        return cls(
            sink=sink,
            default_policy=RelevanceWindowPolicy(
                window_days=settings.retention_window_days,
                min_region_relevance=settings.retention_min_relevance,
                limit=settings.retention_limit,
            ),
            high_relevance_threshold=settings.high_relevance_threshold,
            clock=clock,
        )

    def policy_for(self, partition_key: str) -> RetentionPolicy:
        return self._policies.get(partition_key.upper(), self.default_policy)

    def set_policy(self, partition_key: str, policy: RetentionPolicy) -> None:
        self._policies[partition_key.upper()] = policy

    def retained(self, partition_key: str) -> List[NewsItem]:
        return list(self._retained.get(partition_key.upper(), []))

    def pending(self, partition_key: str) -> PendingWrites:
        """Writes still owed to the sink for this partition (empty when in sync)."""
        return self._pending.get(partition_key.upper()) or PendingWrites()

    def _existing(self, pk: str, policy: RetentionPolicy, now: datetime) -> List[NewsItem]:
        if pk in self._retained:
            return self._retained[pk]
        try:
            loaded = policy.hydrate(self.sink, pk, now)
        except PersistenceError as e:
            logger.error(f"[{pk}] Could not load retained items from sink: {e}")
            loaded = []
        self._retained[pk] = loaded
        return loaded

    def ingest(self, partition_key: str, items: Iterable[NewsItem], provider_calls: int = 0) -> List[NewsItem]:
        """
        Apply the partition's policy to a scored batch.

        Returns the batch items that are retained after this call (newly
        committed ones plus any the partition already held), in retention
        order. Stats are only credited for the newly committed items.
        """
        pk = partition_key.upper()
        policy = self.policy_for(pk)
        now = self._clock()
        batch = [i for i in items if not i.is_superseded]

        existing = self._existing(pk, policy, now)
        existing_keys = {i.identity_key for i in existing}
        retained = policy.apply(existing, batch, now)
        retained_keys = {i.identity_key for i in retained}

        batch_keys = {i.identity_key for i in batch}
        committed_new = [i for i in retained if i.identity_key not in existing_keys]
        evicted = [i.identity_key for i in existing if i.identity_key not in retained_keys]
        self._retained[pk] = retained

        writes = self._pending.pop(pk, None) or PendingWrites()
        if writes:
            logger.info(f"[{pk}] Retrying {len(writes.items)} unpersisted items from an earlier batch")
        for item in committed_new:
            writes.items[item.identity_key] = item
        for key in [k for k in writes.items if k not in retained_keys]:
            del writes.items[key]
        writes.evicted.update(evicted)
        writes.evicted -= retained_keys
        writes.add_stats(self._stats_delta(pk, committed_new, provider_calls, now.date()))

        try:
            self.sink.commit(
                pk,
                list(writes.items.values()),
                sorted(writes.evicted),
                [writes.stats[d] for d in sorted(writes.stats)],
            )
        except PersistenceError as e:
            self._pending[pk] = writes
            logger.error(
                f"[{pk}] Persistence failed, {len(writes.items)} items kept in memory for retry: {e}"
            )

        if evicted:
            logger.debug(f"[{pk}] Evicted {len(evicted)} items ({policy!r})")
        logger.info(
            f"[{pk}] Retention: {len(batch)} in, {len(committed_new)} committed, "
            f"{len(evicted)} evicted, {len(retained)} retained"
        )
        return [i for i in retained if i.identity_key in batch_keys]

    def _stats_delta(self, pk: str, committed: List[NewsItem], provider_calls: int, day: date) -> PartitionStats:
        for key in [k for k in self._day_sources if k[1] < day]:
            del self._day_sources[key]
        sources = self._day_sources.setdefault((pk, day), set())
        sources.update(i.source for i in committed)
        count = len(committed)
        return PartitionStats(
            partition_key=pk,
            day=day,
            total_items=count,
            high_relevance_items=sum(1 for i in committed if i.region_relevance >= self.high_relevance_threshold),
            distinct_sources=len(sources),
            avg_topical_score=round(sum(i.topical_score for i in committed) / count, 2) if count else 0.0,
            provider_calls=provider_calls,
        )

    def stats(self, partition_key: str, day: Optional[date] = None) -> Optional[PartitionStats]:
        try:
            return self.sink.get_stats(partition_key.upper(), day or self._clock().date())
        except PersistenceError as e:
            logger.error(f"[{partition_key}] Could not read stats: {e}")
            return None

    def reset_stats(self, partition_key: str, day: Optional[date] = None) -> None:
        pk = partition_key.upper()
        self.sink.reset_stats(pk, day)
        for key in [k for k in self._day_sources if k[0] == pk and (day is None or k[1] == day)]:
            del self._day_sources[key]
        writes = self._pending.get(pk)
        if writes is not None:
            for d in [d for d in writes.stats if day is None or d == day]:
                del writes.stats[d]


class StartupDigest:
    """
    Rolling digest of startup news across all partitions.

    Items whose text mentions a startup keyword are copied into one
    FIFO-bounded partition, so the digest always holds the latest N.
    """

    PARTITION_KEY = "STARTUP"

    def __init__(
        self,
        manager: RetentionManager,
        capacity: int = 100,
        keywords: Sequence[str] = STARTUP_KEYWORDS,
    ):
        self.manager = manager
        self.keywords = [k.lower() for k in keywords]
        manager.set_policy(self.PARTITION_KEY, FifoBoundedPolicy(capacity))

    def matches(self, item: NewsItem) -> bool:
        text = item.text()
        return any(k in text for k in self.keywords)

    def offer(self, items: Iterable[NewsItem]) -> List[NewsItem]:
        """Feed matching items into the digest. Returns the ones retained."""
        picked = [
            i.model_copy(update={"partition_key": self.PARTITION_KEY})
            for i in items if self.matches(i)
        ]
        if not picked:
            return []
        return self.manager.ingest(self.PARTITION_KEY, picked)

    def latest(self, n: Optional[int] = None) -> List[NewsItem]:
        items = self.manager.retained(self.PARTITION_KEY)
        return items[:n] if n is not None else items
