import logging
from datetime import datetime, timedelta, timezone

import pytest

from regional_news.database import InMemorySink
from regional_news.errors import PersistenceError
from regional_news.news import FifoBoundedPolicy, RelevanceWindowPolicy, RetentionManager, StartupDigest
from tests.conftest import make_item

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def _day(n: int) -> datetime:
    return datetime(2024, 5, n, 9, 0, tzinfo=timezone.utc)


def _manager(policy=None, sink=None) -> RetentionManager:
    return RetentionManager(
        sink=sink if sink is not None else InMemorySink(),
        default_policy=policy or RelevanceWindowPolicy(window_days=7, min_region_relevance=60, limit=20),
        clock=lambda: NOW,
    )


class BrokenSink(InMemorySink):
    def store(self, item):
        raise PersistenceError("database is locked")


class FlakySink(InMemorySink):
    """Fails the first `failures` commits, then behaves."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    def store(self, item):
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("database is locked")
        super().store(item)


def test_fifo_evicts_oldest_published_first():
    sink = InMemorySink()
    manager = _manager(FifoBoundedPolicy(capacity=3), sink)

    for n in (1, 2, 3, 4):
        manager.ingest("DIGEST", [make_item(n, partition_key="DIGEST", published_at=_day(n))])

    retained = manager.retained("DIGEST")
    assert sorted(i.published_at.day for i in retained) == [2, 3, 4]
    assert sorted(i.published_at.day for (_, _), i in sink.items.items()) == [2, 3, 4]


def test_fifo_orders_by_publish_time_not_insertion():
    manager = _manager(FifoBoundedPolicy(capacity=2))
    manager.ingest("DIGEST", [make_item(3, partition_key="DIGEST", published_at=_day(3))])
    manager.ingest("DIGEST", [make_item(1, partition_key="DIGEST", published_at=_day(1))])
    manager.ingest("DIGEST", [make_item(2, partition_key="DIGEST", published_at=_day(2))])

    assert sorted(i.published_at.day for i in manager.retained("DIGEST")) == [2, 3]


def test_fifo_ignores_score():
    manager = _manager(FifoBoundedPolicy(capacity=1))
    manager.ingest("DIGEST", [
        make_item(1, partition_key="DIGEST", published_at=_day(1), region_relevance=100),
        make_item(2, partition_key="DIGEST", published_at=_day(2), region_relevance=0),
    ])
    assert [i.published_at.day for i in manager.retained("DIGEST")] == [2]


def test_window_policy_filters_age_and_threshold_and_caps():
    manager = _manager(RelevanceWindowPolicy(window_days=7, min_region_relevance=60, limit=2))
    fresh_high = make_item(1, region_relevance=90, published_at=NOW - timedelta(days=1))
    fresh_mid = make_item(2, region_relevance=70, published_at=NOW - timedelta(days=2))
    fresh_mid2 = make_item(3, region_relevance=65, published_at=NOW - timedelta(days=2))
    too_old = make_item(4, region_relevance=100, published_at=NOW - timedelta(days=8))
    too_weak = make_item(5, region_relevance=40, published_at=NOW - timedelta(hours=1))

    committed = manager.ingest("KR", [too_old, fresh_mid, too_weak, fresh_high, fresh_mid2])

    assert [i.identity_key for i in committed] == [fresh_high.identity_key, fresh_mid.identity_key]


def test_retained_set_has_unique_identity_keys():
    manager = _manager()
    item = make_item(1, published_at=NOW - timedelta(hours=1))
    manager.ingest("KR", [item, item.model_copy()])
    manager.ingest("KR", [item])

    keys = [i.identity_key for i in manager.retained("KR")]
    assert len(keys) == len(set(keys)) == 1


def test_stats_count_only_newly_committed_items():
    manager = _manager()
    items = [
        make_item(1, region_relevance=85, topical_score=60, source="reuters", published_at=NOW - timedelta(hours=1)),
        make_item(2, region_relevance=70, topical_score=80, source="bloomberg", published_at=NOW - timedelta(hours=2)),
        make_item(3, region_relevance=10, topical_score=100, source="blog", published_at=NOW - timedelta(hours=3)),
    ]
    manager.ingest("KR", items, provider_calls=3)
    manager.ingest("KR", items[:2], provider_calls=2)

    stats = manager.stats("KR")
    assert stats.day == NOW.date()
    assert stats.total_items == 2
    assert stats.high_relevance_items == 1
    assert stats.distinct_sources == 2
    assert stats.avg_topical_score == 70.0
    assert stats.provider_calls == 5


def test_total_items_only_grows_until_reset():
    manager = _manager()
    manager.ingest("KR", [make_item(1, published_at=NOW - timedelta(hours=1))])
    manager.ingest("KR", [make_item(2, published_at=NOW - timedelta(hours=1))])
    assert manager.stats("KR").total_items == 2

    manager.reset_stats("KR")
    assert manager.stats("KR") is None


def test_persistence_failure_is_logged_and_items_still_returned(caplog):
    manager = _manager(sink=BrokenSink())
    item = make_item(1, published_at=NOW - timedelta(hours=1))

    with caplog.at_level(logging.ERROR):
        committed = manager.ingest("KR", [item])

    assert [i.identity_key for i in committed] == [item.identity_key]
    assert "Persistence failed" in caplog.text
    assert list(manager.pending("KR").items) == [item.identity_key]


def test_unpersisted_commit_is_written_once_sink_recovers():
    sink = FlakySink(failures=1)
    manager = _manager(sink=sink)
    item = make_item(1, published_at=NOW - timedelta(hours=1))

    manager.ingest("KR", [item], provider_calls=2)
    assert sink.items == {}
    assert manager.stats("KR") is None

    manager.ingest("KR", [item], provider_calls=1)

    assert len(sink.items) == 1
    stats = manager.stats("KR")
    assert stats.total_items == 1
    assert stats.provider_calls == 3
    assert not manager.pending("KR")


def test_pending_item_evicted_before_recovery_is_never_stored():
    sink = FlakySink(failures=2)
    manager = _manager(FifoBoundedPolicy(capacity=1), sink)

    manager.ingest("DIGEST", [make_item(1, partition_key="DIGEST", published_at=_day(1))])
    manager.ingest("DIGEST", [make_item(2, partition_key="DIGEST", published_at=_day(2))])
    manager.ingest("DIGEST", [])

    assert [i.published_at.day for (_, _), i in sink.items.items()] == [2]
    assert manager.stats("DIGEST").total_items == 2
    assert not manager.pending("DIGEST")


def test_source_tracking_drops_past_days():
    now = {"value": NOW}
    manager = RetentionManager(sink=InMemorySink(), clock=lambda: now["value"])
    manager.ingest("KR", [make_item(1, region_relevance=90, published_at=NOW - timedelta(hours=1))])
    now["value"] = NOW + timedelta(days=1)
    manager.ingest("KR", [make_item(2, region_relevance=90, published_at=NOW)])

    assert {day for (_, day) in manager._day_sources} == {(NOW + timedelta(days=1)).date()}


def test_superseded_items_are_never_committed():
    manager = _manager()
    item = make_item(1, published_at=NOW - timedelta(hours=1)).model_copy(update={"is_superseded": True})
    assert manager.ingest("KR", [item]) == []


def test_startup_digest_keeps_latest_matching_items():
    manager = _manager()
    digest = StartupDigest(manager, capacity=2)
    items = [
        make_item(1, title="Fintech startup raises seed funding", published_at=_day(1)),
        make_item(2, title="Chipmaker posts flat quarterly output", published_at=_day(2)),
        make_item(3, title="Robotics startup acquired by Samsung", published_at=_day(3)),
        make_item(4, title="Unicorn founders plan expansion abroad", published_at=_day(4)),
    ]

    digest.offer(items)

    latest = digest.latest()
    assert [i.published_at.day for i in latest] == [4, 3]
    assert all(i.partition_key == "STARTUP" for i in latest)


def test_invalid_fifo_capacity():
    with pytest.raises(ValueError):
        FifoBoundedPolicy(capacity=0)
