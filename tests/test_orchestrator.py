from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from regional_news.config import DEFAULT_KEYWORDS, Settings
from regional_news.database import InMemorySink
from regional_news.errors import ConfigurationError, TransientProviderError
from regional_news.news import Deduplicator, Normalizer, RelevanceScorer, RelevanceWindowPolicy, RetentionManager
from regional_news.pipeline import (
    EntityStrategy, FetchOrchestrator, PipelineDeps, RegionCodeStrategy, RegionNameStrategy,
)
from regional_news.schemas import FetchRequest, KeywordTable, StrategyKind
from regional_news.tools import BackoffPolicy, DataSource, ProviderBudget, RateLimitedClient, RequestLog, TieredCache


def _article(n: int, tag: str) -> Dict[str, Any]:
    published = datetime.now(timezone.utc) - timedelta(hours=n)
    return {
        "title": f"Samsung {tag} story number {n} for the day",
        "description": f"Details of {tag} story {n}: the Seoul company shared an update today.",
        "link": f"https://www.example.com/{tag}/{n}",
        "source_id": "reuters",
        "pubDate": published.strftime("%Y-%m-%d %H:%M:%S"),
    }


class ScriptedSource(DataSource):
    """Answers per strategy: 'q' requests are entity/name searches, 'country' ones are region code."""

    def __init__(self, fail: set, counts: Dict[str, int]):
        self.fail = fail
        self.counts = counts
        self.requests: List[FetchRequest] = []

    async def send(self, request: FetchRequest) -> Dict[str, Any]:
        self.requests.append(request)
        params = request.query_params()
        kind = "region_code" if "country" in params else ("entity" if "Samsung" in params.get("q", "") else "region_name")
        if kind in self.fail:
            raise TransientProviderError("newsdata", f"HTTP 500 for {kind}", status_code=500)
        return {"status": "success", "results": [_article(n, kind) for n in range(self.counts.get(kind, 0))]}


def _deps(clock, source: DataSource) -> PipelineDeps:
    settings = Settings(inter_call_delay_seconds=1.5, inter_partition_delay_seconds=2.0)
    client = RateLimitedClient(
        {"newsdata": source},
        TieredCache(clock=clock.time),
        RequestLog(clock=clock.time, sleep=clock.sleep),
        BackoffPolicy(max_retries=0),
        sleep=clock.sleep,
    )
    return PipelineDeps(
        settings=settings,
        client=client,
        normalizer=Normalizer(),
        deduplicator=Deduplicator(),
        scorer=RelevanceScorer(KeywordTable.from_mapping(DEFAULT_KEYWORDS)),
        retention=RetentionManager(InMemorySink(), RelevanceWindowPolicy(min_region_relevance=0)),
        sleep=clock.sleep,
    )


@pytest.mark.asyncio
async def test_partial_failure_still_succeeds(clock):
    source = ScriptedSource(fail={"region_code"}, counts={"entity": 3})
    deps = _deps(clock, source)
    orchestrator = FetchOrchestrator(deps, strategies=[RegionCodeStrategy(), EntityStrategy(deps.scorer.keyword_table)])

    result = await orchestrator.aggregate("KR", target_count=10)

    assert result.success
    assert len(result.items) == 3
    assert result.total_found == 3
    assert result.provider_calls == 2
    region, entity = result.strategies
    assert region.strategy == StrategyKind.REGION_CODE and not region.success
    assert entity.success and entity.items_found == 3
    assert any("region_code" in e for e in result.errors)
    assert all(0 <= i.region_relevance <= 100 and 0 <= i.topical_score <= 100 for i in result.items)


@pytest.mark.asyncio
async def test_all_strategies_failing_returns_empty_unsuccessful_result(clock):
    source = ScriptedSource(fail={"region_code", "entity", "region_name"}, counts={})
    orchestrator = FetchOrchestrator(_deps(clock, source))

    result = await orchestrator.aggregate("KR", target_count=10)

    assert not result.success
    assert result.items == []
    assert len(result.errors) == 3
    assert [s.success for s in result.strategies] == [False, False, False]


@pytest.mark.asyncio
async def test_merged_results_are_deduped_ranked_and_truncated(clock):
    source = ScriptedSource(fail=set(), counts={"region_code": 4, "entity": 4, "region_name": 4})
    orchestrator = FetchOrchestrator(_deps(clock, source))

    result = await orchestrator.aggregate("KR", target_count=5)

    assert result.success
    assert result.total_found == 12
    assert len(result.items) == 5
    assert len({i.identity_key for i in result.items}) == 5
    scores = [(i.region_relevance, i.topical_score) for i in result.items]
    assert scores == sorted(scores, reverse=True)
    # region-name items carry no strategy bonus, so they rank below the rest
    assert all(i.strategy != StrategyKind.REGION_NAME for i in result.items)


@pytest.mark.asyncio
async def test_provider_calls_are_spaced_by_inter_call_delay(clock):
    source = ScriptedSource(fail=set(), counts={"region_code": 1, "entity": 1, "region_name": 1})
    orchestrator = FetchOrchestrator(_deps(clock, source))

    await orchestrator.aggregate("KR")

    assert len(source.requests) == 3
    assert clock.sleeps == [1.5, 1.5]


@pytest.mark.asyncio
async def test_cached_requests_skip_provider_and_delay(clock):
    source = ScriptedSource(fail=set(), counts={"region_code": 1, "entity": 1, "region_name": 1})
    orchestrator = FetchOrchestrator(_deps(clock, source))

    await orchestrator.aggregate("KR")
    clock.sleeps.clear()
    second = await orchestrator.aggregate("KR")

    assert len(source.requests) == 3
    assert second.provider_calls == 0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_unknown_partition(clock):
    orchestrator = FetchOrchestrator(_deps(clock, ScriptedSource(set(), {})))
    result = await orchestrator.aggregate("XX")
    assert not result.success
    assert result.errors


@pytest.mark.asyncio
async def test_aggregate_many_in_mock_mode(clock):
    settings = Settings(mock_mode=True, inter_call_delay_seconds=1.5, inter_partition_delay_seconds=2.0)
    deps = PipelineDeps.create(
        settings=settings,
        sink=InMemorySink(),
        sleep=clock.sleep,
        monotonic=clock.time,
        wallclock=clock.time,
    )
    deps.retention.set_policy("KR", RelevanceWindowPolicy(min_region_relevance=0))
    deps.retention.set_policy("JP", RelevanceWindowPolicy(min_region_relevance=0))
    orchestrator = FetchOrchestrator(deps)

    results = await orchestrator.aggregate_many(["kr", "jp"], target_count=10)

    assert set(results) == {"KR", "JP"}
    assert all(r.success for r in results.values())
    assert all(r.items for r in results.values())
    assert 2.0 in clock.sleeps
    for r in results.values():
        keys = [i.identity_key for i in r.items]
        assert len(keys) == len(set(keys))
        assert all(i.partition_key == r.partition_key for i in r.items)

    summary = orchestrator.summary(results)
    assert summary["KR"]["success"] is True
    assert deps.client.health_report()["newsdata"]["calls_ok"] > 0
    assert deps.retention.stats("KR").total_items == results["KR"].committed
    await deps.aclose()


def test_live_mode_without_credentials_fails_fast(monkeypatch):
    for var in ("NEWSDATA_API_KEY", "NEWSAPI_KEY", "GNEWS_API_KEY", "MOCK_MODE"):
        monkeypatch.delenv(var, raising=False)
    settings = Settings(newsdata_api_key="", newsapi_key="", gnews_api_key="", mock_mode=False)

    with pytest.raises(ConfigurationError):
        PipelineDeps.create(settings=settings, sink=InMemorySink())


def test_strategies_skip_providers_they_cannot_express():
    from regional_news.config import PARTITIONS

    requests = RegionCodeStrategy().build_requests("CN", PARTITIONS["CN"], ["newsdata", "newsapi"], 10)
    assert [r.provider for r in requests] == ["newsdata"]

    names = RegionNameStrategy().build_requests("KR", PARTITIONS["KR"], ["newsapi"], 50)
    assert names[0].query_params()["pageSize"] == 20
    assert "South Korea" in names[0].query_params()["q"]


@pytest.mark.asyncio
async def test_calls_refused_by_daily_ceiling_do_not_trigger_spacing(clock):
    source = ScriptedSource(fail=set(), counts={"region_code": 1, "entity": 1, "region_name": 1})
    deps = _deps(clock, source)
    deps.client.request_log.set_budget("newsdata", ProviderBudget(daily_limit=1))
    orchestrator = FetchOrchestrator(deps)

    result = await orchestrator.aggregate("KR")

    assert len(source.requests) == 1
    assert result.provider_calls == 1
    assert clock.sleeps == [1.5]


@pytest.mark.asyncio
async def test_aggregate_many_with_no_partitions_does_nothing(clock):
    source = ScriptedSource(fail=set(), counts={"region_code": 1})
    orchestrator = FetchOrchestrator(_deps(clock, source))

    assert await orchestrator.aggregate_many([]) == {}
    assert source.requests == []
