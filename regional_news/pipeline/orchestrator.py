"""
Fetch orchestrator: runs the strategies for a partition and returns what
the retention manager committed.

Per partition:
  strategy 1..n → RateLimitedClient.fetch (cache / budget / retry)
               → Normalizer (per item, malformed ones dropped)
  merged items → Deduplicator → RelevanceScorer → RetentionManager

Provider calls within a partition are spaced by a fixed delay; partitions
in aggregate_many() run one after another with a longer delay between
them. A failed strategy is recorded in the result and the rest carry on.
"""

import logging
import time
from typing import Dict, Iterable, List, Optional

from ..config import PARTITIONS
from ..schemas import AggregationResult, NewsItem, StrategyOutcome
from .deps import PipelineDeps
from .strategies import FetchStrategy, default_strategies

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """Coordinates strategies, processing and retention for partitions."""

    def __init__(
        self,
        deps: PipelineDeps,
        strategies: Optional[List[FetchStrategy]] = None,
        inter_call_delay: Optional[float] = None,
        inter_partition_delay: Optional[float] = None,
    ):
        self.deps = deps
        self.strategies = strategies if strategies is not None else default_strategies(deps.scorer.keyword_table)
        settings = deps.settings
        self.inter_call_delay = (
            inter_call_delay if inter_call_delay is not None else settings.inter_call_delay_seconds
        )
        self.inter_partition_delay = (
            inter_partition_delay if inter_partition_delay is not None else settings.inter_partition_delay_seconds
        )

    async def aggregate(self, partition_key: str, target_count: int = 20) -> AggregationResult:
        """
        Run every strategy for one partition and return up to target_count committed items.

        Never raises for provider or persistence trouble: failures show up in
        result.errors and the per-strategy outcomes. success is False only
        when no strategy produced a usable response.
        """
        pk = partition_key.upper()
        partition = PARTITIONS.get(pk)
        if partition is None:
            logger.warning(f"[{pk}] Unknown partition, skipping")
            return AggregationResult(partition_key=pk, errors=[f"unknown partition '{pk}'"])

        t0 = time.time()
        logger.info(f"[{pk}] Aggregating {partition['name']} (target {target_count})")

        client = self.deps.client
        fetched: List[NewsItem] = []
        outcomes: List[StrategyOutcome] = []
        errors: List[str] = []
        provider_calls = 0
        hit_network = False

        for strategy in self.strategies:
            outcome = StrategyOutcome(strategy=strategy.kind)
            requests = strategy.build_requests(pk, partition, client.providers, target_count)
            if not requests:
                outcome.errors.append("no configured provider supports this strategy")

            for request in requests:
                if hit_network and self.inter_call_delay > 0:
                    await self.deps.sleep(self.inter_call_delay)

                result = await client.fetch(request)
                hit_network = result.attempts > 0
                outcome.provider_calls += result.attempts
                provider_calls += result.attempts

                if not result.ok:
                    outcome.errors.append(str(result.error))
                    continue

                items = self.deps.normalizer.normalize_payload(
                    request.provider, result.payload, pk, strategy.kind,
                )
                outcome.success = True
                outcome.items_found += len(items)
                fetched.extend(items)

            if outcome.success:
                logger.info(f"[{pk}] [OK] {strategy.name}: {outcome.items_found} items")
            else:
                logger.warning(f"[{pk}] [FAIL] {strategy.name}: {'; '.join(outcome.errors) or 'no results'}")
                errors.extend(f"{strategy.name}: {e}" for e in outcome.errors)
            outcomes.append(outcome)

        if not any(o.success for o in outcomes):
            logger.error(f"[{pk}] All strategies failed")
            return AggregationResult(
                partition_key=pk,
                success=False,
                provider_calls=provider_calls,
                strategies=outcomes,
                errors=errors,
            )

        unique = self.deps.deduplicator.dedupe(fetched)
        scored = self.deps.scorer.score_all(unique)
        committed = self.deps.retention.ingest(pk, scored, provider_calls=provider_calls)
        if self.deps.digest is not None:
            self.deps.digest.offer(scored)

        logger.info(
            f"[{pk}] Done in {time.time() - t0:.1f}s: {len(fetched)} found, {len(unique)} unique, "
            f"{len(committed)} committed, {provider_calls} provider calls"
        )
        return AggregationResult(
            partition_key=pk,
            success=True,
            items=committed[:target_count],
            total_found=len(fetched),
            committed=len(committed),
            provider_calls=provider_calls,
            strategies=outcomes,
            errors=errors,
        )

    async def aggregate_many(
        self,
        partition_keys: Optional[Iterable[str]] = None,
        target_count: int = 20,
    ) -> Dict[str, AggregationResult]:
        """Aggregate partitions one at a time with a pause between them."""
        keys = [k.upper() for k in (PARTITIONS.keys() if partition_keys is None else partition_keys)]
        results: Dict[str, AggregationResult] = {}
        for index, pk in enumerate(keys):
            if index and self.inter_partition_delay > 0:
                await self.deps.sleep(self.inter_partition_delay)
            results[pk] = await self.aggregate(pk, target_count)

        succeeded = sum(1 for r in results.values() if r.success)
        logger.info(
            f"Aggregated {succeeded}/{len(results)} partitions, "
            f"{sum(r.committed for r in results.values())} items committed, "
            f"{sum(r.provider_calls for r in results.values())} provider calls"
        )
        return results

    def summary(self, results: Dict[str, AggregationResult]) -> Dict[str, Dict[str, object]]:
        """Compact per-partition report, including today's stats where available."""
        report = {}
        for pk, result in results.items():
            stats = self.deps.retention.stats(pk)
            report[pk] = {
                "success": result.success,
                "committed": result.committed,
                "total_found": result.total_found,
                "provider_calls": result.provider_calls,
                "failed_strategies": [s.strategy.value for s in result.strategies if not s.success],
                "high_relevance_today": stats.high_relevance_items if stats else 0,
            }
        return report
