"""
Rate-limited, cached client for external news providers.

Every outbound provider call in the pipeline goes through
RateLimitedClient.fetch(). Order of operations for one request:

  1. Tiered cache lookup by exact request signature. A hit returns at once
     and costs nothing against the provider budget.
  2. RequestLog.acquire() reserves a slot in the provider's rolling window,
     waiting if the window is full (never dropping the call).
  3. DataSource.send() performs the call.
  4. Retryable failures (429, 5xx, timeouts) back off per BackoffPolicy and
     go back to step 2, up to max_retries.
  5. Success writes the payload to the cache tier the request declared.

fetch() never raises. Failures come back as FetchResult.error so one bad
provider can't take down a whole aggregation run.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from ..errors import AggregationError, ConfigurationError, RateLimitedError, TransientProviderError
from ..schemas import FetchRequest, FetchResult
from .data_sources import DataSource
from .rate_limiter import BackoffPolicy, RequestLog, Sleeper
from .tiered_cache import TieredCache

logger = logging.getLogger(__name__)


class RateLimitedClient:
    """Provider gateway combining cache, request budget and retry."""

    def __init__(
        self,
        sources: Dict[str, DataSource],
        cache: TieredCache,
        request_log: RequestLog,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Sleeper = asyncio.sleep,
        single_flight: bool = True,
    ):
        if not sources:
            raise ConfigurationError("RateLimitedClient needs at least one data source")
        self._sources = dict(sources)
        self.cache = cache
        self.request_log = request_log
        self.backoff = backoff or BackoffPolicy()
        self._sleep = sleep
        self._single_flight = single_flight
        self._inflight: Dict[str, "asyncio.Task[FetchResult]"] = {}
        self._health: Dict[str, Dict[str, Any]] = {}

    @property
    def providers(self):
        return sorted(self._sources)

    async def fetch(self, request: FetchRequest) -> FetchResult:
        """Fetch one request. Never raises; check FetchResult.ok."""
        signature = request.signature()

        cached = self.cache.get(signature, request.volatility)
        if cached is not None:
            logger.debug(f"[CACHE] {signature}")
            return FetchResult(request=request, payload=cached, from_cache=True)

        if not self._single_flight:
            return await self._fetch_uncached(request)

        task = self._inflight.get(signature)
        if task is None:
            task = asyncio.ensure_future(self._fetch_uncached(request))
            self._inflight[signature] = task
            task.add_done_callback(lambda _t, sig=signature: self._inflight.pop(sig, None))
        else:
            logger.debug(f"[SHARED] {signature}: joining in-flight request")
        return await asyncio.shield(task)

    async def _fetch_uncached(self, request: FetchRequest) -> FetchResult:
        provider = request.provider
        source = self._sources.get(provider)
        if source is None:
            error = ConfigurationError(f"No data source configured for provider '{provider}'")
            logger.warning(f"[FAIL] {provider}: {error}")
            return FetchResult(request=request, error=error)

        attempt = 0
        while True:
            attempt += 1
            try:
                await self.request_log.acquire(provider)
            except RateLimitedError as e:
                # Daily ceiling: waiting won't help today
                self._record_failure(provider, e)
                logger.warning(f"[FAIL] {provider}: {e}")
                return FetchResult(request=request, error=e, attempts=attempt - 1)

            try:
                payload = await source.send(request)
            except TransientProviderError as e:
                if not e.retryable or not self.backoff.should_retry(attempt):
                    self._record_failure(provider, e)
                    logger.warning(f"[FAIL] {provider}: {e} (attempt {attempt})")
                    return FetchResult(request=request, error=e, attempts=attempt)
                delay = self.backoff.delay_for(attempt)
                logger.info(f"[RETRY] {provider}: {e}, retrying in {delay:.0f}s (attempt {attempt})")
                await self._sleep(delay)
                continue
            except AggregationError as e:
                self._record_failure(provider, e)
                logger.warning(f"[FAIL] {provider}: {e}")
                return FetchResult(request=request, error=e, attempts=attempt)

            self.cache.set(request.signature(), payload, request.volatility)
            self._record_success(provider)
            logger.info(f"[OK] {provider}: {request.endpoint} (attempt {attempt})")
            return FetchResult(request=request, payload=payload, attempts=attempt)

    # ── Source health ──

    def _record_success(self, provider: str) -> None:
        health = self._health.setdefault(provider, {"calls_ok": 0, "calls_failed": 0})
        health["calls_ok"] += 1
        health["consecutive_failures"] = 0
        health["last_success"] = time.time()

    def _record_failure(self, provider: str, error: Exception) -> None:
        health = self._health.setdefault(provider, {"calls_ok": 0, "calls_failed": 0})
        health["calls_failed"] += 1
        health["consecutive_failures"] = health.get("consecutive_failures", 0) + 1
        health["last_error"] = str(error)

    def health_report(self) -> Dict[str, Dict[str, Any]]:
        """Per-provider success/failure counters plus current request budget usage."""
        budgets = self.request_log.status()
        report = {}
        for provider in self.providers:
            entry = {"calls_ok": 0, "calls_failed": 0, "consecutive_failures": 0}
            entry.update(self._health.get(provider, {}))
            entry["budget"] = budgets.get(provider, {})
            report[provider] = entry
        return report

    async def aclose(self) -> None:
        seen = set()
        for source in self._sources.values():
            if id(source) not in seen:
                seen.add(id(source))
                await source.aclose()
