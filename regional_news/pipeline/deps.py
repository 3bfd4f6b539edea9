"""
Dependency container for the aggregation pipeline.

Everything stateful (cache, request log, client, retention) is built once
here and handed to FetchOrchestrator, so one container = one set of
budgets and one cache, reused across aggregate() calls.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from ..config import PROVIDERS, DEFAULT_KEYWORDS, get_settings
from ..database import Database, InMemorySink, PersistenceSink, get_database
from ..errors import ConfigurationError, PersistenceError
from ..news import Deduplicator, Normalizer, RelevanceScorer, RetentionManager, StartupDigest
from ..schemas import KeywordTable
from ..tools import (
    BackoffPolicy, DataSource, LiveSource, ProviderBudget, RateLimitedClient,
    RequestLog, SimulatedSource, TieredCache,
)
from ..tools.rate_limiter import Sleeper

logger = logging.getLogger(__name__)


def build_request_log(settings, sleep: Sleeper = asyncio.sleep, clock=None) -> RequestLog:
    """Per-provider budgets: the stricter of the global setting and the provider's own ceiling."""
    if settings.provider_calls_per_window < 1 or settings.provider_window_seconds <= 0:
        raise ConfigurationError("Provider request budget must allow at least one call per positive window")
    budgets: Dict[str, ProviderBudget] = {}
    for name, cfg in PROVIDERS.items():
        daily = min(settings.provider_daily_limit, cfg.get("daily_limit", settings.provider_daily_limit))
        budgets[name] = ProviderBudget(
            calls_per_window=min(settings.provider_calls_per_window, cfg.get("calls_per_window", settings.provider_calls_per_window)),
            window_seconds=settings.provider_window_seconds,
            daily_limit=daily if daily > 0 else None,
        )
    default = ProviderBudget(settings.provider_calls_per_window, settings.provider_window_seconds, settings.provider_daily_limit)
    kwargs = {"clock": clock} if clock is not None else {}
    return RequestLog(budgets, default, sleep=sleep, **kwargs)


def build_sources(settings, mock_mode: bool, transport=None) -> Dict[str, DataSource]:
    """
    Pick the DataSource variant once.

    Mock mode: one SimulatedSource serves every provider.
    Live: a LiveSource per provider with a configured key. Providers without
    a key are left out; if none has one, that's a ConfigurationError.
    """
    if mock_mode:
        simulated = SimulatedSource()
        return {name: simulated for name in PROVIDERS}

    sources: Dict[str, DataSource] = {}
    for name in PROVIDERS:
        if settings.api_key_for(name):
            sources[name] = LiveSource.for_provider(name, settings, transport=transport)
        else:
            logger.warning(f"{name}: no API key configured, provider disabled")
    if not sources:
        raise ConfigurationError(
            "No news provider credentials configured. Set NEWSDATA_API_KEY, NEWSAPI_KEY "
            "or GNEWS_API_KEY, or run with MOCK_MODE=true."
        )
    return sources


def load_keywords(sink: PersistenceSink) -> KeywordTable:
    """Keyword weights from the database (seeding defaults on first run), else the built-in table."""
    if isinstance(sink, Database):
        try:
            table = sink.load_keyword_table()
            if not len(table):
                sink.seed_keywords()
                table = sink.load_keyword_table()
            return table
        except PersistenceError as e:
            logger.error(f"Keyword table unavailable, using defaults: {e}")
    return KeywordTable.from_mapping(DEFAULT_KEYWORDS)


@dataclass
class PipelineDeps:
    """Constructed-once pipeline collaborators."""
    settings: object
    client: RateLimitedClient
    normalizer: Normalizer
    deduplicator: Deduplicator
    scorer: RelevanceScorer
    retention: RetentionManager
    digest: Optional[StartupDigest] = None
    sleep: Sleeper = field(default=asyncio.sleep, repr=False)
    mock_mode: bool = False

    @classmethod
    def create(
        cls,
        mock_mode: bool = False,
        settings=None,
        sink: Optional[PersistenceSink] = None,
        transport=None,
        sleep: Sleeper = asyncio.sleep,
        monotonic: Optional[Callable[[], float]] = None,
        wallclock: Optional[Callable[[], float]] = None,
        now: Optional[Callable[[], datetime]] = None,
        with_digest: bool = True,
    ) -> "PipelineDeps":
        """
        Wire the pipeline. Raises ConfigurationError when credentials or
        budgets are missing; nothing later in the pipeline raises it.
        """
        settings = settings or get_settings()
        effective_mock = mock_mode or settings.mock_mode

        if sink is None:
            sink = InMemorySink() if effective_mock else get_database()

        sources = build_sources(settings, effective_mock, transport=transport)
        cache = TieredCache.from_settings(settings, **({"clock": monotonic} if monotonic else {}))
        request_log = build_request_log(settings, sleep=sleep, clock=wallclock)
        backoff = BackoffPolicy(
            base_delay=settings.backoff_base_seconds,
            max_delay=settings.backoff_max_seconds,
            max_retries=settings.provider_max_retries,
        )
        client = RateLimitedClient(sources, cache, request_log, backoff, sleep=sleep)

        retention = RetentionManager.from_settings(
            sink=sink, settings=settings, **({"clock": now} if now else {}),
        )
        digest = StartupDigest(retention, capacity=settings.digest_capacity) if with_digest else None

        logger.info(
            f"Pipeline ready: {'simulated' if effective_mock else 'live'} sources "
            f"for {', '.join(client.providers)}"
        )
        return cls(
            settings=settings,
            client=client,
            normalizer=Normalizer.from_settings(settings),
            deduplicator=Deduplicator(),
            scorer=RelevanceScorer.from_settings(load_keywords(sink), settings),
            retention=retention,
            digest=digest,
            sleep=sleep,
            mock_mode=effective_mock,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
