"""
Tiered in-memory cache for provider payloads.

Three pools keyed by volatility, each with its own TTL:
  FAST    headlines / quotes (minutes)
  MEDIUM  market and listing data (tens of minutes)
  SLOW    near-static reference data (hours)

Expiry is lazy: an entry past its TTL is treated as absent on read and
dropped then. purge_expired() exists for memory hygiene but nothing calls
it on a schedule. The cache never triggers fetches itself.

Usage:
    cache = TieredCache.from_settings(get_settings())
    cache.set(req.signature(), payload, CacheTier.FAST)
    payload = cache.get(req.signature(), CacheTier.FAST)   # None on miss
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..schemas import CacheEntry, CacheTier

logger = logging.getLogger(__name__)


class TieredCache:
    """Read-through / write-through cache with one pool per CacheTier."""

    def __init__(
        self,
        ttls: Optional[Dict[CacheTier, float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttls = {
            CacheTier.FAST: 300.0,
            CacheTier.MEDIUM: 1800.0,
            CacheTier.SLOW: 86400.0,
        }
        if ttls:
            self._ttls.update(ttls)
        self._clock = clock
        self._pools: Dict[CacheTier, Dict[str, CacheEntry]] = {tier: {} for tier in CacheTier}
        self._hits: Dict[CacheTier, int] = {tier: 0 for tier in CacheTier}
        self._misses: Dict[CacheTier, int] = {tier: 0 for tier in CacheTier}

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], float] = time.monotonic) -> "TieredCache":
        return cls(
            ttls={
                CacheTier.FAST: settings.cache_fast_ttl,
                CacheTier.MEDIUM: settings.cache_medium_ttl,
                CacheTier.SLOW: settings.cache_slow_ttl,
            },
            clock=clock,
        )

    def ttl(self, tier: CacheTier) -> float:
        return self._ttls[tier]

    def get(self, key: str, tier: CacheTier) -> Optional[Any]:
        """Return the cached payload, or None if absent or expired."""
        pool = self._pools[tier]
        entry = pool.get(key)
        if entry is None:
            self._misses[tier] += 1
            return None
        if not entry.is_fresh(self._ttls[tier], self._clock()):
            del pool[key]
            self._misses[tier] += 1
            return None
        self._hits[tier] += 1
        return entry.payload

    def set(self, key: str, value: Any, tier: CacheTier) -> None:
        self._pools[tier][key] = CacheEntry(key=key, payload=value, tier=tier, stored_at=self._clock())

    def clear(self, tier: Optional[CacheTier] = None) -> None:
        """Clear one tier, or every tier when tier is None."""
        tiers = [tier] if tier is not None else list(CacheTier)
        for t in tiers:
            self._pools[t].clear()
        logger.info(f"TieredCache: cleared {', '.join(t.value for t in tiers)}")

    def purge_expired(self) -> int:
        """Drop expired entries from every pool. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for tier, pool in self._pools.items():
            stale = [k for k, e in pool.items() if not e.is_fresh(self._ttls[tier], now)]
            for k in stale:
                del pool[k]
            removed += len(stale)
        if removed:
            logger.debug(f"TieredCache: purged {removed} expired entries")
        return removed

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {
            tier.value: {
                "keys": len(self._pools[tier]),
                "hits": self._hits[tier],
                "misses": self._misses[tier],
            }
            for tier in CacheTier
        }
