"""
Exact-identity deduplication.

Items are duplicates when they share an identity_key (normalized URL +
folded title prefix). The first occurrence in input order wins; later
occurrences are marked superseded and dropped from the output.
"""

import logging
from typing import Iterable, List, Set, Tuple

from ..schemas import NewsItem

logger = logging.getLogger(__name__)


class Deduplicator:
    """Stable first-wins dedup over identity_key."""

    def __init__(self):
        self.last_superseded: List[NewsItem] = []

    def split(self, items: Iterable[NewsItem]) -> Tuple[List[NewsItem], List[NewsItem]]:
        """Return (kept, superseded). Superseded copies carry is_superseded=True."""
        seen: Set[str] = set()
        kept: List[NewsItem] = []
        superseded: List[NewsItem] = []
        for item in items:
            if item.identity_key in seen:
                superseded.append(item.model_copy(update={"is_superseded": True}))
                continue
            seen.add(item.identity_key)
            kept.append(item)
        return kept, superseded

    def dedupe(self, items: Iterable[NewsItem]) -> List[NewsItem]:
        kept, superseded = self.split(items)
        self.last_superseded = superseded
        if superseded:
            logger.info(f"Dedup: {len(kept) + len(superseded)} -> {len(kept)} items ({len(superseded)} superseded)")
        return kept


def dedupe(items: Iterable[NewsItem]) -> List[NewsItem]:
    return Deduplicator().dedupe(items)
