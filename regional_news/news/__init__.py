"""
Item processing: normalize → dedupe → score → retain.

Modules:
- normalizer: Per-provider adapters, quality filter, identity keys
- dedup: Stable first-wins dedup on identity_key
- scorer: Topical / regional / analysis scores and ranking
- retention: Relevance-window and FIFO-bounded retention, stats upsert
"""

from regional_news.news.normalizer import Normalizer, normalize, classify_category, parse_timestamp
from regional_news.news.dedup import Deduplicator, dedupe
from regional_news.news.scorer import RelevanceScorer, rank, ranking_key
from regional_news.news.retention import (
    RetentionManager,
    RelevanceWindowPolicy,
    FifoBoundedPolicy,
    StartupDigest,
)

__all__ = [
    "Normalizer", "normalize", "classify_category", "parse_timestamp",
    "Deduplicator", "dedupe",
    "RelevanceScorer", "rank", "ranking_key",
    "RetentionManager", "RelevanceWindowPolicy", "FifoBoundedPolicy", "StartupDigest",
]
