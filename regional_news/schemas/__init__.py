"""
Schemas package: all data models for the regional news aggregator.

Models are organized by domain in submodules:
  - base.py: Common enums (Category, CacheTier, StrategyKind)
  - news.py: NewsItem, KeywordWeight, KeywordTable
  - pipeline.py: FetchRequest, FetchResult, CacheEntry, PartitionStats,
    StrategyOutcome, AggregationResult
"""

# base.py: enums
from regional_news.schemas.base import Category, CacheTier, StrategyKind

# news.py: item models
from regional_news.schemas.news import NewsItem, KeywordWeight, KeywordTable, clamp_score

# pipeline.py: pipeline state
from regional_news.schemas.pipeline import (
    FetchRequest, FetchResult, CacheEntry, PartitionStats,
    StrategyOutcome, AggregationResult,
)

__all__ = [
    # base
    "Category", "CacheTier", "StrategyKind",
    # news
    "NewsItem", "KeywordWeight", "KeywordTable", "clamp_score",
    # pipeline
    "FetchRequest", "FetchResult", "CacheEntry", "PartitionStats",
    "StrategyOutcome", "AggregationResult",
]
