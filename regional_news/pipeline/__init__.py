"""
Aggregation pipeline: dependency wiring, fetch strategies, orchestration.
"""

from regional_news.pipeline.deps import PipelineDeps
from regional_news.pipeline.strategies import (
    FetchStrategy,
    RegionCodeStrategy,
    EntityStrategy,
    RegionNameStrategy,
    default_strategies,
)
from regional_news.pipeline.orchestrator import FetchOrchestrator

__all__ = [
    "PipelineDeps",
    "FetchOrchestrator",
    "FetchStrategy",
    "RegionCodeStrategy",
    "EntityStrategy",
    "RegionNameStrategy",
    "default_strategies",
]
