"""
Common enums used across the pipeline.

These define the vocabulary of the system: content categories, cache tiers,
fetch strategies and retention policy kinds.
"""

from enum import Enum


class Category(str, Enum):
    """Enumerated content tag assigned at normalization time."""
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    STARTUP = "startup"
    AI = "ai"
    GENERAL = "general"


class CacheTier(str, Enum):
    """
    Cache pool by data volatility.

    FAST: minutes (headlines, quotes)
    MEDIUM: tens of minutes (market / listing data)
    SLOW: hours (near-static reference data)
    """
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class StrategyKind(str, Enum):
    """Query shape executed by the orchestrator."""
    REGION_CODE = "region_code"      # broad topical query filtered by country code
    ENTITY = "entity"                # company / organisation targeted
    REGION_NAME = "region_name"      # country name in free text
