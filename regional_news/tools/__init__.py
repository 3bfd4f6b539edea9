# Tools module
from .tiered_cache import TieredCache
from .rate_limiter import RequestLog, ProviderBudget, BackoffPolicy
from .data_sources import DataSource, LiveSource, SimulatedSource
from .provider_client import RateLimitedClient
from .domain_utils import (
    normalize_url,
    extract_domain,
    matches_regional_suffix,
)

__all__ = [
    # Provider access
    "RateLimitedClient",
    "DataSource",
    "LiveSource",
    "SimulatedSource",
    # Budgets / retry
    "RequestLog",
    "ProviderBudget",
    "BackoffPolicy",
    # Cache
    "TieredCache",
    # Domain utils
    "normalize_url",
    "extract_domain",
    "matches_regional_suffix",
]
