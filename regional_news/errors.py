"""
Error taxonomy for the aggregation pipeline.

Only ConfigurationError is allowed to escape to callers, and only at
construction time. Everything else is caught at a component boundary and
turned into a logged diagnostic or a FetchResult.
"""

from typing import Optional


class AggregationError(Exception):
    """Base class for all pipeline errors."""


class TransientProviderError(AggregationError):
    """Timeout, 5xx or throttling from a provider. Retried with backoff.

    Client errors other than 429 (bad key, bad params) are raised with
    retryable=False so the client gives up after the first attempt.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(f"{provider}: {message}")


class RateLimitedError(TransientProviderError):
    """Provider budget exhausted or 429 persisted past the retry ceiling."""


class MalformedPayloadError(AggregationError):
    """Raw item is missing required fields or fails the quality filter."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


class PersistenceError(AggregationError):
    """Persistence sink unavailable or rejected a write."""


class ConfigurationError(AggregationError):
    """Missing credentials or budget configuration. Fatal at startup."""
