"""Regional news aggregator: rate-limited multi-provider fetch, scoring and retention."""

__version__ = "0.1.0"
