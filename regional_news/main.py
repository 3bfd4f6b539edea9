"""
Entry point: one aggregation pass over the configured partitions.

    python -m regional_news.main            # live providers (needs API keys)
    MOCK_MODE=true python -m regional_news.main
"""

import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_PARTITIONS
from .errors import ConfigurationError
from .pipeline import FetchOrchestrator, PipelineDeps

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run(partitions: Optional[List[str]] = None, target_count: int = 20, mock_mode: bool = False) -> dict:
    deps = PipelineDeps.create(mock_mode=mock_mode)
    try:
        orchestrator = FetchOrchestrator(deps)
        results = await orchestrator.aggregate_many(partitions or DEFAULT_PARTITIONS, target_count)
        report = orchestrator.summary(results)
        report["_providers"] = deps.client.health_report()
        report["_cache"] = deps.client.cache.stats()
        return report
    finally:
        await deps.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    partitions = [a.upper() for a in args] or None
    try:
        report = asyncio.run(run(partitions))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    print(json.dumps(report, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
