"""Refresh entrypoint - standalone cache refresher.

Runs the asset aggregations once and writes their batches to the durable
cache, so the API can serve them even when providers are down later.

Usage:
    python -m trendscope.refresh_entrypoint                  # Refresh all asset kinds
    python -m trendscope.refresh_entrypoint trending         # Refresh one kind
    python -m trendscope.refresh_entrypoint alpha-lowcap
"""

import asyncio
import sys
from typing import Dict, List

from trendscope.core.logging import get_logger
from trendscope.schemas.domain import Provenance
from trendscope.services.aggregator import ASSET_KINDS, AggregationResult, build_aggregator

logger = get_logger("refresh_entrypoint")


async def run_refresh(kinds: List[str]) -> Dict[str, AggregationResult]:
    aggregator = build_aggregator()
    try:
        return await aggregator.refresh(kinds)
    finally:
        await aggregator.aclose()


def main(argv: List[str] | None = None) -> Dict[str, AggregationResult]:
    """Main entry point for a one-off refresh."""
    args = sys.argv[1:] if argv is None else argv
    kinds = args or list(ASSET_KINDS)

    invalid = [k for k in kinds if k not in ASSET_KINDS]
    if invalid:
        logger.error(f"Invalid kind(s): {', '.join(invalid)}. Must be one of: {', '.join(ASSET_KINDS)}")
        sys.exit(1)

    logger.info(f"Cache refresh starting for: {', '.join(kinds)}")
    results = asyncio.run(run_refresh(kinds))

    # Only a live result refreshed the cache
    stale = [kind for kind, result in results.items() if result.provenance != Provenance.LIVE]
    if stale:
        logger.error(f"No live data for: {', '.join(stale)}")
        sys.exit(1)

    logger.info("Cache refresh completed")
    return results


if __name__ == "__main__":
    main()
