"""API dependencies"""

from fastapi import HTTPException

from trendscope.services.aggregator import TrendAggregator, get_aggregator


def aggregator_dep() -> TrendAggregator:
    """The aggregator built at startup; 503 until the lifespan has run."""
    aggregator = get_aggregator()
    if aggregator is None:
        raise HTTPException(status_code=503, detail="Aggregator not initialized")
    return aggregator
