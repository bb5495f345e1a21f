"""Health routes - cache backend connectivity and freshness."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response

from trendscope.api.deps import aggregator_dep
from trendscope.schemas.api import CachedKindOut, HealthResponse
from trendscope.services.aggregator import TrendAggregator

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """
    Health check endpoint for load balancer and Docker health checks.

    Checks cache backend connectivity and lists the cached kinds.
    Returns 503 if the cache backend is unreachable.
    """
    cache = aggregator.cache
    if cache.ping():
        cache_status = "ok"
    else:
        cache_status = "down"
        response.status_code = 503

    return HealthResponse(
        cache_backend=cache.backend,
        cache=cache_status,
        cached_kinds=[
            CachedKindOut(kind=k.kind, record_count=k.record_count, written_at=k.written_at)
            for k in cache.cached_kinds()
        ],
    )


@router.get("/ready")
def readiness(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """Readiness probe - 200 when the cache backend answers, 503 otherwise."""
    now = datetime.now(timezone.utc).isoformat()
    if aggregator.cache.ping():
        return {"status": "ready", "timestamp": now}
    response.status_code = 503
    return {"status": "not_ready", "timestamp": now}
