"""Status routes - provider capabilities."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from trendscope.api.deps import aggregator_dep
from trendscope.schemas.api import ProviderStatus, StatusResponse
from trendscope.services.aggregator import TrendAggregator

router = APIRouter(prefix="/status", tags=["status"])


@router.get("", response_model=StatusResponse)
async def status(aggregator: TrendAggregator = Depends(aggregator_dep)):
    """
    Which providers are usable right now.

    The market provider is pinged; the others report how they were
    configured at startup.
    """
    market_ok = await aggregator.market.ping()
    services = {
        "market": ProviderStatus(
            status="ok" if market_ok else "down",
            note=None if market_ok else "ping failed, asset boards will serve cached data",
        ),
        "listing": ProviderStatus(status="enabled"),
        "search": ProviderStatus(
            status="enabled" if aggregator.search is not None else "disabled",
            note=None if aggregator.search is not None else "set SEARCH_INTEREST_ENABLED=true",
        ),
        "social": ProviderStatus(
            status="configured" if aggregator.social_enabled else "not_configured",
            note=None if aggregator.social_enabled else "set TWITTER_BEARER_TOKEN to enable",
        ),
    }
    return StatusResponse(timestamp=datetime.now(timezone.utc), services=services)
