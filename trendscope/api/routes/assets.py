"""Asset routes - trending, Binance-focused and Alpha lowcap boards."""

import time
import uuid

from fastapi import APIRouter, Depends, Response

from trendscope.api.deps import aggregator_dep
from trendscope.schemas.api import AssetResponse
from trendscope.services.aggregator import AggregationResult, TrendAggregator

router = APIRouter(tags=["assets"])


def _respond(result: AggregationResult, response: Response, started: float) -> AssetResponse:
    response.headers["X-Data-Source"] = f"{result.provenance.value}-{result.kind}"
    return AssetResponse(
        request_id=str(uuid.uuid4()),
        api_latency_ms=int((time.perf_counter() - started) * 1000),
        kind=result.kind,
        provenance=result.provenance,
        count=result.count,
        data=result.items,
    )


@router.get("/trending", response_model=AssetResponse)
async def trending(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """
    Market trending coins merged with search and social signals.

    Topped up from the ranked market list. Serves the last cached batch
    when the trending list is unavailable.
    """
    started = time.perf_counter()
    return _respond(await aggregator.trending(), response, started)


@router.get("/binance-fomo", response_model=AssetResponse)
async def binance_fomo(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """Highest 24h volume coins."""
    started = time.perf_counter()
    return _respond(await aggregator.binance_focus(), response, started)


@router.get("/alpha-binance", response_model=AssetResponse)
async def alpha_binance(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """
    Binance Alpha lowcap tokens.

    Market enrichment is throttled per token, so a live call takes tens of
    seconds. Tokens without a market match are still listed.
    """
    started = time.perf_counter()
    return _respond(await aggregator.alpha_lowcap(), response, started)
