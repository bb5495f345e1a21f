"""Signal routes - social sentiment and breaking news."""

import time
import uuid

from fastapi import APIRouter, Depends, Response

from trendscope.api.deps import aggregator_dep
from trendscope.schemas.api import NewsResponse, SocialResponse
from trendscope.services.aggregator import TrendAggregator

router = APIRouter(tags=["signals"])


@router.get("/social-sentiment", response_model=SocialResponse)
async def social_sentiment(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """
    Hashtag mention counts and sentiment.

    Falls back from social mentions to search interest, then to neutral
    defaults (provenance `fallback`).
    """
    started = time.perf_counter()
    result = await aggregator.social_sentiment()
    response.headers["X-Data-Source"] = f"{result.provenance.value}-{result.kind}"
    return SocialResponse(
        request_id=str(uuid.uuid4()),
        api_latency_ms=int((time.perf_counter() - started) * 1000),
        provenance=result.provenance,
        data=result.items,
    )


@router.get("/breaking-news", response_model=NewsResponse)
async def breaking_news(response: Response, aggregator: TrendAggregator = Depends(aggregator_dep)):
    """Up to five lowcap-focused news cards, regenerated on every call."""
    started = time.perf_counter()
    result = await aggregator.breaking_news()
    response.headers["X-Data-Source"] = f"{result.provenance.value}-{result.kind}"
    return NewsResponse(
        request_id=str(uuid.uuid4()),
        api_latency_ms=int((time.perf_counter() - started) * 1000),
        provenance=result.provenance,
        data=result.items,
    )
