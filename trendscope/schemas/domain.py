"""Unified records produced by the aggregator and consumed by the dashboard."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Sentiment(str, Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"


class Authenticity(str, Enum):
    VERIFIED = "Verified"
    RUMOR = "Rumor"
    FUD = "FUD"


class TrendSource(str, Enum):
    SEARCH = "search-provider"
    SOCIAL = "social-provider"
    LISTING = "listing-provider"
    MARKET = "market-provider"


class Provenance(str, Enum):
    """Freshness tag attached to every consumer-facing response."""

    LIVE = "live"
    CACHED = "cached"
    FALLBACK = "fallback"


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NormalizedAsset(_Record):
    """One asset row of a batch. `change_window` is always the 24h change."""

    id: str = Field(min_length=1)
    name: str
    symbol: str
    price: float = Field(default=0.0, ge=0)
    change_window: float = 0.0
    trend_sources: List[TrendSource] = Field(min_length=1)
    trend_score: int = Field(ge=1, le=100)
    sparkline: List[float] = Field(default_factory=list)
    summary: Optional[str] = None
    exchange_label: Optional[str] = None
    sentiment: Sentiment = Sentiment.NEUTRAL
    authenticity: Authenticity = Authenticity.RUMOR
    has_whale_alert: bool = False
    market_cap_bucket: int = Field(default=1, ge=1, le=10)

    @field_validator("trend_sources")
    @classmethod
    def _collapse_sources(cls, value: List[TrendSource]) -> List[TrendSource]:
        return list(dict.fromkeys(value))

    @field_validator("sparkline", mode="before")
    @classmethod
    def _sparkline_never_null(cls, value):
        return [] if value is None else value


class SocialSignal(_Record):
    hashtag: str = Field(min_length=2)
    mentions: int = Field(default=0, ge=0)
    sentiment: Sentiment = Sentiment.NEUTRAL

    @field_validator("hashtag", mode="before")
    @classmethod
    def _prefix_hash(cls, value: str) -> str:
        text = str(value or "").strip().lstrip("$")
        return text if text.startswith("#") else f"#{text}"


class NewsItem(_Record):
    """A breaking-news card. Ids are unique per call only."""

    id: str
    source_tag: TrendSource
    headline: str
    impact_note: str
    recommendation_note: str
    time_label: str

    @field_validator("source_tag")
    @classmethod
    def _news_sources_only(cls, value: TrendSource) -> TrendSource:
        if value not in (TrendSource.SEARCH, TrendSource.SOCIAL):
            raise ValueError("news items are tagged search-provider or social-provider")
        return value
