"""Intermediate shapes returned by the provider clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from trendscope.schemas.domain import Sentiment


@dataclass
class MarketCoin:
    """A CoinGecko coin with the market fields the aggregator needs."""

    id: str
    name: str
    symbol: str
    price: float = 0.0
    change_24h: float = 0.0
    market_cap: float = 0.0
    volume: float = 0.0
    market_cap_rank: Optional[int] = None
    sparkline: List[float] = field(default_factory=list)
    image: Optional[str] = None


@dataclass
class AlphaToken:
    alpha_id: str
    symbol: str
    name: str
    chain_id: str
    contract_address: str
    chain: str


@dataclass
class AlphaTokenMarket:
    """A listing token plus whatever market data could be matched (zeros if none)."""

    token: AlphaToken
    price: float = 0.0
    change_24h: float = 0.0
    market_cap: float = 0.0
    volume: float = 0.0
    sparkline: List[float] = field(default_factory=list)
    image: Optional[str] = None


@dataclass
class InterestScore:
    keyword: str
    interest_score: int
    is_rising: bool


@dataclass
class DailyTrend:
    title: str
    traffic: str = "0"
    related_queries: List[str] = field(default_factory=list)
    source: str = "Google"
    time_ago: str = ""


@dataclass
class SocialPost:
    id: str
    text: str
    author: str = "unknown"
    created_at: Optional[str] = None
    like_count: int = 0
    reshare_count: int = 0


@dataclass
class SocialMention:
    hashtag: str
    mentions: int
    sentiment: Sentiment
    posts: List[SocialPost] = field(default_factory=list)
