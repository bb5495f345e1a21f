"""Google Trends search-interest client.

Interest over time goes through pytrends (which scrapes the same endpoints the
web UI uses); the daily trending-searches feed is read directly as JSON.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Iterable, List, Optional, Sequence

import httpx
from pytrends.request import TrendReq

from trendscope.core.config import settings
from trendscope.schemas.providers import DailyTrend, InterestScore
from .base import BaseProvider, MalformedPayload, ProviderError, ProviderUnavailable, dig

DAILY_TRENDS_URL = "https://trends.google.com/trends/api/dailytrends"
MAX_KEYWORDS_PER_REQUEST = 5
MAX_DAILY_TRENDS = 20

CRYPTO_KEYWORDS = (
    "crypto", "bitcoin", "btc", "ethereum", "eth", "solana", "sol",
    "binance", "coinbase", "defi", "nft", "blockchain", "token",
    "altcoin", "memecoin", "airdrop", "whale", "dex", "cex",
    "staking", "mining", "web3", "metaverse", "ai agent",
)

TrendFactory = Callable[[], Any]


def default_trend_factory() -> TrendReq:
    return TrendReq(hl="en-US", tz=0, timeout=(5, settings.HTTP_TIMEOUT_SECONDS))


def score_series(keyword: str, values: Sequence[float]) -> InterestScore:
    """Mean interest plus direction: rising when the second half averages strictly higher."""
    points = [float(v) for v in values]
    if not points:
        return InterestScore(keyword=keyword, interest_score=0, is_rising=False)

    mid = len(points) // 2
    first, second = points[:mid], points[mid:]
    first_avg = sum(first) / len(first) if first else 0.0
    second_avg = sum(second) / len(second) if second else 0.0
    score = int(round(sum(points) / len(points)))
    return InterestScore(
        keyword=keyword,
        interest_score=max(0, min(100, score)),
        is_rising=second_avg > first_avg,
    )


def chunked(items: Sequence[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def is_crypto_trend(trend: DailyTrend, keywords: Iterable[str] = CRYPTO_KEYWORDS) -> bool:
    text = " ".join([trend.title, *trend.related_queries]).lower()
    return any(kw in text for kw in keywords)


class GoogleTrendsClient(BaseProvider):
    """Keyword interest scores and the crypto slice of daily trending searches."""

    name = "google_trends"

    def __init__(
        self,
        trend_factory: Optional[TrendFactory] = None,
        client: Optional[httpx.AsyncClient] = None,
        geo: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.trend_factory = trend_factory or default_trend_factory
        self.geo = geo or settings.SEARCH_GEO

    async def get_interest(self, keywords: Sequence[str], timeframe: str = "now 7-d") -> List[InterestScore]:
        """Interest score per keyword, batching in groups of five (the provider limit)."""
        wanted = [k for k in dict.fromkeys(keywords) if k]
        results: List[InterestScore] = []
        for batch in chunked(wanted, MAX_KEYWORDS_PER_REQUEST):
            try:
                results.extend(await asyncio.to_thread(self._interest_batch, batch, timeframe))
            except ProviderError as exc:
                self.report(exc, f"Interest query {batch}")
                return []
            except Exception as exc:  # noqa: BLE001
                # pytrends surfaces HTTP and parsing problems as assorted exception types
                self.log.warning(f"Interest query {batch} failed: {exc!r}")
                return []
        return results

    def _interest_batch(self, batch: List[str], timeframe: str) -> List[InterestScore]:
        trends = self.trend_factory()
        trends.build_payload(batch, timeframe=timeframe, geo="")
        frame = trends.interest_over_time()

        if frame is None or getattr(frame, "empty", True):
            return [InterestScore(keyword=kw, interest_score=0, is_rising=False) for kw in batch]

        columns = set(frame.columns)
        missing = [kw for kw in batch if kw not in columns]
        if len(missing) == len(batch):
            raise MalformedPayload(f"{self.name}: no requested keyword in interest frame")

        return [
            score_series(kw, frame[kw].fillna(0).tolist() if kw in columns else [])
            for kw in batch
        ]

    async def get_daily_trends(self, geo: Optional[str] = None) -> List[DailyTrend]:
        """Top daily searches for a region."""
        try:
            payload = await self._fetch_daily(geo or self.geo)
            days = dig(payload, "default", "trendingSearchesDays") or []
            if not days:
                return []
            if not isinstance(days, list):
                raise MalformedPayload(f"{self.name}: trendingSearchesDays is not a list")
            searches = dig(days[0], "trendingSearches")
            if not isinstance(searches, list):
                raise MalformedPayload(f"{self.name}: trendingSearches missing")
        except ProviderError as exc:
            self.report(exc, "Daily trends fetch")
            return []
        except (AttributeError, IndexError, TypeError) as exc:
            self.report(MalformedPayload(f"{self.name}: {exc!r}"), "Daily trends fetch")
            return []

        trends: List[DailyTrend] = []
        skipped = 0
        for search in searches[:MAX_DAILY_TRENDS]:
            trend = _daily_trend(search)
            if trend is None:
                skipped += 1
                continue
            trends.append(trend)
        if skipped:
            self.log.warning(f"Skipped {skipped} malformed daily trend entries")
        return trends

    async def _fetch_daily(self, geo: str) -> dict:
        try:
            resp = await self.client.get(
                DAILY_TRENDS_URL,
                params={"hl": "en-US", "tz": "0", "geo": geo, "ns": "15"},
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"{self.name}: request failed: {exc!r}") from exc
        if resp.status_code >= 400:
            raise ProviderUnavailable(f"{self.name}: HTTP {resp.status_code}")

        # The endpoint prefixes its JSON with an anti-hijacking line: )]}',
        body = resp.text
        start = body.find("{")
        if start < 0:
            raise MalformedPayload(f"{self.name}: daily trends body has no JSON")
        try:
            payload = json.loads(body[start:])
        except ValueError as exc:
            raise MalformedPayload(f"{self.name}: daily trends JSON invalid") from exc
        if not isinstance(payload, dict):
            raise MalformedPayload(f"{self.name}: daily trends payload is not an object")
        return payload

    async def get_crypto_daily_trends(self) -> List[DailyTrend]:
        """Daily trends filtered to the crypto keyword allow-list."""
        trends = await self.get_daily_trends()
        return [t for t in trends if is_crypto_trend(t)]


def _daily_trend(search: Any) -> Optional[DailyTrend]:
    """Map one trendingSearches entry, or None when its shape is unusable."""
    if not isinstance(search, dict):
        return None
    articles = search.get("articles")
    first_article = articles[0] if isinstance(articles, list) and articles else None
    related = search.get("relatedQueries")
    return DailyTrend(
        title=str(dig(search, "title", "query") or "Unknown"),
        traffic=str(search.get("formattedTraffic") or "0"),
        related_queries=[
            str(q.get("query") or "") for q in (related if isinstance(related, list) else []) if isinstance(q, dict)
        ],
        source=str(dig(first_article, "source") or "Google"),
        time_ago=str(dig(first_article, "timeAgo") or ""),
    )
