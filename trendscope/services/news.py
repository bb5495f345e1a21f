"""Breaking-news cascade focused on lowcap narratives.

Sources are tried strictly in order and each one only runs while fewer than
`target` items have been collected:

    A. crypto-related daily search trends
    B. newest listing-feed tokens
    C. search interest for lowcap narrative keywords (highest first)
    D. market trending coins outside the top 100 (or unranked)
    E. social posts for lowcap queries (only with a configured credential)

Earlier items are never removed, and the result never exceeds `target`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, List, Optional

from trendscope.core.logging import get_logger
from trendscope.providers.lowcap_listing import BinanceAlphaClient
from trendscope.providers.market_data import CoinGeckoClient
from trendscope.providers.search_interest import GoogleTrendsClient
from trendscope.providers.social_mention import TwitterClient
from trendscope.schemas.domain import NewsItem, TrendSource

log = get_logger("news")

LOWCAP_KEYWORDS = ("memecoin", "AI agent crypto", "DePIN", "RWA crypto", "Binance Alpha")
LOWCAP_QUERIES = ("lowcap gem", "binance alpha", "memecoin pump")
NEWEST_LISTINGS = 3
SOCIAL_STORIES = 2
LOWCAP_RANK_FLOOR = 100

Clock = Callable[[], datetime]


def _news_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class BreakingNewsCascade:
    def __init__(
        self,
        market: CoinGeckoClient,
        listing: BinanceAlphaClient,
        search: Optional[GoogleTrendsClient] = None,
        social: Optional[TwitterClient] = None,
        target: int = 5,
        clock: Optional[Clock] = None,
    ):
        self.market = market
        self.listing = listing
        self.search = search
        self.social = social
        self.target = max(0, target)
        self.clock = clock or datetime.now

    async def run(self) -> List[NewsItem]:
        items: List[NewsItem] = []
        stages = (
            ("daily-trends", self._daily_trends),
            ("new-listings", self._new_listings),
            ("narrative-interest", self._narrative_interest),
            ("lowcap-trending", self._lowcap_trending),
            ("social-posts", self._social_posts),
        )
        stamp = self.clock().strftime("%H:%M")
        for name, stage in stages:
            room = self.target - len(items)
            if room <= 0:
                break
            try:
                produced = await stage(room, stamp)
            except Exception as exc:
                log.warning(f"News stage {name} failed: {exc!r}")
                continue
            items.extend(produced[:room])
            log.debug(f"News stage {name} added {min(len(produced), room)} items")

        log.info(f"Breaking news: {len(items)} items")
        return items

    async def _daily_trends(self, room: int, stamp: str) -> List[NewsItem]:
        if self.search is None:
            return []
        trends = await self.search.get_crypto_daily_trends()
        return [
            NewsItem(
                id=_news_id("gd"),
                source_tag=TrendSource.SEARCH,
                headline=trend.title,
                impact_note=(
                    f"{trend.traffic} searches. Related: "
                    f"{', '.join(trend.related_queries[:3]) or 'N/A'}"
                ),
                recommendation_note="Hot on search right now; related lowcaps may move.",
                time_label=trend.time_ago or stamp,
            )
            for trend in trends[:room]
        ]

    async def _new_listings(self, room: int, stamp: str) -> List[NewsItem]:
        tokens = await self.listing.newest(NEWEST_LISTINGS)
        items = []
        for token in tokens[:room]:
            address = token.contract_address
            contract = f"{address[:8]}...{address[-6:]}" if address else "n/a"
            items.append(
                NewsItem(
                    id=_news_id("alpha"),
                    source_tag=TrendSource.SEARCH,
                    headline=f"{token.name} ({token.symbol}) newly added to Binance Alpha on {token.chain}",
                    impact_note=(
                        f"Chain: {token.chain} | Contract: {contract}. "
                        "Early-stage lowcap with a path to a main Binance listing."
                    ),
                    recommendation_note="Early Alpha token, high risk. Size positions you can afford to lose.",
                    time_label=stamp,
                )
            )
        return items

    async def _narrative_interest(self, room: int, stamp: str) -> List[NewsItem]:
        if self.search is None:
            return []
        scores = await self.search.get_interest(list(LOWCAP_KEYWORDS))
        significant = sorted(
            (s for s in scores if s.interest_score > 0),
            key=lambda s: s.interest_score,
            reverse=True,
        )
        items = []
        for score in significant[:room]:
            if score.is_rising:
                impact = f"Rising. The \"{score.keyword}\" narrative is gaining attention across its lowcaps."
                advice = "Sentiment: Bullish. Look for early names in this group before the crowd does."
            else:
                impact = f"Cooling. The \"{score.keyword}\" narrative is holding steady."
                advice = "Sentiment: Neutral. Wait for confirmation before entering."
            items.append(
                NewsItem(
                    id=_news_id("gi"),
                    source_tag=TrendSource.SEARCH,
                    headline=f"\"{score.keyword}\" search interest at {score.interest_score}/100 over 7 days",
                    impact_note=impact,
                    recommendation_note=advice,
                    time_label=stamp,
                )
            )
        return items

    async def _lowcap_trending(self, room: int, stamp: str) -> List[NewsItem]:
        coins = await self.market.get_trending()
        lowcaps = [c for c in coins if not c.market_cap_rank or c.market_cap_rank > LOWCAP_RANK_FLOOR]
        items = []
        for coin in lowcaps[:room]:
            direction = "up" if coin.change_24h >= 0 else "down"
            if coin.change_24h > 15:
                advice = "Strong pump. Check on-chain flows before chasing."
            elif coin.change_24h < -10:
                advice = "Heavy dump while still trending. Could be an opportunity or a rug."
            else:
                advice = "Accumulating. Watch volume to confirm the trend."
            items.append(
                NewsItem(
                    id=_news_id("cg"),
                    source_tag=TrendSource.SEARCH,
                    headline=(
                        f"Lowcap alert: {coin.name} ({coin.symbol}) is trending, "
                        f"{direction} {abs(coin.change_24h):.1f}% (24h)"
                    ),
                    impact_note=(
                        f"Market cap rank #{coin.market_cap_rank or 'unranked'}. "
                        "A lowcap on the trending list often means a pump or a new narrative."
                    ),
                    recommendation_note=advice,
                    time_label=stamp,
                )
            )
        return items

    async def _social_posts(self, room: int, stamp: str) -> List[NewsItem]:
        if self.social is None or not self.social.is_configured():
            return []
        mentions = await self.social.get_social_sentiment(list(LOWCAP_QUERIES))
        items = []
        for mention in mentions[:SOCIAL_STORIES]:
            if not mention.posts:
                continue
            post = mention.posts[0]
            items.append(
                NewsItem(
                    id=_news_id("t"),
                    source_tag=TrendSource.SOCIAL,
                    headline=post.text[:150],
                    impact_note=f"{post.like_count} likes, {post.reshare_count} reshares from @{post.author}",
                    recommendation_note=(
                        f"Social sentiment: {mention.sentiment.value}. "
                        f"{mention.mentions} lowcap mentions found."
                    ),
                    time_label=_post_time(post.created_at) or stamp,
                )
            )
        return items[:room]


def _post_time(created_at: Optional[str]) -> Optional[str]:
    if not created_at:
        return None
    try:
        return datetime.fromisoformat(created_at.replace("Z", "+00:00")).strftime("%H:%M")
    except ValueError:
        return None
