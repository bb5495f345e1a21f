"""Trend aggregation across the market, listing, search and social providers.

Each public operation follows the same shape:

1. Launch the provider calls for the kind concurrently. A call that raises is
   logged and counted as empty; the others still complete.
2. If the primary provider returned nothing, serve the cached batch for the
   kind (provenance ``cached``, or ``fallback`` when the cache is empty too).
   Secondary providers are not consulted in this branch.
3. Otherwise enrich each primary record by normalized symbol, derive signals,
   drop later records whose id was already seen, write the batch to the cache
   (best-effort) and return it as ``live``.

Public operations never raise.
"""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from trendscope.core.config import Settings, settings as default_settings
from trendscope.core.logging import get_logger
from trendscope.providers.lowcap_listing import BinanceAlphaClient
from trendscope.providers.market_data import CoinGeckoClient
from trendscope.providers.search_interest import GoogleTrendsClient
from trendscope.providers.social_mention import TwitterClient
from trendscope.schemas.domain import NormalizedAsset, Provenance, Sentiment, SocialSignal, TrendSource
from trendscope.schemas.providers import (
    AlphaToken,
    AlphaTokenMarket,
    DailyTrend,
    InterestScore,
    MarketCoin,
    SocialMention,
)
from trendscope.services.cache import BatchCache, build_cache
from trendscope.services.news import BreakingNewsCascade
from trendscope.services.signals import (
    classify_authenticity,
    classify_sentiment,
    market_cap_bucket,
    normalize_symbol,
    placeholder_sparkline,
    trend_score,
    whale_alert,
)

log = get_logger("aggregator")

KIND_TRENDING = "trending"
KIND_BINANCE = "binance-fomo"
KIND_ALPHA = "alpha-lowcap"
KIND_SOCIAL = "social-sentiment"
KIND_NEWS = "breaking-news"

ASSET_KINDS = (KIND_TRENDING, KIND_BINANCE, KIND_ALPHA)

DEFAULT_HASHTAGS = ("#Bitcoin", "#Ethereum", "#Solana", "#BNB", "#Memecoin")

TRENDING_WHALE_VOLUME = 1_000_000_000
BINANCE_WHALE_VOLUME = 2_000_000_000
ALPHA_WHALE_VOLUME = 500_000

ENRICH_TOP_N = 5
LISTED_RANK_CUTOFF = 100


@dataclass
class AggregationResult:
    kind: str
    provenance: Provenance
    items: List[Any] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)


async def _nothing() -> list:
    return []


def dedupe_by_id(assets: Iterable[NormalizedAsset]) -> List[NormalizedAsset]:
    """Keep the first record for each id, preserving order."""
    seen = set()
    unique: List[NormalizedAsset] = []
    for asset in assets:
        if asset.id in seen:
            continue
        seen.add(asset.id)
        unique.append(asset)
    return unique


def _signed_move(change: float) -> str:
    return f"{'up' if change > 0 else 'down'} {abs(change):.1f}% in 24h"


def _mentioned_in(text: str, coin: MarketCoin) -> bool:
    if not text:
        return False
    for needle in (coin.name, coin.symbol):
        needle = (needle or "").strip().lower()
        if needle and re.search(rf"\b{re.escape(needle)}\b", text):
            return True
    return False


class TrendAggregator:
    """Merges provider output into normalized batches with cache fallback.

    The search and social clients are optional; pass None when a provider is
    not available and the aggregator simply skips it.
    """

    def __init__(
        self,
        market: CoinGeckoClient,
        listing: BinanceAlphaClient,
        cache: BatchCache,
        search: Optional[GoogleTrendsClient] = None,
        social: Optional[TwitterClient] = None,
        rng: Optional[random.Random] = None,
        settings: Settings = default_settings,
        news: Optional[BreakingNewsCascade] = None,
    ):
        self.market = market
        self.listing = listing
        self.cache = cache
        self.search = search
        self.social = social
        self.rng = rng or random.Random()
        self.settings = settings
        if news is None:
            news = BreakingNewsCascade(
                market=market,
                listing=listing,
                search=search,
                social=social,
                target=settings.NEWS_TARGET_COUNT,
            )
        self.news = news

    @property
    def social_enabled(self) -> bool:
        return self.social is not None and self.social.is_configured()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------
    async def _settle(self, calls: Dict[str, Awaitable]) -> Dict[str, Any]:
        """Await every call jointly; a call that raised yields an empty list."""
        if not calls:
            return {}
        names = list(calls)
        outcomes = await asyncio.gather(*calls.values(), return_exceptions=True)
        settled: Dict[str, Any] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, Exception):
                log.warning(f"{name} raised {outcome!r}, treating as empty")
                settled[name] = []
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                settled[name] = outcome if outcome is not None else []
        return settled

    def _from_cache(self, kind: str) -> AggregationResult:
        records = self.cache.read(kind)
        assets: List[NormalizedAsset] = []
        skipped = 0
        for record in records:
            try:
                assets.append(NormalizedAsset.model_validate(record))
            except ValidationError:
                skipped += 1
        if skipped:
            log.warning(f"Skipped {skipped} unreadable cached records for '{kind}'")

        if assets:
            log.info(f"Serving {len(assets)} cached records for '{kind}'")
            return AggregationResult(kind, Provenance.CACHED, assets)
        log.warning(f"No cached batch for '{kind}', returning empty fallback")
        return AggregationResult(kind, Provenance.FALLBACK, [])

    def _store(self, kind: str, assets: List[NormalizedAsset]) -> AggregationResult:
        batch = dedupe_by_id(assets)
        if not self.cache.write(kind, [asset.model_dump(mode="json") for asset in batch]):
            log.warning(f"Cache write for '{kind}' failed, returning live batch anyway")
        return AggregationResult(kind, Provenance.LIVE, batch)

    def _sparkline(self, history: List[float], price: float) -> List[float]:
        return list(history) if history else placeholder_sparkline(price, self.rng)

    async def _guard(self, kind: str, operation: Awaitable[AggregationResult]) -> AggregationResult:
        try:
            return await operation
        except Exception:
            log.exception(f"Aggregation for '{kind}' failed, serving cache")
            try:
                return self._from_cache(kind)
            except Exception:
                log.exception(f"Cache fallback for '{kind}' failed")
                return AggregationResult(kind, Provenance.FALLBACK, [])

    # -------------------------------------------------------------------------
    # Trending
    # -------------------------------------------------------------------------
    async def trending(self) -> AggregationResult:
        return await self._guard(KIND_TRENDING, self._trending())

    async def _trending(self) -> AggregationResult:
        first = await self._settle(
            {
                "market.trending": self.market.get_trending(),
                "market.top": self.market.get_top_markets(),
                "search.daily": self.search.get_crypto_daily_trends() if self.search else _nothing(),
            }
        )
        coins: List[MarketCoin] = first["market.trending"]
        if not coins:
            log.warning("Market trending list empty, falling back to cache")
            return self._from_cache(KIND_TRENDING)

        symbols = [c.symbol for c in coins[:ENRICH_TOP_N] if c.symbol]
        second = await self._settle(
            {
                "search.interest": self.search.get_interest(symbols) if self.search else _nothing(),
                "social.mentions": (
                    self.social.get_social_sentiment([f"${s}" for s in symbols])
                    if self.social_enabled
                    else _nothing()
                ),
            }
        )
        interest: Dict[str, InterestScore] = {
            normalize_symbol(i.keyword): i for i in second["search.interest"]
        }
        mentions: Dict[str, SocialMention] = {
            normalize_symbol(m.hashtag): m for m in second["social.mentions"]
        }
        daily: List[DailyTrend] = first["search.daily"]
        daily_text = " ".join(
            " ".join([t.title, *t.related_queries]) for t in daily
        ).lower()

        assets = [
            self._trending_asset(idx, coin, interest.get(normalize_symbol(coin.symbol)),
                                 mentions.get(normalize_symbol(coin.symbol)), daily_text)
            for idx, coin in enumerate(coins)
        ]

        seen = {a.id for a in assets}
        filled = 0
        for coin in first["market.top"]:
            if len(assets) >= self.settings.TRENDING_BATCH_SIZE:
                break
            if coin.id in seen:
                continue
            seen.add(coin.id)
            assets.append(self._market_fill_asset(coin))
            filled += 1

        log.info(
            f"Trending: {len(coins)} trending, {len(interest)} interest, "
            f"{len(mentions)} social, {len(daily)} daily trends, {filled} market fill"
        )
        return self._store(KIND_TRENDING, assets)

    def _trending_asset(
        self,
        idx: int,
        coin: MarketCoin,
        interest: Optional[InterestScore],
        mention: Optional[SocialMention],
        daily_text: str,
    ) -> NormalizedAsset:
        search_score = interest.interest_score if interest else 0
        mention_count = mention.mentions if mention else 0

        sources = [TrendSource.MARKET]
        if search_score > 30 or _mentioned_in(daily_text, coin):
            sources.append(TrendSource.SEARCH)
        if mention_count > 0:
            sources.append(TrendSource.SOCIAL)

        lines = [f"{coin.name} ({coin.symbol}) is #{idx + 1} on the market trending list."]
        if search_score > 50:
            lines.append(f"Hot on search (interest {search_score}/100).")
        if mention_count > 0:
            lines.append(f"{mention_count} recent social mentions.")
        if abs(coin.change_24h) > 5:
            lines.append(f"Price {_signed_move(coin.change_24h)}.")

        return NormalizedAsset(
            id=coin.id,
            name=coin.name,
            symbol=coin.symbol,
            price=coin.price,
            change_window=round(coin.change_24h, 2),
            trend_sources=sources,
            trend_score=trend_score(coin.change_24h, coin.volume),
            sparkline=self._sparkline(coin.sparkline, coin.price),
            summary="\n".join(lines),
            exchange_label=self._listed_label(coin),
            sentiment=classify_sentiment(
                coin.change_24h,
                rising=interest.is_rising if interest else False,
                external=mention.sentiment if mention else None,
            ),
            authenticity=classify_authenticity(search_score, coin.change_24h),
            has_whale_alert=whale_alert(coin.volume, TRENDING_WHALE_VOLUME),
            market_cap_bucket=market_cap_bucket(coin.market_cap or coin.volume),
        )

    def _market_fill_asset(self, coin: MarketCoin) -> NormalizedAsset:
        rank = f"#{coin.market_cap_rank}" if coin.market_cap_rank else "unranked"
        return NormalizedAsset(
            id=coin.id,
            name=coin.name,
            symbol=coin.symbol,
            price=coin.price,
            change_window=round(coin.change_24h, 2),
            trend_sources=[TrendSource.MARKET],
            trend_score=trend_score(coin.change_24h, coin.volume),
            sparkline=self._sparkline(coin.sparkline, coin.price),
            summary=f"{coin.name} ({coin.symbol}) market cap rank {rank}, {_signed_move(coin.change_24h)}.",
            exchange_label=self._listed_label(coin),
            sentiment=classify_sentiment(coin.change_24h),
            authenticity=classify_authenticity(0, coin.change_24h),
            has_whale_alert=whale_alert(coin.volume, TRENDING_WHALE_VOLUME),
            market_cap_bucket=market_cap_bucket(coin.market_cap or coin.volume),
        )

    @staticmethod
    def _listed_label(coin: MarketCoin) -> str:
        if coin.market_cap_rank and coin.market_cap_rank <= LISTED_RANK_CUTOFF:
            return "Binance"
        return "DEX"

    # -------------------------------------------------------------------------
    # Binance focus
    # -------------------------------------------------------------------------
    async def binance_focus(self) -> AggregationResult:
        return await self._guard(KIND_BINANCE, self._binance_focus())

    async def _binance_focus(self) -> AggregationResult:
        got = await self._settle({"market.volume": self.market.get_top_by_volume()})
        coins: List[MarketCoin] = got["market.volume"]
        if not coins:
            log.warning("Top-by-volume list empty, falling back to cache")
            return self._from_cache(KIND_BINANCE)

        assets = []
        for idx, coin in enumerate(coins):
            rank = f"#{coin.market_cap_rank}" if coin.market_cap_rank else "N/A"
            assets.append(
                NormalizedAsset(
                    id=coin.id,
                    name=coin.name,
                    symbol=coin.symbol,
                    price=coin.price,
                    change_window=round(coin.change_24h, 2),
                    trend_sources=[TrendSource.MARKET],
                    trend_score=trend_score(coin.change_24h, coin.volume),
                    sparkline=self._sparkline(coin.sparkline, coin.price),
                    summary=(
                        f"{coin.name} ({coin.symbol}) is top {idx + 1} by 24h volume.\n"
                        f"Market cap rank {rank}.\n"
                        f"Price {_signed_move(coin.change_24h)}."
                    ),
                    exchange_label="Binance",
                    sentiment=classify_sentiment(coin.change_24h),
                    authenticity=classify_authenticity(0, coin.change_24h),
                    has_whale_alert=whale_alert(coin.volume, BINANCE_WHALE_VOLUME),
                    market_cap_bucket=market_cap_bucket(coin.market_cap or coin.volume),
                )
            )

        log.info(f"Binance focus: {len(assets)} coins")
        return self._store(KIND_BINANCE, assets)

    # -------------------------------------------------------------------------
    # Alpha lowcap
    # -------------------------------------------------------------------------
    async def alpha_lowcap(self) -> AggregationResult:
        return await self._guard(KIND_ALPHA, self._alpha_lowcap())

    async def _alpha_lowcap(self) -> AggregationResult:
        limit = self.settings.LISTING_ENRICH_LIMIT
        got = await self._settle({"listing.market": self.listing.get_tokens_with_market(limit)})
        tokens: List[AlphaTokenMarket] = got["listing.market"]

        if not tokens:
            bare = await self._settle({"listing.tokens": self.listing.get_tokens()})
            plain: List[AlphaToken] = bare["listing.tokens"]
            tokens = [AlphaTokenMarket(token=t) for t in plain[:limit]]
            if tokens:
                log.info(f"Alpha listing without market data, using {len(tokens)} bare tokens")

        if not tokens:
            log.warning("Alpha listing empty, falling back to cache")
            return self._from_cache(KIND_ALPHA)

        assets = [self._alpha_asset(idx, entry) for idx, entry in enumerate(tokens)]
        log.info(f"Alpha lowcap: {len(assets)} tokens, {sum(1 for t in tokens if t.price > 0)} priced")
        return self._store(KIND_ALPHA, assets)

    def _alpha_asset(self, idx: int, entry: AlphaTokenMarket) -> NormalizedAsset:
        token = entry.token
        address = token.contract_address
        contract = f"{address[:10]}...{address[-6:]}" if address else "n/a"
        if entry.price <= 0:
            price_line = "No price data yet"
        elif entry.price < 0.01:
            price_line = f"Price: ${entry.price:.8f}"
        else:
            price_line = f"Price: ${entry.price:.4f}"

        return NormalizedAsset(
            id=address or f"alpha-{idx}",
            name=token.name,
            symbol=token.symbol or token.name,
            price=entry.price,
            change_window=round(entry.change_24h, 2),
            trend_sources=[TrendSource.LISTING],
            trend_score=trend_score(entry.change_24h, entry.volume),
            sparkline=self._sparkline(entry.sparkline, entry.price),
            summary=(
                f"Binance Alpha token\n{token.name} ({token.symbol}) on {token.chain}\n"
                f"Contract: {contract}\n{price_line}"
            ),
            exchange_label=f"Alpha ({token.chain})",
            sentiment=classify_sentiment(entry.change_24h),
            authenticity=classify_authenticity(0, entry.change_24h),
            has_whale_alert=whale_alert(entry.volume, ALPHA_WHALE_VOLUME),
            market_cap_bucket=market_cap_bucket(entry.market_cap or entry.volume),
        )

    # -------------------------------------------------------------------------
    # Social sentiment
    # -------------------------------------------------------------------------
    async def social_sentiment(self, hashtags: Optional[List[str]] = None) -> AggregationResult:
        tags = list(hashtags or DEFAULT_HASHTAGS)
        try:
            return await self._social_sentiment(tags)
        except Exception:
            log.exception("Social sentiment aggregation failed, using defaults")
            return AggregationResult(KIND_SOCIAL, Provenance.FALLBACK, self._default_signals(tags))

    async def _social_sentiment(self, tags: List[str]) -> AggregationResult:
        if self.social_enabled:
            got = await self._settle({"social.mentions": self.social.get_social_sentiment(tags)})
            mentions: List[SocialMention] = got["social.mentions"]
            if mentions:
                signals = [
                    SocialSignal(hashtag=m.hashtag, mentions=m.mentions, sentiment=m.sentiment)
                    for m in mentions
                ]
                return AggregationResult(KIND_SOCIAL, Provenance.LIVE, self._dedupe_tags(signals))
            log.info("Social provider returned nothing, trying search interest")

        if self.search is not None:
            keywords = [t.lstrip("#$") for t in tags]
            got = await self._settle({"search.interest": self.search.get_interest(keywords)})
            scores: List[InterestScore] = got["search.interest"]
            if scores:
                signals = [
                    SocialSignal(
                        hashtag=s.keyword,
                        mentions=s.interest_score * 100,
                        sentiment=Sentiment.BULLISH if s.is_rising else Sentiment.NEUTRAL,
                    )
                    for s in scores
                ]
                return AggregationResult(KIND_SOCIAL, Provenance.LIVE, self._dedupe_tags(signals))

        log.info("No live social or search data, serving default hashtags")
        return AggregationResult(KIND_SOCIAL, Provenance.FALLBACK, self._default_signals(tags))

    @staticmethod
    def _default_signals(tags: List[str]) -> List[SocialSignal]:
        return TrendAggregator._dedupe_tags(
            [SocialSignal(hashtag=t, mentions=0, sentiment=Sentiment.NEUTRAL) for t in tags]
        )

    @staticmethod
    def _dedupe_tags(signals: List[SocialSignal]) -> List[SocialSignal]:
        seen = set()
        unique = []
        for signal in signals:
            key = signal.hashtag.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(signal)
        return unique

    # -------------------------------------------------------------------------
    # Breaking news
    # -------------------------------------------------------------------------
    async def breaking_news(self) -> AggregationResult:
        try:
            items = await self.news.run()
        except Exception:
            log.exception("Breaking news cascade failed")
            items = []
        provenance = Provenance.LIVE if items else Provenance.FALLBACK
        return AggregationResult(KIND_NEWS, provenance, items)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------
    async def refresh(self, kinds: Iterable[str] = ASSET_KINDS) -> Dict[str, AggregationResult]:
        """Re-run the asset kinds one after another (used by the scheduler and CLI)."""
        operations = {
            KIND_TRENDING: self.trending,
            KIND_BINANCE: self.binance_focus,
            KIND_ALPHA: self.alpha_lowcap,
        }
        results: Dict[str, AggregationResult] = {}
        for kind in kinds:
            operation = operations.get(kind)
            if operation is None:
                log.warning(f"Unknown refresh kind '{kind}', skipping")
                continue
            results[kind] = await operation()
            log.info(f"Refreshed {kind}: {results[kind].count} records ({results[kind].provenance.value})")
        return results

    async def aclose(self) -> None:
        for client in (self.market, self.listing, self.search, self.social):
            if client is not None:
                await client.aclose()


def build_aggregator(config: Settings = default_settings) -> TrendAggregator:
    """Wire the provider clients once, deciding which optional ones exist."""
    timeout = config.HTTP_TIMEOUT_SECONDS
    market = CoinGeckoClient(
        api_key=config.COINGECKO_API_KEY,
        base_url=config.coingecko_base_url,
        max_retries=config.MARKET_MAX_RETRIES,
        retry_backoff=config.MARKET_RETRY_BACKOFF,
        max_retry_delay=config.MARKET_MAX_RETRY_DELAY,
        timeout=timeout,
    )
    listing = BinanceAlphaClient(market=market, enrich_delay=config.LISTING_ENRICH_DELAY, timeout=timeout)

    search = None
    if config.SEARCH_INTEREST_ENABLED:
        search = GoogleTrendsClient(geo=config.SEARCH_GEO, timeout=timeout)
    social = None
    if config.social_configured:
        social = TwitterClient(
            bearer_token=config.TWITTER_BEARER_TOKEN,
            request_delay=config.SOCIAL_REQUEST_DELAY,
            timeout=timeout,
        )

    log.info(
        f"Providers: market=coingecko listing=binance_alpha "
        f"search={'on' if search else 'off'} social={'on' if social else 'off'}"
    )
    return TrendAggregator(
        market=market,
        listing=listing,
        cache=build_cache(config),
        search=search,
        social=social,
        settings=config,
    )


# Global aggregator, built once at startup
_aggregator: Optional[TrendAggregator] = None


def init_aggregator(config: Settings = default_settings) -> TrendAggregator:
    """Initialize the global aggregator. Called from the application lifespan."""
    global _aggregator
    _aggregator = build_aggregator(config)
    return _aggregator


def get_aggregator() -> Optional[TrendAggregator]:
    """Get the global aggregator instance."""
    return _aggregator


def set_aggregator(aggregator: Optional[TrendAggregator]) -> None:
    global _aggregator
    _aggregator = aggregator


async def shutdown_aggregator() -> None:
    """Close provider clients and drop the global instance."""
    global _aggregator
    if _aggregator:
        await _aggregator.aclose()
        _aggregator = None
