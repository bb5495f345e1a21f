"""Aggregator tests: fallback, enrichment, de-duplication and partial failure"""

import random

import pytest

from trendscope.core.config import Settings
from trendscope.schemas.domain import (
    Authenticity,
    NormalizedAsset,
    Provenance,
    Sentiment,
    SocialSignal,
    TrendSource,
)
from trendscope.schemas.providers import InterestScore
from trendscope.services.aggregator import (
    KIND_ALPHA,
    KIND_BINANCE,
    KIND_TRENDING,
    TrendAggregator,
    build_aggregator,
    dedupe_by_id,
)
from trendscope.tests.fakes import (
    FakeListing,
    FakeMarket,
    FakeSearch,
    FakeSocial,
    MemoryCache,
    make_coin,
    make_mention,
    make_token,
    make_trend,
)


def cached_record(asset_id: str) -> dict:
    return NormalizedAsset(
        id=asset_id,
        name=asset_id.title(),
        symbol=asset_id[:3].upper(),
        price=1.0,
        trend_sources=[TrendSource.MARKET],
        trend_score=42,
    ).model_dump(mode="json")


def build(market=None, listing=None, cache=None, search=None, social=None, **settings_overrides):
    config = Settings(**{"TRENDING_BATCH_SIZE": 15, "LISTING_ENRICH_LIMIT": 15, **settings_overrides})
    return TrendAggregator(
        market=market or FakeMarket(),
        listing=listing or FakeListing(),
        cache=cache if cache is not None else MemoryCache(),
        search=search,
        social=social,
        rng=random.Random(11),
        settings=config,
    )


class TestCacheFallback:
    """Empty primary falls back to the cached batch"""

    @pytest.mark.asyncio
    async def test_empty_primary_serves_cache_without_secondaries(self):
        seed = [cached_record("bitcoin"), cached_record("solana")]
        cache = MemoryCache({KIND_TRENDING: seed})
        search = FakeSearch(interest={"BTC": InterestScore("BTC", 80, True)})
        social = FakeSocial()
        aggregator = build(market=FakeMarket(trending=[]), cache=cache, search=search, social=social)

        result = await aggregator.trending()

        assert result.provenance == Provenance.CACHED
        assert result.items == [NormalizedAsset.model_validate(r) for r in seed]
        assert search.calls["get_interest"] == 0
        assert social.calls["get_social_sentiment"] == 0
        assert cache.writes[KIND_TRENDING] == 0

    @pytest.mark.asyncio
    async def test_empty_primary_and_cache_is_fallback(self):
        result = await build(market=FakeMarket(trending=[])).trending()
        assert result.provenance == Provenance.FALLBACK
        assert result.items == []

    @pytest.mark.asyncio
    async def test_primary_exception_counts_as_empty(self):
        cache = MemoryCache({KIND_BINANCE: [cached_record("tether")]})
        market = FakeMarket(fail={"get_top_by_volume"})

        result = await build(market=market, cache=cache).binance_focus()

        assert result.provenance == Provenance.CACHED
        assert [a.id for a in result.items] == ["tether"]

    @pytest.mark.asyncio
    async def test_unreadable_cached_records_skipped(self):
        cache = MemoryCache({KIND_TRENDING: [{"id": "broken"}, cached_record("bitcoin")]})
        result = await build(market=FakeMarket(trending=[]), cache=cache).trending()
        assert [a.id for a in result.items] == ["bitcoin"]


class TestTrending:
    """Trending merge"""

    @pytest.mark.asyncio
    async def test_first_occurrence_wins(self):
        a = make_coin("alpha-coin", "AAA", price=10.0, change_24h=2.0)
        b = make_coin("beta-coin", "BBB")
        a_dup = make_coin("alpha-coin", "AAA", price=99.0, change_24h=-30.0)
        c = make_coin("gamma-coin", "CCC")
        market = FakeMarket(trending=[a, b], top=[a_dup, c])

        result = await build(market=market).trending()

        assert [x.id for x in result.items] == ["alpha-coin", "beta-coin", "gamma-coin"]
        first = result.items[0]
        assert first.price == 10.0
        assert first.change_window == 2.0
        assert first.summary.startswith("Alpha-Coin (AAA) is #1")

    @pytest.mark.asyncio
    async def test_duplicate_inside_primary_dropped(self):
        a = make_coin("alpha-coin", "AAA", price=10.0)
        result = await build(market=FakeMarket(trending=[a, make_coin("alpha-coin", "AAA", price=5.0)])).trending()
        assert [(x.id, x.price) for x in result.items] == [("alpha-coin", 10.0)]

    @pytest.mark.asyncio
    async def test_enrichment_by_symbol(self):
        pepe = make_coin("pepe", "PEPE", change_24h=8.0, market_cap_rank=40, volume=2_000_000_000)
        bonk = make_coin("bonk", "BONK", change_24h=-12.0, market_cap_rank=150, market_cap=0, volume=30_000_000)
        search = FakeSearch(
            daily=[make_trend("Is bonk the next big thing")],
            interest={"PEPE": InterestScore("PEPE", 70, True)},
        )
        social = FakeSocial(mentions={"$PEPE": make_mention("$PEPE", 40, Sentiment.BULLISH)})

        result = await build(market=FakeMarket(trending=[pepe, bonk]), search=search, social=social).trending()
        by_id = {a.id: a for a in result.items}

        assert search.interest_queries == [["PEPE", "BONK"]]
        assert social.queries == [["$PEPE", "$BONK"]]

        p = by_id["pepe"]
        assert set(p.trend_sources) == {TrendSource.MARKET, TrendSource.SEARCH, TrendSource.SOCIAL}
        assert p.sentiment == Sentiment.BULLISH
        assert p.authenticity == Authenticity.VERIFIED
        assert p.has_whale_alert is True
        assert p.exchange_label == "Binance"
        assert "interest 70/100" in p.summary
        assert "40 recent social mentions" in p.summary

        b = by_id["bonk"]
        assert set(b.trend_sources) == {TrendSource.MARKET, TrendSource.SEARCH}
        assert b.sentiment == Sentiment.BEARISH
        assert b.authenticity == Authenticity.FUD
        assert b.exchange_label == "DEX"
        # cap unknown, bucket from volume
        assert b.market_cap_bucket == 3

    @pytest.mark.asyncio
    async def test_partial_failure_still_live(self):
        coin = make_coin("pepe", "PEPE")
        search = FakeSearch(fail={"get_interest", "get_crypto_daily_trends"})
        social = FakeSocial(mentions={"$PEPE": make_mention("$PEPE", 3)})
        market = FakeMarket(trending=[coin], fail={"get_top_markets"})

        result = await build(market=market, search=search, social=social).trending()

        assert result.provenance == Provenance.LIVE
        assert [a.id for a in result.items] == ["pepe"]
        assert TrendSource.SOCIAL in result.items[0].trend_sources
        assert TrendSource.SEARCH not in result.items[0].trend_sources

    @pytest.mark.asyncio
    async def test_unconfigured_social_not_called(self):
        social = FakeSocial(configured=False)
        await build(market=FakeMarket(trending=[make_coin("pepe")]), social=social).trending()
        assert social.calls["get_social_sentiment"] == 0

    @pytest.mark.asyncio
    async def test_market_fill_respects_batch_size(self):
        trending = [make_coin("t1"), make_coin("t2")]
        top = [make_coin(f"m{i}") for i in range(5)]

        result = await build(market=FakeMarket(trending=trending, top=top), TRENDING_BATCH_SIZE=3).trending()

        assert [a.id for a in result.items] == ["t1", "t2", "m0"]
        assert result.items[2].trend_sources == [TrendSource.MARKET]

    @pytest.mark.asyncio
    async def test_placeholder_sparkline_when_missing(self):
        coin = make_coin("pepe", price=2.0, sparkline=[])
        result = await build(market=FakeMarket(trending=[coin])).trending()

        spark = result.items[0].sparkline
        assert len(spark) == 9
        assert all(1.8 <= p <= 2.2 for p in spark)

    @pytest.mark.asyncio
    async def test_live_batch_written_to_cache(self):
        cache = MemoryCache()
        result = await build(market=FakeMarket(trending=[make_coin("pepe")]), cache=cache).trending()

        assert cache.writes[KIND_TRENDING] == 1
        assert [NormalizedAsset.model_validate(r) for r in cache.store[KIND_TRENDING]] == result.items

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_batch(self):
        cache = MemoryCache(write_ok=False)
        result = await build(market=FakeMarket(trending=[make_coin("pepe")]), cache=cache).trending()
        assert result.provenance == Provenance.LIVE
        assert len(result.items) == 1


class TestBinanceFocus:
    @pytest.mark.asyncio
    async def test_volume_board(self):
        big = make_coin("tether", "USDT", volume=60_000_000_000, market_cap=110_000_000_000, change_24h=0.01)
        small = make_coin("solana", "SOL", volume=1_500_000_000, change_24h=11.0)

        result = await build(market=FakeMarket(volume=[big, small])).binance_focus()

        assert result.provenance == Provenance.LIVE
        assert [a.exchange_label for a in result.items] == ["Binance", "Binance"]
        assert [a.has_whale_alert for a in result.items] == [True, False]
        assert result.items[0].market_cap_bucket == 10
        assert result.items[1].sentiment == Sentiment.BULLISH
        assert all(a.trend_sources == [TrendSource.MARKET] for a in result.items)


class TestAlphaLowcap:
    @pytest.mark.asyncio
    async def test_enriched_tokens(self, alpha_entry):
        entries = [
            alpha_entry("ABC", price=0.004, change_24h=20.0, volume=600_000, market_cap=20_000_000),
            alpha_entry("DEF"),
        ]
        entries[1].token.contract_address = ""
        listing = FakeListing(enriched=entries)

        result = await build(listing=listing).alpha_lowcap()

        assert result.provenance == Provenance.LIVE
        first, second = result.items
        assert first.id == entries[0].token.contract_address
        assert second.id == "alpha-1"
        assert first.exchange_label == "Alpha (BSC)"
        assert first.trend_sources == [TrendSource.LISTING]
        assert first.has_whale_alert is True
        assert first.market_cap_bucket == 3
        assert "$0.00400000" in first.summary
        assert "No price data yet" in second.summary
        assert listing.calls["get_tokens"] == 0

    @pytest.mark.asyncio
    async def test_bare_tokens_when_enrichment_empty(self):
        tokens = [make_token(f"T{i}") for i in range(20)]
        listing = FakeListing(tokens=tokens, enriched=[])

        result = await build(listing=listing).alpha_lowcap()

        assert result.provenance == Provenance.LIVE
        assert len(result.items) == 15
        assert all(a.price == 0 and len(a.sparkline) == 9 for a in result.items)

    @pytest.mark.asyncio
    async def test_listing_down_serves_cache(self):
        cache = MemoryCache({KIND_ALPHA: [cached_record("0xfeed")]})
        result = await build(listing=FakeListing(), cache=cache).alpha_lowcap()
        assert result.provenance == Provenance.CACHED
        assert [a.id for a in result.items] == ["0xfeed"]


class TestSocialSentiment:
    """Social -> search -> defaults"""

    @pytest.mark.asyncio
    async def test_social_first(self):
        social = FakeSocial(mentions={
            "#Bitcoin": make_mention("#Bitcoin", 120, Sentiment.BULLISH),
            "#Solana": make_mention("#Solana", 30, Sentiment.BEARISH),
        })
        search = FakeSearch()

        result = await build(social=social, search=search).social_sentiment()

        assert result.provenance == Provenance.LIVE
        assert result.items == [
            SocialSignal(hashtag="#Bitcoin", mentions=120, sentiment=Sentiment.BULLISH),
            SocialSignal(hashtag="#Solana", mentions=30, sentiment=Sentiment.BEARISH),
        ]
        assert search.calls["get_interest"] == 0

    @pytest.mark.asyncio
    async def test_search_interest_when_social_empty(self):
        search = FakeSearch(interest={
            "Bitcoin": InterestScore("Bitcoin", 55, True),
            "Memecoin": InterestScore("Memecoin", 12, False),
        })

        result = await build(social=FakeSocial(), search=search).social_sentiment()

        assert result.provenance == Provenance.LIVE
        assert [(s.hashtag, s.mentions, s.sentiment) for s in result.items] == [
            ("#Bitcoin", 5500, Sentiment.BULLISH),
            ("#Memecoin", 1200, Sentiment.NEUTRAL),
        ]

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_available(self):
        result = await build().social_sentiment()

        assert result.provenance == Provenance.FALLBACK
        assert [s.hashtag for s in result.items] == ["#Bitcoin", "#Ethereum", "#Solana", "#BNB", "#Memecoin"]
        assert all(s.mentions == 0 and s.sentiment == Sentiment.NEUTRAL for s in result.items)

    @pytest.mark.asyncio
    async def test_hashtags_deduplicated(self):
        result = await build().social_sentiment(["#Bitcoin", "Bitcoin", "#bitcoin", "#BNB"])
        assert [s.hashtag for s in result.items] == ["#Bitcoin", "#BNB"]


class TestMisc:
    def test_dedupe_by_id_keeps_order(self):
        records = [NormalizedAsset.model_validate(cached_record(i)) for i in ("a", "b", "a", "c", "b")]
        assert [r.id for r in dedupe_by_id(records)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_breaking_news_provenance(self):
        result = await build().breaking_news()
        assert result.provenance == Provenance.FALLBACK
        assert result.items == []

    @pytest.mark.asyncio
    async def test_refresh_runs_asset_kinds(self):
        market = FakeMarket(trending=[make_coin("pepe")], volume=[make_coin("tether")])
        cache = MemoryCache()

        results = await build(market=market, cache=cache).refresh()

        assert results[KIND_TRENDING].provenance == Provenance.LIVE
        assert results[KIND_BINANCE].provenance == Provenance.LIVE
        assert results[KIND_ALPHA].provenance == Provenance.FALLBACK
        assert set(cache.store) == {KIND_TRENDING, KIND_BINANCE}

    @pytest.mark.asyncio
    async def test_build_aggregator_uses_config(self, tmp_path):
        config = Settings(
            CACHE_BACKEND="file",
            CACHE_DIR=str(tmp_path),
            SEARCH_INTEREST_ENABLED=False,
            TWITTER_BEARER_TOKEN="  ",
            MARKET_MAX_RETRIES=2,
            LISTING_ENRICH_DELAY=0.0,
            HTTP_TIMEOUT_SECONDS=3.0,
        )

        aggregator = build_aggregator(config)
        try:
            assert aggregator.search is None
            assert aggregator.social is None
            assert aggregator.cache.backend == "file"
            assert aggregator.market.max_retries == 2
            assert aggregator.market.timeout == 3.0
            assert aggregator.listing.enrich_delay == 0.0
        finally:
            await aggregator.aclose()
