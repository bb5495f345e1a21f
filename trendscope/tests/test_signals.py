"""Signal derivation tests"""

import math
import random

import pytest

from trendscope.schemas.domain import Authenticity, Sentiment
from trendscope.services.signals import (
    classify_authenticity,
    classify_sentiment,
    market_cap_bucket,
    normalize_symbol,
    placeholder_sparkline,
    sample_sparkline,
    trend_score,
    whale_alert,
)


class TestSentiment:
    """Score-ladder sentiment classifier"""

    @pytest.mark.parametrize(
        "change,rising,external,expected",
        [
            (12, False, None, Sentiment.BULLISH),
            (5, False, None, Sentiment.NEUTRAL),
            (5, True, None, Sentiment.BULLISH),
            (5, False, Sentiment.BULLISH, Sentiment.BULLISH),
            (-15, False, None, Sentiment.BEARISH),
            (-5, False, Sentiment.BEARISH, Sentiment.BEARISH),
            (-5, True, None, Sentiment.NEUTRAL),
            (0, True, Sentiment.BULLISH, Sentiment.BULLISH),
            (12, False, Sentiment.BEARISH, Sentiment.NEUTRAL),
            (3, False, None, Sentiment.NEUTRAL),
            (10, False, None, Sentiment.NEUTRAL),
        ],
    )
    def test_ladder(self, change, rising, external, expected):
        assert classify_sentiment(change, rising, external) == expected

    def test_unknown_inputs_are_neutral(self):
        assert classify_sentiment(None) == Sentiment.NEUTRAL
        assert classify_sentiment(float("nan")) == Sentiment.NEUTRAL

    def test_repeatable(self):
        results = {classify_sentiment(7.5, True, Sentiment.NEUTRAL) for _ in range(20)}
        assert len(results) == 1


class TestTrendScore:
    """Trend score bounds and monotonicity"""

    def test_formula(self):
        # min(10*3, 50) + min(log10(1e6 + 1) * 5, 50) = 30 + 30
        assert trend_score(10, 1_000_000) == 60

    def test_components_clamped(self):
        assert trend_score(500, 1e30) == 100
        assert trend_score(-500, 0) == 50

    def test_floor_is_one(self):
        assert trend_score(0, 0) == 1
        assert trend_score(None, None) == 1
        assert trend_score(float("nan"), -5) == 1

    def test_bounds_and_monotonic(self):
        changes = [0, 0.5, 1, 3, 7, 15, 40, 100]
        volumes = [0, 1, 10, 1_000, 1e6, 1e9, 1e12]
        for volume in volumes:
            scores = [trend_score(c, volume) for c in changes]
            assert all(1 <= s <= 100 for s in scores)
            assert scores == sorted(scores)
            assert scores == [trend_score(-c, volume) for c in changes]
        for change in changes:
            scores = [trend_score(change, v) for v in volumes]
            assert scores == sorted(scores)


class TestAuthenticity:
    """Verified / FUD / Rumor"""

    def test_verified_needs_both(self):
        assert classify_authenticity(61, 6) == Authenticity.VERIFIED
        assert classify_authenticity(61, -6) == Authenticity.VERIFIED
        assert classify_authenticity(60, 20) == Authenticity.RUMOR
        assert classify_authenticity(90, 5) == Authenticity.RUMOR

    def test_fud(self):
        assert classify_authenticity(0, -10.5) == Authenticity.FUD
        assert classify_authenticity(0, -10) == Authenticity.RUMOR

    def test_unknown_is_rumor(self):
        assert classify_authenticity(None, None) == Authenticity.RUMOR

    def test_heavy_drop_without_volume(self):
        assert classify_sentiment(-15) == Sentiment.BEARISH
        assert classify_authenticity(0, -15) == Authenticity.FUD
        assert market_cap_bucket(0) == 1


class TestMarketCapBucket:
    """Cap bucket ladder"""

    @pytest.mark.parametrize(
        "value,bucket",
        [
            (0, 1),
            (1_000_000, 1),
            (1_000_001, 2),
            (10_000_001, 3),
            (50_000_001, 4),
            (100_000_001, 5),
            (500_000_001, 6),
            (1_000_000_001, 7),
            (5_000_000_001, 8),
            (10_000_000_001, 9),
            (50_000_000_001, 10),
            (1e15, 10),
        ],
    )
    def test_thresholds(self, value, bucket):
        assert market_cap_bucket(value) == bucket

    def test_non_decreasing(self):
        values = sorted([0, 5e5, 2e6, 3e7, 7e7, 2e8, 6e8, 2e9, 6e9, 2e10, 6e10] + [10 ** e for e in range(13)])
        buckets = [market_cap_bucket(v) for v in values]
        assert buckets == sorted(buckets)

    def test_bad_inputs(self):
        assert market_cap_bucket(None) == 1
        assert market_cap_bucket(-5) == 1
        assert market_cap_bucket(math.inf) == 1


class TestHelpers:
    def test_whale_alert_is_strict(self):
        assert whale_alert(1_000_000_001, 1_000_000_000)
        assert not whale_alert(1_000_000_000, 1_000_000_000)
        assert not whale_alert(None, 0)

    @pytest.mark.parametrize(
        "raw,key",
        [
            ("btc", "BTC"),
            ("$pepe", "PEPE"),
            ("#Sol", "SOL"),
            ("BTCUSDT", "BTC"),
            ("eth/usdt", "ETH"),
            ("SOL-PERP", "SOL"),
            ("bnbfdusd", "BNB"),
            ("USDT", "USDT"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_normalize_symbol(self, raw, key):
        assert normalize_symbol(raw) == key


class TestSparklines:
    def test_sample_takes_tail_evenly(self):
        history = [float(i) for i in range(168)]
        points = sample_sparkline(history)
        # step 18, starting at 168 - 9 * 18 = 6
        assert points == [6.0 + 18 * i for i in range(9)]
        assert points == sorted(points)

    def test_sample_short_history(self):
        assert sample_sparkline([1.0, 2.0, 3.0]) == [1.0] * 6 + [1.0, 2.0, 3.0]
        assert sample_sparkline([]) == []

    def test_placeholder_in_band(self):
        points = placeholder_sparkline(100.0, random.Random(1))
        assert len(points) == 9
        assert all(90.0 <= p <= 110.0 for p in points)

    def test_placeholder_uses_injected_rng(self):
        assert placeholder_sparkline(5.0, random.Random(3)) == placeholder_sparkline(5.0, random.Random(3))
