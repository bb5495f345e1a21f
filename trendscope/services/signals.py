"""Pure signal derivation: sentiment, trend score, authenticity, cap bucket.

Every function here is total. Unknown, zero or NaN inputs land on the
Neutral / Rumor / bucket-1 end of each range.
"""

from __future__ import annotations

import math
import random
import re
from typing import List, Optional, Sequence

from trendscope.schemas.domain import Authenticity, Sentiment

SPARKLINE_POINTS = 9

# (threshold, bucket), checked top-down with a strict `>`
CAP_BUCKETS = (
    (50_000_000_000, 10),
    (10_000_000_000, 9),
    (5_000_000_000, 8),
    (1_000_000_000, 7),
    (500_000_000, 6),
    (100_000_000, 5),
    (50_000_000, 4),
    (10_000_000, 3),
    (1_000_000, 2),
)

_QUOTE_SUFFIX = re.compile(r"(?:[-/_]?PERP|[-/_]?(?:USDT|BUSD|FDUSD|USDC))$")


def _finite(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def classify_sentiment(
    change_pct: Optional[float],
    rising: bool = False,
    external: Optional[Sentiment] = None,
) -> Sentiment:
    change = _finite(change_pct)
    score = 0
    if change > 10:
        score += 2
    elif change > 3:
        score += 1
    elif change < -10:
        score -= 2
    elif change < -3:
        score -= 1

    if rising:
        score += 1

    if external == Sentiment.BULLISH:
        score += 1
    elif external == Sentiment.BEARISH:
        score -= 1

    if score >= 2:
        return Sentiment.BULLISH
    if score <= -2:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


def trend_score(change_pct: Optional[float], volume: Optional[float]) -> int:
    """1-100 attention score from the size of the move and log-scaled volume."""
    move = min(abs(_finite(change_pct)) * 3, 50.0)
    activity = min(math.log10(max(_finite(volume), 0.0) + 1) * 5, 50.0)
    return max(1, min(100, int(round(move + activity))))


def classify_authenticity(search_score: Optional[float], change_pct: Optional[float]) -> Authenticity:
    score = _finite(search_score)
    change = _finite(change_pct)
    if score > 60 and abs(change) > 5:
        return Authenticity.VERIFIED
    if change < -10:
        return Authenticity.FUD
    return Authenticity.RUMOR


def market_cap_bucket(value: Optional[float]) -> int:
    amount = _finite(value)
    for threshold, bucket in CAP_BUCKETS:
        if amount > threshold:
            return bucket
    return 1


def whale_alert(volume: Optional[float], threshold: float) -> bool:
    return _finite(volume) > threshold


def normalize_symbol(symbol: Optional[str]) -> str:
    """Matching key for cross-provider joins: `$btcusdt` -> `BTC`."""
    key = str(symbol or "").strip().upper().lstrip("$#")
    stripped = _QUOTE_SUFFIX.sub("", key)
    # a bare quote asset ("USDT") keeps its own name
    return stripped or key


def sample_sparkline(prices: Sequence[float], points: int = SPARKLINE_POINTS) -> List[float]:
    """Take `points` evenly stepped samples from the tail of a price history.

    Order stays chronological. Histories shorter than `points` are padded by
    repeating the earliest available value.
    """
    history = [float(p) for p in prices]
    if not history or points <= 0:
        return []
    step = max(1, len(history) // points)
    last = len(history) - 1
    start = len(history) - points * step
    return [history[min(last, max(0, start + i * step))] for i in range(points)]


def placeholder_sparkline(price: float, rng: random.Random, points: int = SPARKLINE_POINTS) -> List[float]:
    """Synthetic chart within +/-10% of `price`. Not real history."""
    base = max(_finite(price), 0.0)
    return [base * (0.9 + rng.random() * 0.2) for _ in range(points)]
