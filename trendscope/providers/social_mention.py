"""X/Twitter v2 recent-search client.

Without a bearer token the client is "not configured": every call returns an
empty result and nothing is treated as a failure.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import httpx

from trendscope.core.config import settings
from trendscope.schemas.domain import Sentiment
from trendscope.schemas.providers import SocialMention, SocialPost
from .base import BaseProvider, MalformedPayload, ProviderError, ProviderUnavailable, Sleeper, dig, safe_int

TWITTER_API_BASE = "https://api.twitter.com"
MAX_HASHTAGS_PER_CALL = 5

BULLISH_TERMS = (
    "moon", "pump", "bullish", "buy", "long", "rocket", "🚀", "💎",
    "ath", "all time high", "breakout", "going up", "to the moon",
    "gem", "alpha", "undervalued", "accumulate", "hold", "hodl",
)

BEARISH_TERMS = (
    "dump", "crash", "bearish", "sell", "short", "rugpull", "rug",
    "scam", "ponzi", "red", "drop", "falling", "liquidation",
    "fud", "overvalued", "bubble", "dead", "rip",
)


def classify_text(text: str) -> Sentiment:
    """Lexicon vote: count bullish vs bearish terms present; ties are Neutral."""
    lowered = text.lower()
    bullish = sum(1 for term in BULLISH_TERMS if term in lowered)
    bearish = sum(1 for term in BEARISH_TERMS if term in lowered)
    if bullish > bearish:
        return Sentiment.BULLISH
    if bearish > bullish:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


class TwitterClient(BaseProvider):
    name = "twitter"

    def __init__(
        self,
        bearer_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = TWITTER_API_BASE,
        request_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Optional[Sleeper] = None,
    ):
        super().__init__(client=client, timeout=timeout, sleep=sleep)
        token = (bearer_token or "").strip()
        self.bearer_token = token or None
        self.base_url = base_url.rstrip("/")
        self.request_delay = settings.SOCIAL_REQUEST_DELAY if request_delay is None else request_delay

    def is_configured(self) -> bool:
        return self.bearer_token is not None

    async def search_mentions(self, query: str, max_results: int = 10) -> Optional[SocialMention]:
        """Recent original English posts for `query`; None when unavailable."""
        if not self.is_configured():
            return None

        params = {
            "query": f"{query} crypto -is:retweet lang:en",
            "max_results": str(max(10, min(max_results, 100))),
            "tweet.fields": "created_at,public_metrics,text",
            "user.fields": "username",
            "expansions": "author_id",
        }
        try:
            data = await self.get_json(
                f"{self.base_url}/2/tweets/search/recent",
                params=params,
                headers={"Authorization": f"Bearer {self.bearer_token}"},
            )
            if not isinstance(data, dict):
                raise MalformedPayload(f"{self.name}: search response is not an object")
        except ProviderUnavailable as exc:
            if exc.details.get("status_code") == 401:
                self.log.error("Invalid bearer token, social search disabled for this call")
            else:
                self.report(exc, f"Mention search '{query}'")
            return None
        except ProviderError as exc:
            self.report(exc, f"Mention search '{query}'")
            return None

        rows = data.get("data")
        if not isinstance(rows, list):
            return SocialMention(hashtag=query, mentions=0, sentiment=Sentiment.NEUTRAL)

        included = dig(data, "includes", "users")
        users: Dict[str, str] = {
            str(u["id"]): str(u.get("username") or "")
            for u in (included if isinstance(included, list) else [])
            if isinstance(u, dict) and u.get("id") is not None
        }
        posts: List[SocialPost] = []
        for row in rows:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            author_id = row.get("author_id")
            created_at = row.get("created_at")
            posts.append(
                SocialPost(
                    id=str(row["id"]),
                    text=str(row.get("text") or ""),
                    author=users.get(str(author_id)) or "unknown",
                    created_at=created_at if isinstance(created_at, str) else None,
                    like_count=safe_int(dig(row, "public_metrics", "like_count")) or 0,
                    reshare_count=safe_int(dig(row, "public_metrics", "retweet_count")) or 0,
                )
            )

        result_count = dig(data, "meta", "result_count")
        return SocialMention(
            hashtag=query,
            mentions=int(result_count) if isinstance(result_count, int) else len(posts),
            sentiment=classify_text(" ".join(p.text for p in posts)),
            posts=posts,
        )

    async def get_social_sentiment(self, hashtags: Sequence[str]) -> List[SocialMention]:
        """Mentions for up to five hashtags, one request at a time."""
        if not self.is_configured():
            self.log.info("No bearer token configured, social sentiment unavailable")
            return []

        results: List[SocialMention] = []
        for idx, tag in enumerate(list(hashtags)[:MAX_HASHTAGS_PER_CALL]):
            if idx > 0 and self.request_delay > 0:
                await self.sleep(self.request_delay)
            mention = await self.search_mentions(tag)
            if mention is not None:
                results.append(mention)
        return results
