"""CoinGecko market-data client."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import httpx

from trendscope.core.config import settings
from trendscope.schemas.providers import MarketCoin
from trendscope.services.signals import sample_sparkline
from .base import (
    BaseProvider,
    MalformedPayload,
    ProviderError,
    RateLimited,
    Sleeper,
    dig,
    safe_float,
    safe_int,
)

DEFAULT_RETRY_AFTER = 60.0


class CoinGeckoClient(BaseProvider):
    """Trending list, ranked market lists and single-coin lookups from CoinGecko.

    Requests go through `_request`, which retries up to `max_retries` times.
    A 429 waits for the server's Retry-After (capped); other failures wait a
    fixed backoff. Public methods never raise.
    """

    name = "coingecko"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        max_retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Optional[Sleeper] = None,
    ):
        super().__init__(client=client, timeout=timeout, sleep=sleep)
        self.api_key = api_key if api_key is not None else settings.COINGECKO_API_KEY
        self.base_url = (base_url or settings.coingecko_base_url).rstrip("/")
        self.max_retries = max(1, settings.MARKET_MAX_RETRIES if max_retries is None else max_retries)
        self.retry_backoff = settings.MARKET_RETRY_BACKOFF if retry_backoff is None else retry_backoff
        self.max_retry_delay = settings.MARKET_MAX_RETRY_DELAY if max_retry_delay is None else max_retry_delay

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self.get_json(url, params=params, headers=self._headers())
            except RateLimited as exc:
                if attempt == self.max_retries:
                    raise
                delay = min(
                    exc.retry_after if exc.retry_after is not None else DEFAULT_RETRY_AFTER,
                    self.max_retry_delay,
                )
                self.log.warning(f"Rate limited on {endpoint}, waiting {delay:.1f}s (attempt {attempt}/{self.max_retries})")
                await self.sleep(delay)
            except MalformedPayload:
                raise
            except ProviderError as exc:
                if attempt == self.max_retries:
                    raise
                self.log.warning(
                    f"Attempt {attempt}/{self.max_retries} on {endpoint} failed ({exc.message}), "
                    f"retrying in {self.retry_backoff:.1f}s"
                )
                await self.sleep(self.retry_backoff)
        raise ProviderError(f"{self.name}: all retries exhausted for {endpoint}")

    # -------------------------------------------------------------------------
    # Market lists
    # -------------------------------------------------------------------------
    async def get_markets(self, ids: Iterable[str], currency: str = "usd") -> List[Dict[str, Any]]:
        """Batched `/coins/markets` lookup for the given coin ids (raw rows)."""
        id_list = [i for i in ids if i]
        if not id_list:
            return []
        try:
            return await self._markets(
                {
                    "vs_currency": currency,
                    "ids": ",".join(id_list),
                    "order": "market_cap_desc",
                    "per_page": max(50, len(id_list)),
                    "page": 1,
                    "sparkline": "true",
                    "price_change_percentage": "24h",
                }
            )
        except ProviderError as exc:
            self.report(exc, "Market lookup")
            return []

    async def _markets(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = await self._request("/coins/markets", params)
        if not isinstance(data, list):
            raise MalformedPayload(f"{self.name}: /coins/markets did not return a list")
        return [row for row in data if isinstance(row, dict) and row.get("id")]

    async def get_trending(self, limit: int = 10) -> List[MarketCoin]:
        """Most-searched coins, enriched with market fields from one batched lookup."""
        try:
            data = await self._request("/search/trending")
            if not isinstance(data, dict) or not isinstance(data.get("coins"), list):
                raise MalformedPayload(f"{self.name}: invalid trending response")

            items = [c.get("item") for c in data["coins"][:limit] if isinstance(c, dict)]
            items = [i for i in items if isinstance(i, dict) and i.get("id")]
        except ProviderError as exc:
            self.report(exc, "Trending fetch")
            return []

        markets = {row["id"]: row for row in await self.get_markets(i["id"] for i in items)}

        coins: List[MarketCoin] = []
        for item in items:
            market = markets.get(item["id"], {})
            coins.append(
                MarketCoin(
                    id=item["id"],
                    name=str(item.get("name") or item["id"]),
                    symbol=str(item.get("symbol") or "").upper(),
                    price=safe_float(market.get("current_price")),
                    change_24h=safe_float(market.get("price_change_percentage_24h")),
                    market_cap=safe_float(market.get("market_cap")),
                    volume=safe_float(market.get("total_volume")),
                    market_cap_rank=safe_int(market.get("market_cap_rank")) or safe_int(item.get("market_cap_rank")),
                    sparkline=sample_sparkline(_history(market)),
                    image=item.get("large") or item.get("thumb"),
                )
            )
        self.log.info(f"Fetched {len(coins)} trending coins ({len(markets)} with market data)")
        return coins

    async def get_top_by_volume(self, limit: int = 8, currency: str = "usd") -> List[MarketCoin]:
        """Highest 24h volume coins (the Binance-focused board)."""
        try:
            rows = await self._markets(
                {
                    "vs_currency": currency,
                    "order": "volume_desc",
                    "per_page": max(10, limit),
                    "page": 1,
                    "sparkline": "true",
                    "price_change_percentage": "24h",
                }
            )
        except ProviderError as exc:
            self.report(exc, "Top-by-volume fetch")
            return []

        rows = [r for r in rows if safe_float(r.get("total_volume")) > 0][:limit]
        coins = [self._coin_from_market(row) for row in rows]
        self.log.info(f"Fetched {len(coins)} top-volume coins")
        return coins

    async def get_top_markets(self, limit: int = 30, currency: str = "usd") -> List[MarketCoin]:
        """Ranked market list by market cap."""
        try:
            rows = await self._markets(
                {
                    "vs_currency": currency,
                    "order": "market_cap_desc",
                    "per_page": limit,
                    "page": 1,
                    "sparkline": "true",
                    "price_change_percentage": "24h",
                }
            )
        except ProviderError as exc:
            self.report(exc, "Top-markets fetch")
            return []

        return [self._coin_from_market(row) for row in rows[:limit]]

    # -------------------------------------------------------------------------
    # Single coin lookups (used by the listing enrichment)
    # -------------------------------------------------------------------------
    async def search_coin(self, symbol: str) -> Optional[str]:
        """Return the CoinGecko id whose symbol matches exactly, or None."""
        try:
            data = await self._request("/search", {"query": symbol})
            if not isinstance(data, dict):
                raise MalformedPayload(f"{self.name}: invalid search response")
        except ProviderError as exc:
            self.report(exc, f"Search for {symbol}")
            return None

        wanted = symbol.upper()
        coins = data.get("coins")
        for coin in coins if isinstance(coins, list) else []:
            if isinstance(coin, dict) and coin.get("id") and str(coin.get("symbol") or "").upper() == wanted:
                return str(coin["id"])
        return None

    async def get_coin(self, coin_id: str, currency: str = "usd") -> Optional[MarketCoin]:
        """Detailed snapshot of one coin, or None."""
        try:
            data = await self._request(
                f"/coins/{coin_id}",
                {
                    "localization": "false",
                    "tickers": "false",
                    "community_data": "false",
                    "developer_data": "false",
                    "sparkline": "true",
                },
            )
            if not isinstance(data, dict) or not isinstance(data.get("market_data"), dict):
                raise MalformedPayload(f"{self.name}: coin {coin_id} has no market_data")

            market = data["market_data"]
            return MarketCoin(
                id=str(data.get("id") or coin_id),
                name=str(data.get("name") or coin_id),
                symbol=str(data.get("symbol") or "").upper(),
                price=safe_float(dig(market, "current_price", currency)),
                change_24h=safe_float(market.get("price_change_percentage_24h")),
                market_cap=safe_float(dig(market, "market_cap", currency)),
                volume=safe_float(dig(market, "total_volume", currency)),
                market_cap_rank=safe_int(data.get("market_cap_rank")),
                sparkline=sample_sparkline(_prices(dig(market, "sparkline_7d", "price"))),
                image=dig(data, "image", "small"),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            malformed = MalformedPayload(f"{self.name}: coin {coin_id} is malformed: {exc!r}")
            self.report(malformed, f"Coin lookup {coin_id}")
            return None
        except ProviderError as exc:
            self.report(exc, f"Coin lookup {coin_id}")
            return None

    async def ping(self) -> bool:
        try:
            await self.get_json(f"{self.base_url}/ping", headers=self._headers())
            return True
        except ProviderError as exc:
            self.report(exc, "Ping")
            return False

    @staticmethod
    def _coin_from_market(row: Dict[str, Any]) -> MarketCoin:
        return MarketCoin(
            id=row["id"],
            name=str(row.get("name") or row["id"]),
            symbol=str(row.get("symbol") or "").upper(),
            price=safe_float(row.get("current_price")),
            change_24h=safe_float(row.get("price_change_percentage_24h")),
            market_cap=safe_float(row.get("market_cap")),
            volume=safe_float(row.get("total_volume")),
            market_cap_rank=safe_int(row.get("market_cap_rank")),
            sparkline=sample_sparkline(_history(row)),
            image=row.get("image"),
        )


def _history(row: Dict[str, Any]) -> List[float]:
    return _prices(dig(row, "sparkline_in_7d", "price"))


def _prices(values: Any) -> List[float]:
    if not isinstance(values, list):
        return []
    return [safe_float(p) for p in values if p is not None]
