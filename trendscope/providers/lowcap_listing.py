"""Binance Alpha lowcap token listing client."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from trendscope.core.config import settings
from trendscope.schemas.providers import AlphaToken, AlphaTokenMarket
from .base import BaseProvider, MalformedPayload, ProviderError, Sleeper
from .market_data import CoinGeckoClient

BINANCE_ALPHA_URL = (
    "https://www.binance.com/bapi/defi/v1/public/wallet-direct/buw/wallet/cex/alpha/all/token/list"
)

CHAIN_NAMES: Dict[str, str] = {
    "56": "BSC",
    "1": "Ethereum",
    "501": "Solana",
    "137": "Polygon",
    "42161": "Arbitrum",
    "8453": "Base",
    "10": "Optimism",
    "43114": "Avalanche",
}


def chain_label(chain_id: str) -> str:
    return CHAIN_NAMES.get(chain_id, f"Chain {chain_id}" if chain_id else "BSC")


class BinanceAlphaClient(BaseProvider):
    """Flat token list from Binance Alpha, optionally enriched via CoinGecko."""

    name = "binance_alpha"

    def __init__(
        self,
        market: CoinGeckoClient,
        client: Optional[httpx.AsyncClient] = None,
        url: str = BINANCE_ALPHA_URL,
        enrich_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Optional[Sleeper] = None,
    ):
        super().__init__(client=client, timeout=timeout, sleep=sleep)
        self.market = market
        self.url = url
        self.enrich_delay = settings.LISTING_ENRICH_DELAY if enrich_delay is None else enrich_delay

    async def get_tokens(self) -> List[AlphaToken]:
        """All listed tokens in feed order; empty on any failure."""
        try:
            data = await self.get_json(
                self.url,
                headers={
                    "Accept": "application/json",
                    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
                },
            )
            if not isinstance(data, dict) or not isinstance(data.get("data"), list):
                raise MalformedPayload(f"{self.name}: unexpected token list format")
        except ProviderError as exc:
            self.report(exc, "Token list fetch")
            return []

        tokens = [self._to_token(row) for row in data["data"] if isinstance(row, dict)]
        self.log.info(f"Fetched {len(tokens)} Alpha tokens")
        return tokens

    async def newest(self, count: int = 3) -> List[AlphaToken]:
        """The most recently listed tokens, newest first (the feed appends new listings)."""
        tokens = await self.get_tokens()
        if count <= 0:
            return []
        return list(reversed(tokens[-count:]))

    async def get_tokens_with_market(self, limit: Optional[int] = None) -> List[AlphaTokenMarket]:
        """Enrich the first `limit` tokens one by one with CoinGecko market data.

        Lookups are serialized with a fixed delay between tokens to stay under
        the free-tier rate limit. Tokens without a match keep zeroed fields.
        """
        limit = settings.LISTING_ENRICH_LIMIT if limit is None else limit
        tokens = await self.get_tokens()
        if not tokens:
            return []

        results: List[AlphaTokenMarket] = []
        for idx, token in enumerate(tokens[:limit]):
            if idx > 0 and self.enrich_delay > 0:
                await self.sleep(self.enrich_delay)
            results.append(await self._enrich(token))

        priced = sum(1 for r in results if r.price > 0)
        self.log.info(f"Got market data for {priced}/{len(results)} Alpha tokens")
        return results

    async def _enrich(self, token: AlphaToken) -> AlphaTokenMarket:
        if not token.symbol:
            return AlphaTokenMarket(token=token)

        coin_id = await self.market.search_coin(token.symbol)
        if not coin_id:
            return AlphaTokenMarket(token=token)

        coin = await self.market.get_coin(coin_id)
        if coin is None:
            return AlphaTokenMarket(token=token)

        return AlphaTokenMarket(
            token=token,
            price=coin.price,
            change_24h=coin.change_24h,
            market_cap=coin.market_cap,
            volume=coin.volume,
            sparkline=coin.sparkline,
            image=coin.image,
        )

    @staticmethod
    def _to_token(row: Dict[str, Any]) -> AlphaToken:
        chain_id = str(row.get("chainId") or "")
        symbol = str(row.get("symbol") or "").upper()
        return AlphaToken(
            alpha_id=str(row.get("alphaId") or ""),
            symbol=symbol,
            name=str(row.get("name") or row.get("symbol") or "Unknown"),
            chain_id=chain_id,
            contract_address=str(row.get("contractAddress") or ""),
            chain=chain_label(chain_id),
        )
