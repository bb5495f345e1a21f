# Provider clients package
from trendscope.providers.base import (
    BaseProvider,
    MalformedPayload,
    ProviderError,
    ProviderUnavailable,
    RateLimited,
)
from trendscope.providers.lowcap_listing import BinanceAlphaClient
from trendscope.providers.market_data import CoinGeckoClient
from trendscope.providers.search_interest import GoogleTrendsClient
from trendscope.providers.social_mention import TwitterClient

__all__ = [
    "BaseProvider",
    "MalformedPayload",
    "ProviderError",
    "ProviderUnavailable",
    "RateLimited",
    "BinanceAlphaClient",
    "CoinGeckoClient",
    "GoogleTrendsClient",
    "TwitterClient",
]
