"""
Market data package: live prices, rankings, market overview and token search.

The HTTP gateway lives in backend_x402.market_data.gateway; it is not
re-exported here because it depends on the chat intent types.
"""

from backend_x402.market_data.models import (
    CoinMarketEntry,
    MarketOverview,
    MarketSnapshot,
    PriceSnapshot,
    RankedCoins,
    TokenMatch,
    TokenSearchResult,
    TrendingCoin,
)

__all__ = [
    "CoinMarketEntry",
    "MarketOverview",
    "MarketSnapshot",
    "PriceSnapshot",
    "RankedCoins",
    "TokenMatch",
    "TokenSearchResult",
    "TrendingCoin",
]
