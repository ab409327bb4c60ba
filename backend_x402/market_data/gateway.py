"""
Live market data from a CoinGecko-compatible HTTP API.

One independent fetch per market-data intent. Every call degrades on its own:
transport errors, non-2xx responses and malformed payloads are logged and
turned into None (or an empty list for search), never raised. The caller
answers "temporarily unavailable" instead.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from backend_x402.chat.intents import Intent, IntentClassification
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
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

TOP_GAINERS_LIMIT = 10
TOP_COINS_LIMIT = 15
TRENDING_LIMIT = 7
SEARCH_LIMIT = 5

# intent -> (provider coin id, display name, symbol)
PRICE_COINS: dict[Intent, tuple[str, str, str]] = {
    Intent.BITCOIN_PRICE: ("bitcoin", "Bitcoin", "BTC"),
    Intent.ETHEREUM_PRICE: ("ethereum", "Ethereum", "ETH"),
    Intent.SOLANA_PRICE: ("solana", "Solana", "SOL"),
}


class MarketDataGateway:
    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        *,
        api_key: str = "",
        timeout_sec: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_sec),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any | None:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("market_data_request_failed", path=path, error=str(e))
            return None

    async def fetch(self, classification: IntentClassification) -> MarketSnapshot | None:
        """Fetch the snapshot answering a market-data intent; None when unavailable."""
        intent = classification.intent
        if intent in PRICE_COINS:
            coin_id, name, symbol = PRICE_COINS[intent]
            return await self.get_coin_price(coin_id, name, symbol)
        if intent is Intent.TOP_GAINERS:
            return await self.get_top_gainers()
        if intent is Intent.TOP_COINS:
            return await self.get_top_coins()
        if intent is Intent.MARKET_TRENDS:
            return await self.get_market_overview()
        if intent is Intent.TOKEN_CONTRACT:
            return await self.get_token_by_contract(classification.platform or "solana", classification.query or "")
        if intent is Intent.TOKEN_SEARCH:
            matches = classification.matches
            if not matches and classification.query:
                matches = tuple(await self.search_tokens(classification.query))
            return TokenSearchResult(query=classification.query or "", matches=matches) if matches else None
        raise ValueError(f"{intent.value} is not a market data intent")

    async def get_coin_price(self, coin_id: str, name: str, symbol: str) -> PriceSnapshot | None:
        data = await self._get_json(
            "/simple/price",
            {
                "ids": coin_id,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_24hr_vol": "true",
                "include_market_cap": "true",
            },
        )
        if data is None:
            return None
        try:
            return PriceSnapshot.from_simple_price(coin_id, name, symbol, data[coin_id])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("market_data_malformed", path="/simple/price", coin_id=coin_id, error=str(e))
            return None

    async def _get_markets(self, order: str, limit: int) -> RankedCoins | None:
        data = await self._get_json(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": order,
                "per_page": limit,
                "page": 1,
                "sparkline": "false",
                "price_change_percentage": "24h",
            },
        )
        if data is None:
            return None
        try:
            coins = tuple(CoinMarketEntry.from_markets_item(item) for item in data[:limit])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("market_data_malformed", path="/coins/markets", order=order, error=str(e))
            return None
        return RankedCoins(coins=coins)

    async def get_top_gainers(self, limit: int = TOP_GAINERS_LIMIT) -> RankedCoins | None:
        return await self._get_markets("price_change_percentage_24h_desc", limit)

    async def get_top_coins(self, limit: int = TOP_COINS_LIMIT) -> RankedCoins | None:
        return await self._get_markets("market_cap_desc", limit)

    async def get_market_overview(self, trending_limit: int = TRENDING_LIMIT) -> MarketOverview | None:
        global_data, trending_data = await asyncio.gather(
            self._get_json("/global"),
            self._get_json("/search/trending"),
        )
        if global_data is None or trending_data is None:
            return None
        try:
            trending = tuple(
                TrendingCoin.from_trending_item(item)
                for item in trending_data["coins"][:trending_limit]
            )
            return MarketOverview.from_global(global_data["data"], trending)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("market_data_malformed", path="/global", error=str(e))
            return None

    async def search_tokens(self, query: str, limit: int = SEARCH_LIMIT) -> list[TokenMatch]:
        """Best matches for free text, at most `limit`; empty on any failure."""
        query = (query or "").strip()
        if not query:
            return []
        data = await self._get_json("/search", {"query": query})
        if data is None:
            return []
        matches: list[TokenMatch] = []
        try:
            for item in (data.get("coins") or [])[:limit]:
                matches.append(TokenMatch.from_search_item(item))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("market_data_malformed", path="/search", error=str(e))
            return []
        return matches

    async def get_token_by_contract(self, platform: str, address: str) -> PriceSnapshot | None:
        if not address:
            return None
        data = await self._get_json(f"/coins/{platform}/contract/{address}")
        if data is None:
            return None
        try:
            return PriceSnapshot.from_coin_detail(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("market_data_malformed", path="/coins/contract", platform=platform, error=str(e))
            return None
