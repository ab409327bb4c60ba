"""
Typed market snapshots returned by the market data gateway.

Numeric fields are Optional: the provider omits fields for thin markets and
the formatter renders those as "N/A".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _rank(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class PriceSnapshot:
    coin_id: str
    name: str
    symbol: str
    price: float | None
    change_24h: float | None = None
    volume_24h: float | None = None
    market_cap: float | None = None

    @classmethod
    def from_simple_price(cls, coin_id: str, name: str, symbol: str, item: dict[str, Any]) -> "PriceSnapshot":
        """Build from one /simple/price entry (usd, usd_24h_change, usd_24h_vol, usd_market_cap)."""
        if "usd" not in item:
            raise KeyError("usd")
        return cls(
            coin_id=coin_id,
            name=name,
            symbol=symbol,
            price=_num(item.get("usd")),
            change_24h=_num(item.get("usd_24h_change")),
            volume_24h=_num(item.get("usd_24h_vol")),
            market_cap=_num(item.get("usd_market_cap")),
        )

    @classmethod
    def from_coin_detail(cls, item: dict[str, Any]) -> "PriceSnapshot":
        """Build from a /coins/{platform}/contract/{address} response."""
        market = item.get("market_data") or {}
        return cls(
            coin_id=str(item["id"]),
            name=str(item.get("name") or item["id"]),
            symbol=str(item.get("symbol") or "").upper(),
            price=_num((market.get("current_price") or {}).get("usd")),
            change_24h=_num(market.get("price_change_percentage_24h")),
            volume_24h=_num((market.get("total_volume") or {}).get("usd")),
            market_cap=_num((market.get("market_cap") or {}).get("usd")),
        )


@dataclass(frozen=True)
class CoinMarketEntry:
    coin_id: str
    name: str
    symbol: str
    current_price: float | None
    change_24h: float | None
    market_cap: float | None = None
    market_cap_rank: int | None = None

    @classmethod
    def from_markets_item(cls, item: dict[str, Any]) -> "CoinMarketEntry":
        return cls(
            coin_id=str(item["id"]),
            name=str(item.get("name") or item["id"]),
            symbol=str(item.get("symbol") or "").upper(),
            current_price=_num(item.get("current_price")),
            change_24h=_num(item.get("price_change_percentage_24h")),
            market_cap=_num(item.get("market_cap")),
            market_cap_rank=_rank(item.get("market_cap_rank")),
        )


@dataclass(frozen=True)
class RankedCoins:
    """Provider-ordered list (top gainers or top coins by market cap)."""

    coins: tuple[CoinMarketEntry, ...]


@dataclass(frozen=True)
class TrendingCoin:
    name: str
    symbol: str
    market_cap_rank: int | None

    @classmethod
    def from_trending_item(cls, item: dict[str, Any]) -> "TrendingCoin":
        coin = item["item"]
        return cls(
            name=str(coin["name"]),
            symbol=str(coin.get("symbol") or ""),
            market_cap_rank=_rank(coin.get("market_cap_rank")),
        )


@dataclass(frozen=True)
class MarketOverview:
    total_market_cap: float | None
    market_cap_change_24h: float | None
    btc_dominance: float | None
    eth_dominance: float | None
    trending: tuple[TrendingCoin, ...] = field(default_factory=tuple)

    @classmethod
    def from_global(cls, data: dict[str, Any], trending: tuple[TrendingCoin, ...]) -> "MarketOverview":
        dominance = data.get("market_cap_percentage") or {}
        return cls(
            total_market_cap=_num((data.get("total_market_cap") or {}).get("usd")),
            market_cap_change_24h=_num(data.get("market_cap_change_percentage_24h_usd")),
            btc_dominance=_num(dominance.get("btc")),
            eth_dominance=_num(dominance.get("eth")),
            trending=trending,
        )


@dataclass(frozen=True)
class TokenMatch:
    coin_id: str
    name: str
    symbol: str
    market_cap_rank: int | None = None

    @classmethod
    def from_search_item(cls, item: dict[str, Any]) -> "TokenMatch":
        return cls(
            coin_id=str(item["id"]),
            name=str(item.get("name") or item["id"]),
            symbol=str(item.get("symbol") or "").upper(),
            market_cap_rank=_rank(item.get("market_cap_rank")),
        )


@dataclass(frozen=True)
class TokenSearchResult:
    query: str
    matches: tuple[TokenMatch, ...]


MarketSnapshot = Union[PriceSnapshot, RankedCoins, MarketOverview, TokenSearchResult]
