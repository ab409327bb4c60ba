"""
Pytest tests for the market data gateway (CoinGecko-shaped MockTransport).
"""

from __future__ import annotations

import asyncio

import pytest

from backend_x402.chat.intents import Intent, IntentClassification
from backend_x402.market_data.models import MarketOverview, PriceSnapshot, RankedCoins, TokenSearchResult

BTC_SIMPLE_PRICE = {
    "bitcoin": {
        "usd": 65000,
        "usd_24h_change": 2.5,
        "usd_24h_vol": 3e10,
        "usd_market_cap": 1.2e12,
    }
}


def markets(n: int):
    return [
        {
            "id": f"coin-{i}",
            "name": f"Coin {i}",
            "symbol": f"c{i}",
            "current_price": 1.5 * i,
            "price_change_percentage_24h": 10.0 - i,
            "market_cap": 1e9 / i,
            "market_cap_rank": i,
        }
        for i in range(1, n + 1)
    ]


def test_bitcoin_price(gateway, market):
    market.routes["/simple/price"] = (200, BTC_SIMPLE_PRICE)
    snap = asyncio.run(gateway.fetch(IntentClassification(Intent.BITCOIN_PRICE)))
    assert isinstance(snap, PriceSnapshot)
    assert snap.symbol == "BTC"
    assert snap.price == 65000
    assert snap.change_24h == 2.5


def test_price_missing_usd_is_unavailable(gateway, market):
    market.routes["/simple/price"] = (200, {"ethereum": {"eur": 3000}})
    assert asyncio.run(gateway.fetch(IntentClassification(Intent.ETHEREUM_PRICE))) is None


@pytest.mark.parametrize("status", [429, 500, 503])
def test_non_2xx_is_unavailable(gateway, market, status):
    market.routes["/simple/price"] = (status, {"error": "nope"})
    assert asyncio.run(gateway.fetch(IntentClassification(Intent.SOLANA_PRICE))) is None


def test_top_gainers_keeps_provider_order_and_limit(gateway, market):
    market.routes["/coins/markets"] = (200, markets(12))
    snap = asyncio.run(gateway.fetch(IntentClassification(Intent.TOP_GAINERS)))
    assert isinstance(snap, RankedCoins)
    assert len(snap.coins) == 10
    assert [c.coin_id for c in snap.coins[:3]] == ["coin-1", "coin-2", "coin-3"]
    assert snap.coins[0].symbol == "C1"


def test_top_coins_limit(gateway, market):
    market.routes["/coins/markets"] = (200, markets(20))
    snap = asyncio.run(gateway.fetch(IntentClassification(Intent.TOP_COINS)))
    assert len(snap.coins) == 15


def test_markets_malformed_payload(gateway, market):
    market.routes["/coins/markets"] = (200, {"not": "a list"})
    assert asyncio.run(gateway.get_top_coins()) is None


def test_market_overview(gateway, market):
    market.routes["/global"] = (
        200,
        {
            "data": {
                "total_market_cap": {"usd": 2.4e12},
                "market_cap_change_percentage_24h_usd": -1.234,
                "market_cap_percentage": {"btc": 52.1, "eth": 17.3},
            }
        },
    )
    market.routes["/search/trending"] = (
        200,
        {"coins": [{"item": {"name": f"T{i}", "symbol": f"T{i}", "market_cap_rank": i}} for i in range(10)]},
    )
    snap = asyncio.run(gateway.fetch(IntentClassification(Intent.MARKET_TRENDS)))
    assert isinstance(snap, MarketOverview)
    assert snap.btc_dominance == 52.1
    assert len(snap.trending) == 7


def test_market_overview_fails_when_trending_fails(gateway, market):
    market.routes["/global"] = (200, {"data": {}})
    assert asyncio.run(gateway.get_market_overview()) is None


def test_search_tokens_at_most_five(gateway, market):
    coins = [{"id": f"t{i}", "name": f"Token {i}", "symbol": f"tk{i}", "market_cap_rank": i} for i in range(8)]
    market.routes["/search"] = (200, {"coins": coins})
    matches = asyncio.run(gateway.search_tokens("token"))
    assert len(matches) == 5
    assert matches[0].symbol == "TK0"


def test_search_tokens_failure_is_empty(gateway, market):
    market.routes["/search"] = (500, {})
    assert asyncio.run(gateway.search_tokens("token")) == []
    assert asyncio.run(gateway.search_tokens("   ")) == []


def test_token_search_reuses_classification_matches(gateway, market):
    from backend_x402.market_data.models import TokenMatch

    match = TokenMatch(coin_id="bonk", name="Bonk", symbol="BONK")
    snap = asyncio.run(
        gateway.fetch(IntentClassification(Intent.TOKEN_SEARCH, query="bonk", matches=(match,)))
    )
    assert isinstance(snap, TokenSearchResult)
    assert snap.matches == (match,)
    assert market.calls == []


def test_token_by_contract(gateway, market):
    address = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
    market.routes[f"/coins/solana/contract/{address}"] = (
        200,
        {
            "id": "bonk",
            "name": "Bonk",
            "symbol": "bonk",
            "market_data": {
                "current_price": {"usd": 0.00002},
                "price_change_percentage_24h": 5.0,
                "total_volume": {"usd": 1e8},
                "market_cap": {"usd": 1.5e9},
            },
        },
    )
    snap = asyncio.run(
        gateway.fetch(IntentClassification(Intent.TOKEN_CONTRACT, query=address, platform="solana"))
    )
    assert snap.name == "Bonk"
    assert snap.symbol == "BONK"
    assert snap.price == 0.00002


def test_generic_is_not_market_data(gateway):
    with pytest.raises(ValueError):
        asyncio.run(gateway.fetch(IntentClassification(Intent.GENERIC)))


def test_price_entry_not_an_object(gateway, market):
    market.routes["/simple/price"] = (200, {"bitcoin": "usd"})
    assert asyncio.run(gateway.fetch(IntentClassification(Intent.BITCOIN_PRICE))) is None


def test_global_data_not_an_object(gateway, market):
    market.routes["/global"] = (200, {"data": []})
    market.routes["/search/trending"] = (200, {"coins": []})
    assert asyncio.run(gateway.fetch(IntentClassification(Intent.MARKET_TRENDS))) is None


def test_contract_lookup_returns_list(gateway, market):
    address = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
    market.routes[f"/coins/solana/contract/{address}"] = (200, [])
    classification = IntentClassification(Intent.TOKEN_CONTRACT, query=address, platform="solana")
    assert asyncio.run(gateway.fetch(classification)) is None


def test_markets_items_not_objects(gateway, market):
    market.routes["/coins/markets"] = (200, ["bitcoin", "ethereum"])
    assert asyncio.run(gateway.get_top_gainers()) is None
