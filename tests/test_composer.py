"""
Pytest tests for response composition: deterministic templates, generative
fallback, markdown cleanup and the generic conversation path.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from types import SimpleNamespace

import httpx
import openai
import pytest

from backend_x402.chat.completion import CompletionProvider, is_placeholder_key
from backend_x402.chat.composer import (
    DeterministicFormatter,
    GenerativeFormatter,
    ResponseComposer,
    clean_markdown,
    format_number,
    unavailable_message,
)
from backend_x402.chat.intents import Intent
from backend_x402.chat.persona import PROMO_SUFFIX, CannedReply, select_canned_reply
from backend_x402.market_data.models import (
    CoinMarketEntry,
    MarketOverview,
    PriceSnapshot,
    RankedCoins,
    TokenMatch,
    TokenSearchResult,
    TrendingCoin,
)

RECIPIENT = "6yK1zeAnkqAe1fBP5Kk773EUm8taJvAsSxnMcYCSzhSL"
AMOUNT = Decimal("0.00001")

BTC = PriceSnapshot(
    coin_id="bitcoin",
    name="Bitcoin",
    symbol="BTC",
    price=65000,
    change_24h=2.5,
    volume_24h=3e10,
    market_cap=1.2e12,
)


class FakeCompletions:
    """Stands in for AsyncOpenAI().chat.completions."""

    def __init__(self, answer: str | None = None, error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.answer)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_provider(answer=None, error=None):
    completions = FakeCompletions(answer, error)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return CompletionProvider("", client=client, timeout_sec=5), completions


def timeout_error() -> Exception:
    return openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


def composer(provider=None) -> ResponseComposer:
    return ResponseComposer(amount=AMOUNT, recipient=RECIPIENT, provider=provider)


def test_bitcoin_deterministic_format():
    text = DeterministicFormatter().format(Intent.BITCOIN_PRICE, BTC)
    assert "65,000" in text
    assert "2.50" in text
    assert text.endswith(PROMO_SUFFIX)
    assert text.startswith("📈 Bitcoin (BTC) Real-Time Data:")
    assert "- Market Cap: $1,200,000,000,000" in text
    assert "positive momentum" in text


def test_missing_fields_render_na():
    snap = PriceSnapshot(coin_id="ethereum", name="Ethereum", symbol="ETH", price=3000.5)
    text = DeterministicFormatter().format(Intent.ETHEREUM_PRICE, snap)
    assert "- Price: $3,000.5" in text
    assert "- 24h Change: N/A%" in text
    assert "- Market Cap: $N/A" in text
    assert "market correction" in text


def test_solana_key_insights():
    snap = PriceSnapshot(
        coin_id="solana", name="Solana", symbol="SOL", price=150, change_24h=-3.1, volume_24h=2e9, market_cap=7e10
    )
    text = DeterministicFormatter().format(Intent.SOLANA_PRICE, snap)
    assert "consolidation phase" in text
    assert "3.10% change" in text
    assert "indicates high market activity" in text
    assert text.endswith(PROMO_SUFFIX)


def test_ranked_lists_keep_order():
    coins = tuple(
        CoinMarketEntry(coin_id=f"c{i}", name=f"Coin{i}", symbol=f"C{i}", current_price=float(i), change_24h=float(i))
        for i in (3, 1, 2)
    )
    text = DeterministicFormatter().format(Intent.TOP_GAINERS, RankedCoins(coins=coins))
    assert text.index("Coin3") < text.index("Coin1") < text.index("Coin2")
    assert "1. Coin3 (C3) - 📈 3.00% ($3.000000)" in text

    top = DeterministicFormatter().format(Intent.TOP_COINS, RankedCoins(coins=coins))
    assert top.startswith("🏆 Top 3 Cryptocurrencies by Market Cap")
    assert top.endswith(PROMO_SUFFIX)


def test_overview_and_search_templates():
    overview = MarketOverview(
        total_market_cap=2.4e12,
        market_cap_change_24h=-1.234,
        btc_dominance=52.1,
        eth_dominance=None,
        trending=(TrendingCoin(name="Pepe", symbol="PEPE", market_cap_rank=None),),
    )
    text = DeterministicFormatter().format(Intent.MARKET_TRENDS, overview)
    assert "• 24h Market Cap Change: -1.23%" in text
    assert "• Ethereum Dominance: N/A%" in text
    assert "1. Pepe (PEPE) - Rank #N/A" in text

    result = TokenSearchResult(query="bonk", matches=(TokenMatch("bonk", "Bonk", "BONK", 60),))
    search = DeterministicFormatter().format(Intent.TOKEN_SEARCH, result)
    assert 'I found 1 token(s) matching "bonk"' in search
    assert "   - Market Cap Rank: #60" in search
    assert search.endswith(PROMO_SUFFIX)


def test_format_number():
    assert format_number(65000) == "65,000"
    assert format_number(1234.56789) == "1,234.568"
    assert format_number(None) == "N/A"


def test_generative_timeout_equals_deterministic():
    provider, completions = make_provider(error=timeout_error())
    text = asyncio.run(composer(provider).format(Intent.BITCOIN_PRICE, BTC))
    assert text == DeterministicFormatter().format(Intent.BITCOIN_PRICE, BTC)
    assert len(completions.calls) == 1


def test_generative_empty_answer_falls_back():
    provider, _ = make_provider(answer="   ")
    text = asyncio.run(composer(provider).format(Intent.BITCOIN_PRICE, BTC))
    assert text == DeterministicFormatter().format(Intent.BITCOIN_PRICE, BTC)


def test_generative_output_is_cleaned():
    provider, completions = make_provider(answer="## Bitcoin\n**Price:** strong\n\n\n\n***Buy*** the **dip**")
    text = asyncio.run(composer(provider).format(Intent.BITCOIN_PRICE, BTC))
    assert text == "Bitcoin\nPrice: strong\n\nBuy the dip"
    sent = completions.calls[0]
    assert sent["messages"][0]["role"] == "system"
    assert "- Price: $65,000" in sent["messages"][1]["content"]


def test_generative_not_used_for_ranked_lists():
    provider, completions = make_provider(answer="generated")
    ranked = RankedCoins(coins=())
    text = asyncio.run(composer(provider).format(Intent.TOP_COINS, ranked))
    assert text.endswith(PROMO_SUFFIX)
    assert completions.calls == []


def test_unconfigured_provider_is_unavailable():
    assert is_placeholder_key("")
    assert is_placeholder_key("your_openai_key")
    assert is_placeholder_key("sk-your_key_here")
    assert is_placeholder_key("sk-proj-your_key_here")
    assert not is_placeholder_key("sk-live-123")
    assert not CompletionProvider("your_openai_key").available
    assert not GenerativeFormatter(None).available


def test_clean_markdown():
    assert clean_markdown("**Summary:** ok") == "Summary: ok"
    assert clean_markdown("**- item") == "• item"
    assert clean_markdown("# Title\n*note*") == "Title\nnote"


@pytest.mark.parametrize(
    "message,kind",
    [
        ("help", CannedReply.HELP),
        ("What can you do with crypto?", CannedReply.HELP),
        ("how does the payment work", CannedReply.PAYMENT_INFO),
        ("explain 402", CannedReply.PAYMENT_INFO),
        ("recommend a pasta recipe", CannedReply.DOMAIN_REDIRECT),
        ("explain defi", CannedReply.DEFAULT),
    ],
)
def test_canned_reply_selection(message, kind):
    assert select_canned_reply(message) is kind


def test_off_topic_never_calls_provider():
    provider, completions = make_provider(answer="sure, here is a recipe")
    text = asyncio.run(composer(provider).converse("recommend a pasta recipe", []))
    assert "focus exclusively on crypto-related topics" in text
    assert completions.calls == []


def test_converse_sends_last_five_turns_without_errors():
    provider, completions = make_provider(answer="**DeFi** is decentralized finance")
    history = [{"role": "user", "content": f"q{i}"} for i in range(6)]
    history.insert(3, {"role": "error", "content": "Payment failed"})
    text = asyncio.run(composer(provider).converse("explain defi", history))
    assert text == "DeFi is decentralized finance"
    messages = completions.calls[0]["messages"]
    assert messages[0]["role"] == "system"
    assert "0.00001 USDC per message" in messages[0]["content"]
    assert [m["content"] for m in messages[1:-1]] == ["q1", "q2", "q3", "q4", "q5"]
    assert messages[-1] == {"role": "user", "content": "explain defi"}


def test_converse_provider_failure_falls_back_to_canned():
    provider, _ = make_provider(error=timeout_error())
    text = asyncio.run(composer(provider).converse("explain defi", []))
    assert text.startswith("I'm X402 Agent, your premium crypto specialist!")


def test_converse_without_provider_payment_info():
    text = asyncio.run(composer().converse("how do usdc payments work?", []))
    assert "0.00001 USDC per message" in text
    assert RECIPIENT in text


def test_unavailable_messages():
    assert unavailable_message(Intent.BITCOIN_PRICE) == (
        "I'm currently unable to fetch Bitcoin price data. Please try again in a moment."
    )
    assert "top coins" in unavailable_message(Intent.TOP_COINS)
