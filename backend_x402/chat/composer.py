"""
Turns market snapshots and free-text questions into the assistant's reply.

Two tiers:
- DeterministicFormatter: fixed templates, always available.
- GenerativeFormatter: optional completion provider. Any failure yields None
  and the composer answers with the deterministic rendering instead.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from backend_x402.chat.completion import CompletionProvider
from backend_x402.chat.intents import Intent
from backend_x402.chat.persona import (
    MARKET_ANALYST_PROMPT,
    PROMO_SUFFIX,
    chat_system_prompt,
    is_on_topic,
    render_canned_reply,
    select_canned_reply,
)
from backend_x402.core.exceptions import UpstreamUnavailable
from backend_x402.market_data.models import (
    MarketOverview,
    MarketSnapshot,
    PriceSnapshot,
    RankedCoins,
    TokenSearchResult,
)
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

HISTORY_TURNS = 5
HIGH_VOLUME_USD = 1_000_000_000

MARKET_DATA_ERROR = "I'm experiencing issues fetching real-time market data. Please try again in a moment."

_UNAVAILABLE_SUBJECT = {
    Intent.BITCOIN_PRICE: "Bitcoin price",
    Intent.TOP_GAINERS: "top gainers",
    Intent.MARKET_TRENDS: "market trends",
    Intent.ETHEREUM_PRICE: "Ethereum price",
    Intent.SOLANA_PRICE: "Solana price",
    Intent.TOP_COINS: "top coins",
    Intent.TOKEN_CONTRACT: "token",
    Intent.TOKEN_SEARCH: "token search",
}

_ANALYSIS_REQUEST = {
    Intent.BITCOIN_PRICE: (
        "Please provide an engaging analysis of Bitcoin's current price performance "
        "with actionable trading insights."
    ),
    Intent.SOLANA_PRICE: (
        "Please provide detailed analysis of Solana's current price performance "
        "with key insights and actionable recommendations."
    ),
    Intent.ETHEREUM_PRICE: "Please provide comprehensive analysis of Ethereum's current market performance.",
}


def format_number(value: float | None) -> str:
    """Thousands separators, at most 3 fraction digits; "N/A" when absent."""
    if value is None:
        return "N/A"
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def format_percent(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}"


def unavailable_message(intent: Intent) -> str:
    subject = _UNAVAILABLE_SUBJECT.get(intent)
    if subject is None:
        return MARKET_DATA_ERROR
    return f"I'm currently unable to fetch {subject} data. Please try again in a moment."


def clean_markdown(text: str) -> str:
    """Strip markdown emphasis and headers from generated text."""
    text = re.sub(r"\*\*([^*]+):\*\*", r"\1:", text)
    text = re.sub(r"\*\*\*([^*]+)\*\*\*", r"\1", text)
    text = re.sub(r"\*\*([^*\n]+)\*\*", r"\1", text)
    text = re.sub(r"^\*\*\s*-\s*", "• ", text, flags=re.MULTILINE)
    text = re.sub(r"^#{1,6}\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.replace("*", "")
    return text.strip()


def price_data_block(snapshot: PriceSnapshot) -> str:
    return (
        f"- Price: ${format_number(snapshot.price)}\n"
        f"- 24h Change: {format_percent(snapshot.change_24h)}%\n"
        f"- 24h Volume: ${format_number(snapshot.volume_24h)}\n"
        f"- Market Cap: ${format_number(snapshot.market_cap)}"
    )


class DeterministicFormatter:
    """Template rendering for every market-data intent."""

    def format(self, intent: Intent, snapshot: MarketSnapshot) -> str:
        if isinstance(snapshot, PriceSnapshot):
            body = self._price(intent, snapshot)
        elif isinstance(snapshot, RankedCoins):
            body = self._top_gainers(snapshot) if intent is Intent.TOP_GAINERS else self._top_coins(snapshot)
        elif isinstance(snapshot, MarketOverview):
            body = self._overview(snapshot)
        elif isinstance(snapshot, TokenSearchResult):
            body = self._search(snapshot)
        else:
            raise TypeError(f"unsupported snapshot type: {type(snapshot).__name__}")
        return f"{body}\n\n{PROMO_SUFFIX}"

    def _price(self, intent: Intent, s: PriceSnapshot) -> str:
        header = f"📈 {s.name} ({s.symbol}) Real-Time Data:\n{price_data_block(s)}"
        change = s.change_24h
        positive = change is not None and change > 0
        movement = format_percent(abs(change) if change is not None else None)

        if intent is Intent.BITCOIN_PRICE:
            trend = "positive momentum" if positive else "consolidation"
            return f"{header}\n\n🚀 Analysis:\nBitcoin shows {trend} with {movement}% movement in the last 24 hours."
        if intent is Intent.ETHEREUM_PRICE:
            trend = "bullish momentum" if positive else "market correction"
            return f"{header}\n\n🚀 Analysis:\nEthereum shows {trend} with {movement}% movement."
        if intent is Intent.SOLANA_PRICE:
            trend = "strong performance" if positive else "consolidation phase"
            action = (
                "Positive momentum suggests growing confidence"
                if positive
                else "Price correction may present buying opportunities"
            )
            activity = "high" if (s.volume_24h or 0) > HIGH_VOLUME_USD else "moderate"
            return (
                f"{header}\n\n🚀 Analysis:\n"
                f"Solana demonstrates {trend} with {movement}% change in the last 24 hours.\n\n"
                "💡 Key Insights:\n"
                f"1. Price Action: {action}\n"
                f"2. Volume Analysis: ${format_number(s.volume_24h)} in 24h trading volume "
                f"indicates {activity} market activity\n"
                f"3. Market Position: With ${format_number(s.market_cap)} market cap, "
                "SOL maintains strong market presence"
            )
        trend = "upward movement" if positive else "sideways or downward movement"
        return f"{header}\n\n🚀 Analysis:\n{s.name} shows {trend} with {movement}% change in the last 24 hours."

    def _top_gainers(self, ranked: RankedCoins) -> str:
        lines = []
        for i, coin in enumerate(ranked.coins, start=1):
            price = "N/A" if coin.current_price is None else f"{coin.current_price:.6f}"
            lines.append(f"{i}. {coin.name} ({coin.symbol}) - 📈 {format_percent(coin.change_24h)}% (${price})")
        return f"🚀 Top {len(ranked.coins)} Crypto Gainers (24h)\n\n" + "\n".join(lines)

    def _top_coins(self, ranked: RankedCoins) -> str:
        lines = [
            f"{i}. {coin.name} ({coin.symbol}) - ${format_number(coin.current_price)} "
            f"({format_percent(coin.change_24h)}%)"
            for i, coin in enumerate(ranked.coins, start=1)
        ]
        return f"🏆 Top {len(ranked.coins)} Cryptocurrencies by Market Cap\n\n" + "\n".join(lines)

    def _overview(self, o: MarketOverview) -> str:
        trending = "\n".join(
            f"{i}. {coin.name} ({coin.symbol}) - Rank #{coin.market_cap_rank or 'N/A'}"
            for i, coin in enumerate(o.trending, start=1)
        ) or "No trending data available"
        return (
            "📊 Cryptocurrency Market Overview\n\n"
            "Market Statistics:\n"
            f"• Total Market Cap: ${format_number(o.total_market_cap)}\n"
            f"• 24h Market Cap Change: {format_percent(o.market_cap_change_24h)}%\n"
            f"• Bitcoin Dominance: {format_percent(o.btc_dominance)}%\n"
            f"• Ethereum Dominance: {format_percent(o.eth_dominance)}%\n\n"
            f"Top Trending:\n{trending}"
        )

    def _search(self, result: TokenSearchResult) -> str:
        parts = [f'I found {len(result.matches)} token(s) matching "{result.query}":\n']
        for i, token in enumerate(result.matches, start=1):
            entry = f"{i}. {token.name} ({token.symbol})\n   - ID: {token.coin_id}"
            if token.market_cap_rank:
                entry += f"\n   - Market Cap Rank: #{token.market_cap_rank}"
            parts.append(entry + "\n")
        parts.append("Would you like detailed analysis for any of these tokens? Just send me the token's contract address!")
        return "\n".join(parts)


class GenerativeFormatter:
    """
    Optional completion tier for price snapshots.

    render() returns None whenever the provider is not configured, the
    snapshot has no analysis prompt, or the provider fails; the caller then
    uses the deterministic rendering.
    """

    def __init__(self, provider: CompletionProvider | None = None) -> None:
        self._provider = provider

    @property
    def available(self) -> bool:
        return self._provider is not None and self._provider.available

    def build_prompt(self, intent: Intent, snapshot: MarketSnapshot) -> str | None:
        request = _ANALYSIS_REQUEST.get(intent)
        if request is None or not isinstance(snapshot, PriceSnapshot):
            return None
        return f"Current {snapshot.name} ({snapshot.symbol}) Real-Time Data:\n{price_data_block(snapshot)}\n\n{request}"

    async def render(self, intent: Intent, snapshot: MarketSnapshot) -> str | None:
        if not self.available:
            return None
        prompt = self.build_prompt(intent, snapshot)
        if prompt is None:
            return None
        messages = [
            {"role": "system", "content": MARKET_ANALYST_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            text = await self._provider.complete(messages)
        except UpstreamUnavailable as e:
            logger.info("generative_fallback", intent=intent.value, reason=e.message)
            return None
        return clean_markdown(text) or None


def _history_messages(history: Iterable[Any], limit: int = HISTORY_TURNS) -> list[dict[str, str]]:
    """Last `limit` user/assistant turns as chat messages; error turns are dropped."""
    turns: list[dict[str, str]] = []
    for turn in history or ():
        if isinstance(turn, Mapping):
            role, content = turn.get("role"), turn.get("content")
        else:
            role, content = getattr(turn, "role", None), getattr(turn, "content", None)
        if role not in ("user", "assistant") or not content:
            continue
        turns.append({"role": role, "content": str(content)})
    return turns[-limit:] if limit > 0 else []


class ResponseComposer:
    def __init__(
        self,
        deterministic: DeterministicFormatter | None = None,
        generative: GenerativeFormatter | None = None,
        *,
        amount: Decimal,
        recipient: str,
        provider: CompletionProvider | None = None,
    ) -> None:
        self.deterministic = deterministic or DeterministicFormatter()
        self.generative = generative or GenerativeFormatter(provider)
        self._provider = provider
        self.amount = amount
        self.recipient = recipient

    async def format(self, intent: Intent, snapshot: MarketSnapshot) -> str:
        fallback = self.deterministic.format(intent, snapshot)
        generated = await self.generative.render(intent, snapshot)
        return generated if generated is not None else fallback

    def canned(self, message: str) -> str:
        kind = select_canned_reply(message)
        return render_canned_reply(kind, amount=self.amount, recipient=self.recipient)

    async def converse(self, message: str, history: Sequence[Any] = ()) -> str:
        provider = self._provider
        if provider is None or not provider.available or not is_on_topic(message):
            return self.canned(message)

        messages = [{"role": "system", "content": chat_system_prompt(self.amount)}]
        messages.extend(_history_messages(history))
        messages.append({"role": "user", "content": message})
        try:
            text = await provider.complete(messages)
        except UpstreamUnavailable as e:
            logger.info("converse_fallback", reason=e.message)
            return self.canned(message)
        return clean_markdown(text) or self.canned(message)


__all__ = [
    "DeterministicFormatter",
    "GenerativeFormatter",
    "MARKET_DATA_ERROR",
    "ResponseComposer",
    "clean_markdown",
    "format_number",
    "format_percent",
    "unavailable_message",
]
