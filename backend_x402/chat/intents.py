"""
Keyword intent classification.

Rules are evaluated in a fixed priority order on a lower-cased copy of the
message; the first matching rule wins. Messages no rule matches are checked
for a bare token address, then tried as a token search, and fall through to
the generic conversation path when the search finds nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Sequence

from backend_x402.market_data.models import TokenMatch
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
ETHEREUM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Intent(str, Enum):
    BITCOIN_PRICE = "bitcoin_price"
    TOP_GAINERS = "top_gainers"
    MARKET_TRENDS = "market_trends"
    ETHEREUM_PRICE = "ethereum_price"
    SOLANA_PRICE = "solana_price"
    TOP_COINS = "top_coins"
    TOKEN_CONTRACT = "token_contract"
    TOKEN_SEARCH = "token_search"
    GENERIC = "generic"

    @property
    def is_market_data(self) -> bool:
        return self is not Intent.GENERIC


@dataclass(frozen=True)
class IntentClassification:
    intent: Intent
    query: str | None = None
    platform: str | None = None  # token address network for TOKEN_CONTRACT
    matches: tuple[TokenMatch, ...] = ()


def _has_any(text: str, words: Sequence[str]) -> bool:
    return any(word in text for word in words)


def is_bitcoin_price(text: str) -> bool:
    return "bitcoin" in text and _has_any(text, ("price", "current"))


def is_top_gainers(text: str) -> bool:
    return _has_any(text, ("top", "best")) and _has_any(text, ("gainer", "performer", "rising"))


def is_market_trends(text: str) -> bool:
    return "market" in text and _has_any(text, ("trend", "overview", "sentiment"))


def is_ethereum_price(text: str) -> bool:
    return "price" in text and _has_any(text, ("ethereum", "eth"))


def is_solana_price(text: str) -> bool:
    return "price" in text and _has_any(text, ("solana", "sol"))


def is_top_coins(text: str) -> bool:
    return _has_any(text, ("top", "largest")) and _has_any(text, ("coin", "crypto", "market cap"))


@dataclass(frozen=True)
class IntentRule:
    intent: Intent
    predicate: Callable[[str], bool]

    def matches(self, text: str) -> bool:
        return self.predicate(text)


RULES: tuple[IntentRule, ...] = (
    IntentRule(Intent.BITCOIN_PRICE, is_bitcoin_price),
    IntentRule(Intent.TOP_GAINERS, is_top_gainers),
    IntentRule(Intent.MARKET_TRENDS, is_market_trends),
    IntentRule(Intent.ETHEREUM_PRICE, is_ethereum_price),
    IntentRule(Intent.SOLANA_PRICE, is_solana_price),
    IntentRule(Intent.TOP_COINS, is_top_coins),
)


def match_rules(message: str, rules: Sequence[IntentRule] = RULES) -> Intent | None:
    """First rule (in priority order) matching the lower-cased message, or None."""
    text = (message or "").lower()
    for rule in rules:
        if rule.matches(text):
            return rule.intent
    return None


def detect_token_address(message: str) -> str | None:
    """Return "solana" or "ethereum" when the whole message is a token address."""
    candidate = (message or "").strip()
    if ETHEREUM_ADDRESS_RE.match(candidate):
        return "ethereum"
    if SOLANA_ADDRESS_RE.match(candidate):
        return "solana"
    return None


TokenSearch = Callable[[str], Awaitable[Sequence[TokenMatch]]]


class IntentRouter:
    """
    Classifies free text into an Intent.

    Args:
        search: async token search used when no keyword rule matches; None
            disables the search step (everything unmatched is GENERIC).
        rules: ordered keyword rules; first match wins.
    """

    def __init__(self, search: TokenSearch | None = None, rules: Sequence[IntentRule] = RULES) -> None:
        self._search = search
        self._rules = tuple(rules)

    async def classify(self, message: str) -> IntentClassification:
        text = (message or "").strip()
        intent = match_rules(text, self._rules)
        if intent is not None:
            return IntentClassification(intent=intent)

        platform = detect_token_address(text)
        if platform is not None:
            return IntentClassification(intent=Intent.TOKEN_CONTRACT, query=text, platform=platform)

        if self._search is not None and text:
            matches = tuple(await self._search(text))
            if matches:
                logger.debug("intent_token_search_hit", match_count=len(matches))
                return IntentClassification(intent=Intent.TOKEN_SEARCH, query=text, matches=matches)
        return IntentClassification(intent=Intent.GENERIC, query=text or None)
