"""
Application settings.

Typed, immutable view of the environment (see config/env.py) shared by the
ledger, rate limiter, market data gateway, composer and API server.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from decimal import Decimal

from backend_x402.config.env import (
    env_decimal,
    env_float,
    env_int,
    env_str,
    get_solana_network,
    get_solana_rpc_url,
    get_usdc_mint,
)

DEFAULT_RECIPIENT = "6yK1zeAnkqAe1fBP5Kk773EUm8taJvAsSxnMcYCSzhSL"
DEFAULT_PAYMENT_AMOUNT = "0.00001"
DEFAULT_PAYMENT_MEMO = "X402 Chat Payment"
DEFAULT_COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"


@dataclass(frozen=True)
class Settings:
    solana_network: str = "mainnet"
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    usdc_mint: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
    usdc_decimals: int = 6
    payment_recipient: str = DEFAULT_RECIPIENT
    payment_amount: Decimal = Decimal(DEFAULT_PAYMENT_AMOUNT)
    payment_memo: str = DEFAULT_PAYMENT_MEMO
    payment_currency: str = "USDC"
    payment_commitment: str = "finalized"
    min_signature_length: int = 64
    rate_limit_max_messages: int = 100
    rate_limit_window_sec: float = 3600.0
    rate_limit_db_url: str = ""
    coingecko_base_url: str = DEFAULT_COINGECKO_BASE_URL
    coingecko_api_key: str = ""
    openai_api_key: str = ""
    openai_model: str = "gpt-3.5-turbo"
    openai_temperature: float = 0.7
    openai_max_tokens: int = 800
    rpc_timeout_sec: float = 30.0
    market_data_timeout_sec: float = 15.0
    completion_timeout_sec: float = 30.0
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            solana_network=get_solana_network(),
            solana_rpc_url=get_solana_rpc_url(),
            usdc_mint=get_usdc_mint(),
            usdc_decimals=env_int("USDC_DECIMALS", 6),
            payment_recipient=env_str("PAYMENT_RECIPIENT", DEFAULT_RECIPIENT),
            payment_amount=env_decimal("PAYMENT_AMOUNT_USDC", DEFAULT_PAYMENT_AMOUNT),
            payment_memo=env_str("PAYMENT_MEMO", DEFAULT_PAYMENT_MEMO),
            payment_commitment=env_str("PAYMENT_COMMITMENT", "finalized").lower(),
            min_signature_length=env_int("PAYMENT_MIN_SIGNATURE_LENGTH", 64),
            rate_limit_max_messages=env_int("RATE_LIMIT_MAX_MESSAGES", 100),
            rate_limit_window_sec=env_float("RATE_LIMIT_WINDOW_SEC", 3600.0),
            rate_limit_db_url=env_str("RATE_LIMIT_DB_URL"),
            coingecko_base_url=env_str("COINGECKO_BASE_URL", DEFAULT_COINGECKO_BASE_URL).rstrip("/"),
            coingecko_api_key=env_str("COINGECKO_API_KEY"),
            openai_api_key=env_str("OPENAI_API_KEY"),
            openai_model=env_str("OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_temperature=env_float("OPENAI_TEMPERATURE", 0.7),
            openai_max_tokens=env_int("OPENAI_MAX_TOKENS", 800),
            rpc_timeout_sec=env_float("RPC_TIMEOUT_SEC", 30.0),
            market_data_timeout_sec=env_float("MARKET_DATA_TIMEOUT_SEC", 15.0),
            completion_timeout_sec=env_float("COMPLETION_TIMEOUT_SEC", 30.0),
            api_host=env_str("API_HOST", "0.0.0.0"),
            api_port=env_int("API_PORT", 8000),
        )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read from the environment on first call."""
    return Settings.from_env()
