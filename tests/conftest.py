"""
Pytest fixtures for X402 gateway tests.

The Solana RPC and the market data provider are replaced with
httpx.MockTransport fakes; nothing leaves the process.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from backend_x402.config.env import MAINNET_USDC_MINT
from backend_x402.config.settings import DEFAULT_RECIPIENT
from backend_x402.ledger.instructions import TOKEN_PROGRAM_ID, get_associated_token_address, parse_pubkey
from backend_x402.ledger.payment_verifier import InMemorySignatureRegistry, PaymentPolicy, PaymentVerifier
from backend_x402.ledger.rpc import SolanaRpcClient

# Valid Solana pubkeys (base58, 32 bytes)
VALID_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
VALID_WALLET_2 = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
USDC_MINT = MAINNET_USDC_MINT
RECIPIENT = DEFAULT_RECIPIENT
PAYMENT_AMOUNT = Decimal("0.00001")
CG_BASE_URL = "https://cg.test/api/v3"


def new_signature() -> str:
    """A well-formed, unique transaction signature (base58, 64 bytes)."""
    return str(Keypair().sign_message(b"x402"))


def ata(owner: str, mint: str = USDC_MINT) -> str:
    return str(get_associated_token_address(parse_pubkey(owner), parse_pubkey(mint)))


def transfer_tx(
    payer: str,
    *,
    raw_amount: int = 10,
    recipient: str = RECIPIENT,
    authority: str | None = None,
    balance_mint: str = USDC_MINT,
    err: Any = None,
    checked: bool = False,
    inner: bool = False,
) -> dict[str, Any]:
    """jsonParsed getTransaction result carrying one USDC transfer."""
    source = ata(payer)
    destination = ata(recipient)
    info: dict[str, Any] = {"source": source, "destination": destination, "authority": authority or payer}
    if checked:
        info["mint"] = balance_mint
        info["tokenAmount"] = {"amount": str(raw_amount), "decimals": 6}
    else:
        info["amount"] = str(raw_amount)
    ix = {
        "program": "spl-token",
        "programId": str(TOKEN_PROGRAM_ID),
        "parsed": {"type": "transferChecked" if checked else "transfer", "info": info},
    }
    top_level = [] if inner else [ix]
    inner_groups = [{"index": 0, "instructions": [ix]}] if inner else []
    return {
        "slot": 1,
        "transaction": {
            "signatures": [new_signature()],
            "message": {
                "accountKeys": [
                    {"pubkey": payer, "signer": True, "writable": True},
                    {"pubkey": source, "signer": False, "writable": True},
                    {"pubkey": destination, "signer": False, "writable": True},
                ],
                "instructions": top_level,
            },
        },
        "meta": {
            "err": err,
            "innerInstructions": inner_groups,
            "preTokenBalances": [
                {"accountIndex": 1, "mint": balance_mint},
                {"accountIndex": 2, "mint": balance_mint},
            ],
            "postTokenBalances": [],
        },
    }


class FakeLedger:
    """In-memory Solana JSON-RPC endpoint for httpx.MockTransport."""

    def __init__(self) -> None:
        self.accounts: set[str] = set()
        self.balances: dict[str, str] = {}
        self.transactions: dict[str, dict[str, Any]] = {}
        self.blockhash = str(Hash.new_unique())
        self.sent: list[str] = []
        self.calls: list[str] = []
        self.down = False

    def add_usdc_account(self, owner: str, balance: str = "0") -> str:
        account = ata(owner)
        self.accounts.add(account)
        self.balances[account] = balance
        return account

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append(method)
        if self.down:
            return httpx.Response(503, json={"message": "unavailable"})
        if method == "getAccountInfo":
            value = {"lamports": 2039280, "owner": str(TOKEN_PROGRAM_ID)} if params[0] in self.accounts else None
            result: Any = {"context": {"slot": 1}, "value": value}
        elif method == "getTokenAccountBalance":
            if params[0] not in self.balances:
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32602, "message": "could not find account"}})
            ui = self.balances[params[0]]
            result = {"context": {"slot": 1}, "value": {"amount": "0", "decimals": 6, "uiAmountString": ui}}
        elif method == "getTransaction":
            result = self.transactions.get(params[0])
        elif method == "getLatestBlockhash":
            result = {"context": {"slot": 1}, "value": {"blockhash": self.blockhash, "lastValidBlockHeight": 100}}
        elif method == "sendTransaction":
            self.sent.append(params[0])
            result = new_signature()
        else:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "Method not found"}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


class FakeMarket:
    """CoinGecko-shaped responses keyed by path suffix; unknown paths answer 404."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, Any]] = {}
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        for suffix, (status, payload) in self.routes.items():
            if path.endswith(suffix):
                return httpx.Response(status, json=payload)
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def rpc(ledger) -> SolanaRpcClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(ledger.handler))
    return SolanaRpcClient("https://rpc.test", client=client)


@pytest.fixture
def policy() -> PaymentPolicy:
    return PaymentPolicy(mint=USDC_MINT, recipient=RECIPIENT, amount=PAYMENT_AMOUNT)


@pytest.fixture
def verifier(rpc, policy) -> PaymentVerifier:
    return PaymentVerifier(rpc, policy, registry=InMemorySignatureRegistry())


@pytest.fixture
def market() -> FakeMarket:
    return FakeMarket()


@pytest.fixture
def gateway(market):
    from backend_x402.market_data.gateway import MarketDataGateway

    client = httpx.AsyncClient(base_url=CG_BASE_URL, transport=httpx.MockTransport(market.handler))
    return MarketDataGateway(client=client)


@pytest.fixture
def make_controller(verifier, rpc, gateway):
    """Factory for a controller wired to the fakes; provider and limiter are overridable."""
    from backend_x402.api_server.controller import ChatGatewayController
    from backend_x402.chat.composer import ResponseComposer
    from backend_x402.chat.intents import IntentRouter
    from backend_x402.ledger.balance import BalanceOracle
    from backend_x402.rate_limit.limiter import RateLimiter

    def _make(*, provider=None, limiter=None, router=None):
        return ChatGatewayController(
            verifier=verifier,
            balance=BalanceOracle(rpc, USDC_MINT),
            limiter=limiter or RateLimiter(),
            router=router or IntentRouter(search=gateway.search_tokens),
            gateway=gateway,
            composer=ResponseComposer(amount=PAYMENT_AMOUNT, recipient=RECIPIENT, provider=provider),
        )

    return _make


@pytest.fixture
def client(make_controller):
    """FastAPI TestClient over a controller wired to the fakes."""
    from fastapi.testclient import TestClient

    from backend_x402.api_server.server import create_app

    return TestClient(create_app(make_controller()))
