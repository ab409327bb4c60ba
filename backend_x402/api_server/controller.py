"""
Chat gateway controller: one paid request from validation to reply.

Order: validate input -> (balance side channel) -> payment gate -> rate gate
-> classify -> dispatch. Once the payment has verified, every failure is
turned into a 200 reply; the client has already paid for the message.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from backend_x402.api_server.schemas import (
    BalanceResponse,
    ChatRequest,
    ChatResponse,
    PaymentSubmitResponse,
    PaymentTransactionResponse,
)
from backend_x402.chat.completion import CompletionProvider
from backend_x402.chat.composer import MARKET_DATA_ERROR, ResponseComposer, unavailable_message
from backend_x402.chat.intents import IntentRouter
from backend_x402.config.settings import Settings
from backend_x402.core.exceptions import (
    InvalidWalletAddress,
    MissingMessage,
    MissingWalletAddress,
    PaymentInvalid,
    PaymentRequired,
    RateLimitError,
)
from backend_x402.ledger.balance import BalanceOracle
from backend_x402.ledger.instructions import parse_pubkey
from backend_x402.ledger.payment_verifier import (
    InMemorySignatureRegistry,
    PaymentPolicy,
    PaymentProof,
    PaymentStatus,
    PaymentVerifier,
)
from backend_x402.ledger.rpc import SolanaRpcClient
from backend_x402.market_data.gateway import MarketDataGateway
from backend_x402.rate_limit.limiter import InMemoryRateLimitStore, RateDecision, RateLimiter
from backend_x402.x402_logging import bind_wallet, get_logger

logger = get_logger(__name__)

UNVERIFIED_DETAILS = "The provided payment signature could not be verified on the blockchain."
DEGRADED_MESSAGE = "I'm temporarily unavailable due to technical difficulties. Please try again in a moment."


class ChatGatewayController:
    def __init__(
        self,
        *,
        verifier: PaymentVerifier,
        balance: BalanceOracle,
        limiter: RateLimiter,
        router: IntentRouter,
        gateway: MarketDataGateway,
        composer: ResponseComposer,
        currency: str = "USDC",
        payment_memo: str | None = "X402 Chat Payment",
        closeables: tuple[Any, ...] = (),
    ) -> None:
        self.verifier = verifier
        self.balance = balance
        self.limiter = limiter
        self.router = router
        self.gateway = gateway
        self.composer = composer
        self.currency = currency
        self.payment_memo = payment_memo
        self._closeables = closeables

    @property
    def amount(self) -> Decimal:
        return self.verifier.policy.amount

    @property
    def recipient(self) -> str:
        return self.verifier.policy.recipient

    def _payment_error(self, cls: type, **kwargs: Any) -> Exception:
        return cls(amount=self.amount, currency=self.currency, recipient=self.recipient, **kwargs)

    @staticmethod
    def _require_wallet(wallet: str | None) -> str:
        wallet = (wallet or "").strip()
        if not wallet:
            raise MissingWalletAddress()
        try:
            parse_pubkey(wallet)
        except ValueError as e:
            raise InvalidWalletAddress() from e
        return wallet

    async def handle_chat(self, req: ChatRequest) -> ChatResponse | BalanceResponse:
        message = (req.message or "").strip()
        if not message:
            raise MissingMessage()
        wallet = self._require_wallet(req.wallet_address)
        log = bind_wallet(wallet, __name__)

        if req.check_balance:
            balance = await self.balance.get_balance(wallet)
            log.info("balance_checked", balance=str(balance))
            return BalanceResponse(
                balance=float(balance),
                sufficient_funds=balance >= self.amount,
                required_amount=float(self.amount),
            )

        signature = (req.payment_signature or "").strip()
        if not signature:
            log.info("payment_required")
            raise self._payment_error(PaymentRequired)
        proof = await self.verifier.check(PaymentProof(signature=signature), wallet)
        if proof.status is not PaymentStatus.VALID:
            raise self._payment_error(PaymentInvalid, details=UNVERIFIED_DETAILS)

        # Store calls may block on a database round trip.
        decision = await asyncio.to_thread(self.limiter.check_and_increment, wallet)
        if decision is RateDecision.RATE_LIMITED:
            raise RateLimitError()

        try:
            reply = await self.answer(message, req.conversation_history)
        except Exception:
            log.exception("chat_answer_failed")
            reply = DEGRADED_MESSAGE
        return ChatResponse(message=reply, cost=float(self.amount), currency=self.currency)

    async def answer(self, message: str, history: list[Any]) -> str:
        """Classify and dispatch a paid message."""
        classification = await self.router.classify(message)
        intent = classification.intent
        logger.info("chat_intent_classified", intent=intent.value)
        if not intent.is_market_data:
            return await self.composer.converse(message, history)
        try:
            snapshot = await self.gateway.fetch(classification)
        except Exception:
            logger.exception("market_data_fetch_failed", intent=intent.value)
            return MARKET_DATA_ERROR
        if snapshot is None:
            return unavailable_message(intent)
        return await self.composer.format(intent, snapshot)

    async def build_payment_transaction(self, wallet: str | None, memo: str | None = None) -> PaymentTransactionResponse:
        wallet = self._require_wallet(wallet)
        unsigned = await self.verifier.build_transfer_transaction(
            wallet, memo=memo if memo is not None else self.payment_memo
        )
        return PaymentTransactionResponse(
            transaction=unsigned.transaction,
            amount=float(unsigned.amount),
            currency=self.currency,
            recipient=self.recipient,
            source=unsigned.source,
            destination=unsigned.destination,
            blockhash=unsigned.blockhash,
        )

    async def submit_payment(self, signed_transaction: str) -> PaymentSubmitResponse:
        signature = await self.verifier.submit_signed_transaction(signed_transaction.strip())
        return PaymentSubmitResponse(signature=signature)

    async def close(self) -> None:
        for resource in self._closeables:
            try:
                await resource.close()
            except Exception as e:
                logger.warning("controller_close_failed", resource=type(resource).__name__, error=str(e))


def build_controller(settings: Settings) -> ChatGatewayController:
    """Wire the controller and its shared clients from settings."""
    rpc = SolanaRpcClient(settings.solana_rpc_url, timeout_sec=settings.rpc_timeout_sec)
    policy = PaymentPolicy(
        mint=settings.usdc_mint,
        recipient=settings.payment_recipient,
        amount=settings.payment_amount,
        decimals=settings.usdc_decimals,
    )
    verifier = PaymentVerifier(
        rpc,
        policy,
        commitment=settings.payment_commitment,
        min_signature_length=settings.min_signature_length,
        registry=InMemorySignatureRegistry(),
    )
    if settings.rate_limit_db_url:
        from backend_x402.rate_limit.sql_store import SqlRateLimitStore

        store = SqlRateLimitStore(settings.rate_limit_db_url)
    else:
        store = InMemoryRateLimitStore()
    limiter = RateLimiter(
        store,
        max_messages=settings.rate_limit_max_messages,
        window_sec=settings.rate_limit_window_sec,
    )
    gateway = MarketDataGateway(
        settings.coingecko_base_url,
        api_key=settings.coingecko_api_key,
        timeout_sec=settings.market_data_timeout_sec,
    )
    provider = CompletionProvider(
        settings.openai_api_key,
        settings.openai_model,
        temperature=settings.openai_temperature,
        max_tokens=settings.openai_max_tokens,
        timeout_sec=settings.completion_timeout_sec,
    )
    composer = ResponseComposer(amount=settings.payment_amount, recipient=settings.payment_recipient, provider=provider)
    controller = ChatGatewayController(
        verifier=verifier,
        balance=BalanceOracle(rpc, settings.usdc_mint),
        limiter=limiter,
        router=IntentRouter(search=gateway.search_tokens),
        gateway=gateway,
        composer=composer,
        currency=settings.payment_currency,
        payment_memo=settings.payment_memo,
        closeables=(rpc, gateway, provider),
    )
    logger.info(
        "controller_built",
        network=settings.solana_network,
        rpc_url=rpc.rpc_url,
        rate_limit_store=type(store).__name__,
        generative_available=provider.available,
    )
    return controller
