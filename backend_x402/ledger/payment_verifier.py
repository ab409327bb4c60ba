"""
USDC payment verification against the Solana ledger.

Builds unsigned USDC transfer transactions for the wallet to sign, and
verifies settled payment signatures. Verification fails closed: anything
short of a successful transaction that moves at least the policy amount of
USDC from the payer's token account to the recipient's token account is
rejected, and a signature is accepted as payment for one message only.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Protocol

from solders.signature import Signature

from backend_x402.core.exceptions import AccountMissing, InvalidWalletAddress, LedgerError
from backend_x402.ledger.instructions import (
    TOKEN_PROGRAM_ID,
    build_memo_instruction,
    build_transfer_instruction,
    build_unsigned_transaction,
    get_associated_token_address,
    parse_pubkey,
    to_raw_amount,
)
from backend_x402.ledger.rpc import SolanaRpcClient
from backend_x402.x402_logging import get_logger
from backend_x402.x402_logging.logger import short_id

logger = get_logger(__name__)

DEFAULT_MIN_SIGNATURE_LENGTH = 64
VALID_COMMITMENTS = ("processed", "confirmed", "finalized")
TRANSFER_TYPES = ("transfer", "transferChecked")


class PaymentStatus(str, Enum):
    UNVERIFIED = "unverified"
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class PaymentProof:
    """A payment signature and its verification outcome. Resolves exactly once."""

    signature: str
    status: PaymentStatus = PaymentStatus.UNVERIFIED
    reason: str | None = None

    @property
    def resolved(self) -> bool:
        return self.status is not PaymentStatus.UNVERIFIED

    def resolve(self, status: PaymentStatus, reason: str | None = None) -> "PaymentProof":
        if self.resolved:
            raise RuntimeError(f"payment proof already resolved as {self.status.value}")
        if status is PaymentStatus.UNVERIFIED:
            raise ValueError("a proof can only resolve to valid or invalid")
        self.status = status
        self.reason = reason
        return self


@dataclass(frozen=True)
class PaymentPolicy:
    """What a payment must look like: asset, recipient and minimum raw amount."""

    mint: str
    recipient: str
    amount: Decimal
    decimals: int = 6

    @property
    def raw_amount(self) -> int:
        return to_raw_amount(self.amount, self.decimals)

    def recipient_token_account(self) -> str:
        return str(get_associated_token_address(parse_pubkey(self.recipient), parse_pubkey(self.mint)))

    def payer_token_account(self, payer: str) -> str:
        return str(get_associated_token_address(parse_pubkey(payer), parse_pubkey(self.mint)))


@dataclass(frozen=True)
class UnsignedTransfer:
    transaction: str  # base64, unsigned
    payer: str
    source: str
    destination: str
    amount: Decimal
    raw_amount: int
    blockhash: str
    memo: str | None


class SignatureRegistry(Protocol):
    """Signatures already accepted as payment."""

    def is_claimed(self, signature: str) -> bool: ...

    def claim(self, signature: str) -> bool:
        """Atomically mark the signature used; False if it already was."""
        ...


class InMemorySignatureRegistry:
    """Process-lifetime registry; single-instance deployments only."""

    def __init__(self) -> None:
        self._claimed: set[str] = set()
        self._lock = threading.Lock()

    def is_claimed(self, signature: str) -> bool:
        with self._lock:
            return signature in self._claimed

    def claim(self, signature: str) -> bool:
        with self._lock:
            if signature in self._claimed:
                return False
            self._claimed.add(signature)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)


def _account_keys(tx: dict[str, Any]) -> list[str]:
    message = (tx.get("transaction") or {}).get("message") or {}
    keys: list[str] = []
    for key in message.get("accountKeys") or []:
        if isinstance(key, dict):
            keys.append(str(key.get("pubkey", "")))
        else:
            keys.append(str(key))
    return keys


def _iter_parsed_instructions(tx: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Top-level instructions first, then inner (CPI) instructions."""
    message = (tx.get("transaction") or {}).get("message") or {}
    for ix in message.get("instructions") or []:
        if isinstance(ix, dict):
            yield ix
    for group in (tx.get("meta") or {}).get("innerInstructions") or []:
        for ix in (group or {}).get("instructions") or []:
            if isinstance(ix, dict):
                yield ix


def _token_account_mints(tx: dict[str, Any]) -> dict[str, str]:
    """Map token account address -> mint from pre/post token balances."""
    keys = _account_keys(tx)
    meta = tx.get("meta") or {}
    mints: dict[str, str] = {}
    for entry in (meta.get("preTokenBalances") or []) + (meta.get("postTokenBalances") or []):
        try:
            index = int(entry["accountIndex"])
            mints[keys[index]] = str(entry["mint"])
        except (KeyError, IndexError, TypeError, ValueError):
            continue
    return mints


def _transfer_amount(info: dict[str, Any]) -> int | None:
    raw = info.get("amount")
    if raw is None:
        raw = (info.get("tokenAmount") or {}).get("amount")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class PaymentVerifier:
    """
    Stateless per call apart from the signature registry.

    Args:
        rpc: Solana JSON-RPC client.
        policy: required asset, recipient and amount.
        commitment: commitment a payment transaction must have reached.
        min_signature_length: shorter signatures are rejected without an RPC call.
        registry: signatures already accepted as payment.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        policy: PaymentPolicy,
        *,
        commitment: str = "finalized",
        min_signature_length: int = DEFAULT_MIN_SIGNATURE_LENGTH,
        registry: SignatureRegistry | None = None,
    ) -> None:
        if commitment not in VALID_COMMITMENTS:
            raise ValueError(f"commitment must be one of {VALID_COMMITMENTS}")
        self._rpc = rpc
        self._policy = policy
        self._commitment = commitment
        self._min_signature_length = min_signature_length
        self._registry = registry if registry is not None else InMemorySignatureRegistry()

    @property
    def policy(self) -> PaymentPolicy:
        return self._policy

    async def build_transfer_transaction(
        self,
        payer: str,
        amount: Decimal | None = None,
        memo: str | None = "X402 Chat Payment",
    ) -> UnsignedTransfer:
        """
        Build an unsigned USDC transfer from payer to the policy recipient.

        Raises AccountMissing if the payer has no USDC token account.
        """
        try:
            payer_key = parse_pubkey(payer)
        except ValueError as e:
            raise InvalidWalletAddress() from e
        mint = parse_pubkey(self._policy.mint)
        recipient = parse_pubkey(self._policy.recipient)
        source = get_associated_token_address(payer_key, mint)
        destination = get_associated_token_address(recipient, mint)

        if await self._rpc.get_account_info(str(source)) is None:
            logger.info("payment_source_account_missing", wallet_id=short_id(payer), source=str(source))
            raise AccountMissing()
        if await self._rpc.get_account_info(str(destination)) is None:
            # The transfer fails on-chain in that case; the wallet reports it.
            logger.warning("payment_recipient_account_missing", destination=str(destination))

        ui_amount = self._policy.amount if amount is None else Decimal(amount)
        raw_amount = to_raw_amount(ui_amount, self._policy.decimals)
        instructions = []
        if memo:
            instructions.append(build_memo_instruction(memo))
        instructions.append(build_transfer_instruction(source, destination, payer_key, raw_amount))

        blockhash = await self._rpc.get_latest_blockhash()
        transaction = build_unsigned_transaction(instructions, payer_key, blockhash)
        logger.info(
            "payment_transaction_built",
            wallet_id=short_id(payer),
            raw_amount=raw_amount,
            destination=str(destination),
        )
        return UnsignedTransfer(
            transaction=transaction,
            payer=str(payer_key),
            source=str(source),
            destination=str(destination),
            amount=ui_amount,
            raw_amount=raw_amount,
            blockhash=blockhash,
            memo=memo or None,
        )

    async def submit_signed_transaction(self, signed_base64: str) -> str:
        """Relay a wallet-signed transaction to the ledger."""
        signature = await self._rpc.send_transaction(signed_base64)
        logger.info("payment_transaction_submitted", signature=short_id(signature, 16))
        return signature

    async def verify(self, signature: str, payer: str) -> bool:
        proof = await self.check(PaymentProof(signature=signature), payer)
        return proof.status is PaymentStatus.VALID

    async def check(self, proof: PaymentProof, payer: str) -> PaymentProof:
        """Resolve an unverified proof to VALID or INVALID. Resolved proofs are returned untouched."""
        if proof.resolved:
            return proof
        reason = await self._rejection_reason(proof.signature, payer)
        if reason is None and not self._registry.claim(proof.signature):
            reason = "signature_already_used"
        if reason is None:
            logger.info("payment_verified", wallet_id=short_id(payer), signature=short_id(proof.signature, 16))
            return proof.resolve(PaymentStatus.VALID)
        logger.info(
            "payment_rejected",
            wallet_id=short_id(payer),
            signature=short_id(proof.signature, 16),
            reason=reason,
        )
        return proof.resolve(PaymentStatus.INVALID, reason)

    async def _rejection_reason(self, signature: str, payer: str) -> str | None:
        signature = (signature or "").strip()
        if len(signature) < self._min_signature_length:
            return "signature_too_short"
        try:
            Signature.from_string(signature)
        except Exception:
            return "signature_malformed"
        if self._registry.is_claimed(signature):
            return "signature_already_used"
        try:
            source = self._policy.payer_token_account(payer)
        except ValueError:
            return "payer_malformed"

        try:
            tx = await self._rpc.get_transaction(signature, commitment=self._commitment)
        except LedgerError as e:
            logger.warning("payment_lookup_failed", signature=short_id(signature, 16), error=str(e))
            return "ledger_unavailable"
        if tx is None:
            return "transaction_not_found"
        meta = tx.get("meta")
        if not isinstance(meta, dict):
            return "transaction_meta_missing"
        if meta.get("err") is not None:
            return "transaction_failed"
        if not self._has_matching_transfer(tx, payer, source):
            return "transfer_mismatch"
        return None

    def _has_matching_transfer(self, tx: dict[str, Any], payer: str, source: str) -> bool:
        destination = self._policy.recipient_token_account()
        mints = _token_account_mints(tx)
        for ix in _iter_parsed_instructions(tx):
            if ix.get("programId") != str(TOKEN_PROGRAM_ID):
                continue
            parsed = ix.get("parsed")
            if not isinstance(parsed, dict) or parsed.get("type") not in TRANSFER_TYPES:
                continue
            info = parsed.get("info") or {}
            if info.get("source") != source or info.get("destination") != destination:
                continue
            if (info.get("authority") or info.get("multisigAuthority")) != payer:
                continue
            mint = info.get("mint") or mints.get(destination)
            if mint != self._policy.mint:
                continue
            amount = _transfer_amount(info)
            if amount is None or amount < self._policy.raw_amount:
                continue
            return True
        return False
