"""
Solana ledger package.

JSON-RPC access, SPL-token transfer building, payment verification and
USDC balance lookups. Everything the payment gate needs from the chain.
"""

from backend_x402.ledger.balance import BalanceOracle
from backend_x402.ledger.payment_verifier import (
    InMemorySignatureRegistry,
    PaymentPolicy,
    PaymentProof,
    PaymentStatus,
    PaymentVerifier,
    UnsignedTransfer,
)
from backend_x402.ledger.rpc import SolanaRpcClient

__all__ = [
    "BalanceOracle",
    "InMemorySignatureRegistry",
    "PaymentPolicy",
    "PaymentProof",
    "PaymentStatus",
    "PaymentVerifier",
    "SolanaRpcClient",
    "UnsignedTransfer",
]
