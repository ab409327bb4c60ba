"""
Application-level exceptions.

Every error the gateway can answer with carries its HTTP status code and
renders its own JSON body via to_payload(). UpstreamUnavailable is the one
exception that never reaches a client: callers degrade to deterministic
output instead.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class X402Error(Exception):
    """Base class for gateway errors."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class InternalError(X402Error):
    """Unhandled failure; the client only sees a generic message."""


class InputError(X402Error):
    status_code = 400
    default_message = "Invalid request"


class MissingMessage(InputError):
    default_message = "Message is required"


class MissingWalletAddress(InputError):
    status_code = 401
    default_message = "Wallet address is required for X402 access"


class InvalidWalletAddress(InputError):
    default_message = "Invalid Solana wallet address"


class InvalidRequestBody(InputError):
    default_message = "Invalid request body"


class AccountMissing(InputError):
    default_message = "User does not have a USDC token account. Please ensure you have USDC tokens."


class PaymentError(X402Error):
    """402: always recoverable by retrying with a fresh payment."""

    status_code = 402
    default_message = "Payment required"
    instructions = "Please complete USDC payment to continue the conversation"

    def __init__(
        self,
        *,
        amount: Decimal,
        currency: str,
        recipient: str,
        message: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.amount = amount
        self.currency = currency
        self.recipient = recipient
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.message,
            "paymentRequired": True,
            "amount": float(self.amount),
            "currency": self.currency,
            "recipient": self.recipient,
            "message": self.instructions,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class PaymentRequired(PaymentError):
    """No payment signature supplied."""


class PaymentInvalid(PaymentError):
    """A signature was supplied but did not verify."""

    default_message = "Invalid payment signature"
    instructions = "Payment verification failed. Please complete a new payment."


class RateLimitError(X402Error):
    status_code = 429
    default_message = "Rate limit exceeded. Please wait before sending more messages."


class LedgerError(X402Error):
    """Solana RPC transport or JSON-RPC error."""

    status_code = 502
    default_message = "Solana RPC request failed"

    def __init__(self, message: str | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class BalanceUnavailable(X402Error):
    default_message = "Failed to check USDC balance"


class UpstreamUnavailable(X402Error):
    """Market data or completion provider failed. Never rendered to clients."""

    status_code = 503
    default_message = "Upstream provider unavailable"
