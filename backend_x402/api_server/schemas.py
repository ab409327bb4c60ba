"""
Request and response bodies for the chat gateway routes.

Field names on the wire are camelCase; Python attributes are snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConversationTurn(_CamelModel):
    """One prior turn. Turns with role "error" are client-side failures and never reach the provider."""

    role: str = Field(..., description="user | assistant | error")
    content: str = Field("", description="Turn text")
    timestamp: str | int | float | None = Field(None, description="Client timestamp (opaque)")


class ChatRequest(_CamelModel):
    """POST /api/x402-chatbot body. Presence of message and wallet is checked by the controller."""

    message: str | None = Field(None, description="User message")
    wallet_address: str | None = Field(None, alias="walletAddress", description="Payer wallet (base58)")
    payment_signature: str | None = Field(None, alias="paymentSignature", description="USDC payment signature")
    conversation_history: list[ConversationTurn] = Field(default_factory=list, alias="conversationHistory")
    check_balance: bool = Field(False, alias="checkBalance", description="Return the USDC balance instead of chatting")


class ChatResponse(_CamelModel):
    message: str
    payment_verified: bool = Field(True, alias="paymentVerified")
    cost: float
    currency: str = "USDC"


class BalanceResponse(_CamelModel):
    balance: float
    sufficient_funds: bool = Field(..., alias="sufficientFunds")
    required_amount: float = Field(..., alias="requiredAmount")


class PaymentTransactionRequest(_CamelModel):
    """POST /api/x402-chatbot/payment-transaction body."""

    wallet_address: str | None = Field(None, alias="walletAddress")
    memo: str | None = Field(None, max_length=256)


class PaymentTransactionResponse(_CamelModel):
    transaction: str = Field(..., description="Unsigned transaction, base64")
    amount: float
    currency: str = "USDC"
    recipient: str
    source: str = Field(..., description="Payer USDC token account")
    destination: str = Field(..., description="Recipient USDC token account")
    blockhash: str


class PaymentSubmitRequest(_CamelModel):
    transaction: str = Field(..., min_length=1, description="Wallet-signed transaction, base64")


class PaymentSubmitResponse(_CamelModel):
    signature: str
