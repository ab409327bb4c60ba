"""
SPL-token transfer building blocks.

- Associated token account (ATA) derivation: seeds [owner, token_program, mint].
- SPL Token `Transfer` instruction: tag 3 + u64 amount (little endian).
- SPL Memo instruction: UTF-8 memo bytes, no accounts.
- Unsigned legacy transaction (fee payer = payer) serialized as base64.
"""

from __future__ import annotations

import base64
import struct
from decimal import ROUND_DOWN, Decimal

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")

# SPL Token instruction tags
TRANSFER_TAG = 3


def parse_pubkey(value: str) -> Pubkey:
    """Parse a base58 public key; raise ValueError when malformed."""
    raw = (value or "").strip()
    if not raw:
        raise ValueError("public key must be non-empty")
    try:
        return Pubkey.from_string(raw)
    except Exception as e:
        raise ValueError(f"Invalid Solana public key: {raw[:16]}") from e


def get_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    seeds = [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)]
    ata, _ = Pubkey.find_program_address(seeds, ASSOCIATED_TOKEN_PROGRAM_ID)
    return ata


def to_raw_amount(amount: Decimal, decimals: int) -> int:
    """UI amount -> smallest token units, rounded down."""
    scaled = (Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def build_transfer_instruction(source: Pubkey, destination: Pubkey, owner: Pubkey, amount: int) -> Instruction:
    if amount < 0:
        raise ValueError("transfer amount must be non-negative")
    data = bytes([TRANSFER_TAG]) + struct.pack("<Q", amount)
    accounts = [
        AccountMeta(pubkey=source, is_signer=False, is_writable=True),
        AccountMeta(pubkey=destination, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id=TOKEN_PROGRAM_ID, data=data, accounts=accounts)


def build_memo_instruction(memo: str) -> Instruction:
    return Instruction(program_id=MEMO_PROGRAM_ID, data=memo.encode("utf-8"), accounts=[])


def build_unsigned_transaction(instructions: list[Instruction], payer: Pubkey, blockhash: str) -> str:
    """Return the unsigned transaction as base64 for the wallet to sign."""
    message = Message.new_with_blockhash(instructions, payer, Hash.from_string(blockhash))
    tx = Transaction.new_unsigned(message)
    return base64.b64encode(bytes(tx)).decode("ascii")
