"""
USDC balance lookups for the balance-check side channel.

A wallet without a USDC associated token account has a balance of 0, not an error.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from backend_x402.core.exceptions import BalanceUnavailable, InvalidWalletAddress, LedgerError
from backend_x402.ledger.instructions import get_associated_token_address, parse_pubkey
from backend_x402.ledger.rpc import SolanaRpcClient
from backend_x402.x402_logging import get_logger
from backend_x402.x402_logging.logger import short_id

logger = get_logger(__name__)


class BalanceOracle:
    def __init__(self, rpc: SolanaRpcClient, mint: str) -> None:
        self._rpc = rpc
        self._mint = parse_pubkey(mint)

    async def get_balance(self, wallet: str) -> Decimal:
        try:
            owner = parse_pubkey(wallet)
        except ValueError as e:
            raise InvalidWalletAddress() from e
        token_account = str(get_associated_token_address(owner, self._mint))
        try:
            if await self._rpc.get_account_info(token_account) is None:
                logger.info("usdc_account_not_found", wallet_id=short_id(wallet), token_account=token_account)
                return Decimal(0)
            value = await self._rpc.get_token_account_balance(token_account)
        except LedgerError as e:
            logger.warning("usdc_balance_lookup_failed", wallet_id=short_id(wallet), error=str(e))
            raise BalanceUnavailable() from e

        raw = value.get("uiAmountString")
        if raw is None:
            raw = value.get("uiAmount")
        if raw is None:
            return Decimal(0)
        try:
            balance = Decimal(str(raw))
        except InvalidOperation as e:
            raise BalanceUnavailable() from e
        logger.debug("usdc_balance", wallet_id=short_id(wallet), balance=str(balance))
        return balance

    async def has_sufficient_funds(self, wallet: str, required: Decimal) -> bool:
        return await self.get_balance(wallet) >= Decimal(required)
