"""
Minimal async Solana JSON-RPC client over httpx.

Only the calls the payment gate needs: account lookup, token balance,
transaction lookup, latest blockhash and transaction submission. Raises
LedgerError on transport errors, non-2xx responses and JSON-RPC errors.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from backend_x402.config.env import mask_rpc_url
from backend_x402.core.exceptions import LedgerError
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

_request_ids = itertools.count(1)


def _build_rpc_body(method: str, params: list[Any]) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": next(_request_ids),
        "method": method,
        "params": params,
    }


class SolanaRpcClient:
    """
    Async JSON-RPC client bound to one RPC endpoint.

    Owns its httpx.AsyncClient unless one is injected (tests pass a client
    built on httpx.MockTransport).
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))

    @property
    def rpc_url(self) -> str:
        return mask_rpc_url(self._rpc_url)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call and return its `result` (may be None)."""
        body = _build_rpc_body(method, params)
        try:
            resp = await self._client.post(self._rpc_url, json=body)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("solana_rpc_transport_error", method=method, error=str(e))
            raise LedgerError(f"Solana RPC {method} failed") from e
        if not isinstance(data, dict):
            raise LedgerError(f"Solana RPC {method} returned a non-object response")
        if "error" in data:
            err = data["error"] or {}
            raise LedgerError(
                f"Solana RPC error: {err.get('message', err)} (code={err.get('code')})",
                code=err.get("code"),
            )
        return data.get("result")

    async def get_account_info(self, pubkey: str, *, commitment: str = "confirmed") -> dict[str, Any] | None:
        """Return the account object, or None when the account does not exist."""
        result = await self.call(
            "getAccountInfo",
            [pubkey, {"encoding": "base64", "commitment": commitment}],
        )
        if not isinstance(result, dict):
            raise LedgerError("Solana RPC getAccountInfo returned no result")
        return result.get("value")

    async def get_token_account_balance(self, pubkey: str, *, commitment: str = "confirmed") -> dict[str, Any]:
        """Return the UiTokenAmount of a token account (amount, decimals, uiAmountString)."""
        result = await self.call(
            "getTokenAccountBalance",
            [pubkey, {"commitment": commitment}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, dict):
            raise LedgerError("Solana RPC getTokenAccountBalance returned no value")
        return value

    async def get_transaction(self, signature: str, *, commitment: str = "finalized") -> dict[str, Any] | None:
        """Return the jsonParsed transaction, or None when it is unknown at this commitment."""
        result = await self.call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if result is not None and not isinstance(result, dict):
            raise LedgerError("Solana RPC getTransaction returned a malformed result")
        return result

    async def get_latest_blockhash(self, *, commitment: str = "finalized") -> str:
        result = await self.call("getLatestBlockhash", [{"commitment": commitment}])
        try:
            return str(result["value"]["blockhash"])
        except (KeyError, TypeError) as e:
            raise LedgerError("Solana RPC getLatestBlockhash returned no blockhash") from e

    async def send_transaction(self, signed_base64: str) -> str:
        """Submit a signed, base64-encoded transaction; return its signature."""
        result = await self.call(
            "sendTransaction",
            [signed_base64, {"encoding": "base64", "preflightCommitment": "confirmed"}],
        )
        if not isinstance(result, str):
            raise LedgerError("Solana RPC sendTransaction returned no signature")
        return result
