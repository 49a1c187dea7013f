"""Solana JSON-RPC implementation of the ledger capability."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.confirmation.models import ConfirmationState, ConfirmationStatus
from ..core.recovery.errors import RpcError, RpcErrorKind, kind_from_message
from .base import LedgerRpc

logger = logging.getLogger(__name__)

# JSON-RPC error codes providers use for rate limiting
RATE_LIMIT_CODES = {429, -32429}

_FINAL_STATES = {
    "processed": {"processed", "confirmed", "finalized"},
    "confirmed": {"confirmed", "finalized"},
    "finalized": {"finalized"},
}


class SolanaRpcClient(LedgerRpc):
    """
    Ledger capability backed by a Solana JSON-RPC endpoint.

    Every failure is raised as RpcError with a structured kind:
    - HTTP 429 or a rate-limit JSON-RPC code -> RATE_LIMITED
    - timeouts -> TIMEOUT, transport failures and 5xx -> NETWORK
    - anything else is classified from the error text as a last resort

    No retries happen here; pacing and failover belong to the caller.

    Usage:
        client = SolanaRpcClient("https://api.mainnet-beta.solana.com")
        blockhash = await client.get_latest_reference()
        signature = await client.submit(signed_tx_base64)
    """

    def __init__(
        self,
        endpoint: str,
        commitment: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.commitment = commitment or settings.rpc_commitment
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._client = client
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call and return its `result` member."""
        client = await self._get_client()
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        try:
            response = await client.post(
                self.endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise RpcError(f"{method} timed out: {e}", kind=RpcErrorKind.TIMEOUT, endpoint=self.endpoint) from e
        except httpx.TransportError as e:
            raise RpcError(f"{method} transport error: {e}", kind=RpcErrorKind.NETWORK, endpoint=self.endpoint) from e

        if response.status_code == 429:
            raise RpcError(
                f"{method} rate limited (HTTP 429)",
                kind=RpcErrorKind.RATE_LIMITED,
                code=429,
                endpoint=self.endpoint,
            )
        if response.status_code >= 500:
            raise RpcError(
                f"{method} HTTP error: {response.status_code}",
                kind=RpcErrorKind.NETWORK,
                code=response.status_code,
                endpoint=self.endpoint,
            )
        if response.status_code >= 400:
            raise RpcError(
                f"{method} HTTP error: {response.status_code}",
                kind=kind_from_message(response.text),
                code=response.status_code,
                endpoint=self.endpoint,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON", kind=RpcErrorKind.NETWORK, endpoint=self.endpoint) from e

        if "error" in data:
            error = data["error"] or {}
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if code in RATE_LIMIT_CODES:
                kind = RpcErrorKind.RATE_LIMITED
            else:
                kind = kind_from_message(message)
            raise RpcError(f"RPC error: {message}", kind=kind, code=code, endpoint=self.endpoint)

        return data.get("result")

    async def get_latest_reference(self) -> Dict[str, Any]:
        result = await self._rpc_call("getLatestBlockhash", [{"commitment": self.commitment}])
        value = (result or {}).get("value", {})
        return {
            "blockhash": value.get("blockhash"),
            "last_valid_block_height": value.get("lastValidBlockHeight"),
        }

    async def get_account_balance(self, account_id: str) -> int:
        result = await self._rpc_call("getBalance", [account_id, {"commitment": self.commitment}])
        return int((result or {}).get("value", 0))

    async def submit(self, signed_payload: Any) -> str:
        options = {
            "encoding": "base64",
            "skipPreflight": False,
            "preflightCommitment": self.commitment,
            "maxRetries": 0,
        }
        signature = await self._rpc_call("sendTransaction", [signed_payload, options])
        if not signature:
            raise RpcError("No signature returned from sendTransaction", endpoint=self.endpoint)
        return signature

    async def get_confirmation_status(self, identifier: str) -> ConfirmationStatus:
        result = await self._rpc_call(
            "getSignatureStatuses",
            [[identifier], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or [None]
        status = values[0]

        if status is None:
            return ConfirmationStatus.pending()

        slot = status.get("slot")
        if status.get("err") is not None:
            return ConfirmationStatus(state=ConfirmationState.FAILURE, detail=str(status["err"]), slot=slot)

        reached = status.get("confirmationStatus")
        if reached in _FINAL_STATES.get(self.commitment, _FINAL_STATES["confirmed"]):
            return ConfirmationStatus(state=ConfirmationState.SUCCESS, detail=reached, slot=slot)

        return ConfirmationStatus(state=ConfirmationState.PENDING, detail=reached, slot=slot)


async def solana_probe(
    endpoint: str,
    timeout_s: Optional[float] = None,
    commitment: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Health probe: fetch the latest blockhash over a fresh connection."""
    timeout_s = timeout_s or settings.request_timeout_seconds
    async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as http:
        client = SolanaRpcClient(endpoint, commitment=commitment, timeout_s=timeout_s, client=http)
        return await client.get_latest_reference()
