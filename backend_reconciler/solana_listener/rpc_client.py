"""
Ledger JSON-RPC request client.

Issues single HTTP calls to the Solana RPC endpoint with httpx and translates
every failure into TransientUpstreamError or PermanentUpstreamError. No retry
and no pacing here; see rpc.RetryingRpc for both.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from backend_reconciler.core.exceptions import PermanentUpstreamError, TransientUpstreamError
from backend_reconciler.recon_logging import get_logger
from backend_reconciler.utils.retry import RETRYABLE_STATUS_CODES
from backend_reconciler.utils.wallet_utils import is_valid_wallet

logger = get_logger(__name__)

DEFAULT_COMMITMENT = "finalized"
MAX_SIGNATURES_PER_REQUEST = 1000

# JSON-RPC error codes that are worth retrying (node behind, rate limited upstream)
TRANSIENT_RPC_CODES = frozenset({-32005, -32014, -32016, 429})
TRANSIENT_MESSAGE_MARKERS = ("429", "too many requests", "timeout", "timed out", "long-term", "rate limit")


def _is_transient_rpc_error(code: Any, message: str) -> bool:
    if code in TRANSIENT_RPC_CODES:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_MESSAGE_MARKERS)


class SolanaRpcClient:
    """Thin async JSON-RPC client over one endpoint."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        commitment: str = DEFAULT_COMMITMENT,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.rstrip("/")
        self._commitment = commitment
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _build_body(self, method: str, params: list[Any]) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

    async def call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call and return `result` (may be None)."""
        body = self._build_body(method, params)
        try:
            resp = await self._client.post(self._rpc_url, json=body)
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"{method} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"{method} transport error: {e}") from e

        status = resp.status_code
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            raise TransientUpstreamError(f"{method} returned HTTP {status}", status_code=status)
        if status >= 400:
            raise PermanentUpstreamError(f"{method} returned HTTP {status}", status_code=status)

        try:
            data = resp.json()
        except ValueError as e:
            raise TransientUpstreamError(f"{method} returned a non-JSON body") from e

        if isinstance(data, dict) and data.get("error"):
            err = data["error"]
            code = err.get("code") if isinstance(err, dict) else None
            message = str(err.get("message", err)) if isinstance(err, dict) else str(err)
            text = f"Solana RPC error: {message} (code={code})"
            if _is_transient_rpc_error(code, message):
                raise TransientUpstreamError(text, status_code=status)
            raise PermanentUpstreamError(text, status_code=status)
        if not isinstance(data, dict) or "result" not in data:
            raise TransientUpstreamError(f"{method} returned no result")
        return data["result"]

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int,
        before: str | None = None,
    ) -> list[dict[str, Any]]:
        """getSignaturesForAddress, newest first."""
        if not is_valid_wallet(address):
            raise PermanentUpstreamError(f"Invalid address: {address!r}")
        if not (1 <= limit <= MAX_SIGNATURES_PER_REQUEST):
            raise PermanentUpstreamError(f"limit must be between 1 and {MAX_SIGNATURES_PER_REQUEST}")
        opts: dict[str, Any] = {"limit": limit, "commitment": self._commitment}
        if before is not None:
            opts["before"] = before
        result = await self.call("getSignaturesForAddress", [address, opts])
        return result if isinstance(result, list) else []

    async def get_parsed_transaction(self, signature: str) -> dict[str, Any] | None:
        """getTransaction with jsonParsed encoding; None when the node has no record."""
        opts = {
            "encoding": "jsonParsed",
            "commitment": self._commitment,
            "maxSupportedTransactionVersion": 0,
        }
        result = await self.call("getTransaction", [signature, opts])
        return result if isinstance(result, dict) else None
