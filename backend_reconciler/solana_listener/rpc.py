"""
Retrying RPC wrapper: request client + request queue + retry policy.

Every attempt (including retries) is submitted through the RequestQueue, so
backoff never bypasses the minimum request spacing of the endpoint.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

import httpx

from backend_reconciler.core.exceptions import (
    PermanentUpstreamError,
    TransientUpstreamError,
    UpstreamError,
)
from backend_reconciler.solana_listener.models import SignatureInfo
from backend_reconciler.solana_listener.rpc_client import SolanaRpcClient
from backend_reconciler.utils.rate_limiter import RequestQueue
from backend_reconciler.utils.retry import RetryPolicy

T = TypeVar("T")


class RetryingRpc:
    """Paced, retrying access to the ledger RPC."""

    def __init__(
        self,
        client: SolanaRpcClient,
        queue: RequestQueue,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._queue = queue
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "request",
        max_retries: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        """
        Run operation through the queue, retrying transient failures.

        Network failures that outlive the retry budget surface as
        TransientUpstreamError and other HTTP failures as PermanentUpstreamError,
        each chained from the underlying exception.
        """
        try:
            return await self._policy.run(
                lambda: self._queue.enqueue(operation),
                label,
                max_retries=max_retries,
                base_delay_sec=base_delay,
            )
        except UpstreamError:
            raise
        except Exception as e:
            status_code = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
            if self._policy.is_transient(e):
                raise TransientUpstreamError(f"{label} failed: {e}", status_code=status_code) from e
            if isinstance(e, httpx.HTTPError):
                raise PermanentUpstreamError(f"{label} failed: {e}", status_code=status_code) from e
            raise

    async def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int,
        before: str | None = None,
    ) -> list[SignatureInfo]:
        raw = await self.execute(
            lambda: self._client.get_signatures_for_address(address, limit=limit, before=before),
            "getSignaturesForAddress",
        )
        infos: list[SignatureInfo] = []
        for item in raw:
            if isinstance(item, dict) and "signature" in item:
                infos.append(SignatureInfo.from_rpc_item(item))
        return infos

    async def get_parsed_transaction(self, signature: str) -> dict[str, Any] | None:
        return await self.execute(
            lambda: self._client.get_parsed_transaction(signature),
            "getParsedTransaction",
        )
