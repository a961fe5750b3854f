"""
Round-robin load balancer over several credentialed API clients.

execute() tries every client once, starting from a shared index that advances
on every attempt whatever the outcome, and returns the first non-None result.
When every client fails or returns None it raises AllClientsFailedError so the
caller can apply its own fallback. execute_batch() partitions a batch
statically (request i goes to client i % n) instead of balancing per request.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from backend_reconciler.core.exceptions import AllClientsFailedError
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

C = TypeVar("C")
R = TypeVar("R")
T = TypeVar("T")


def _client_id(client: Any, position: int) -> str:
    return str(getattr(client, "instance_id", position))


class ApiLoadBalancer(Generic[C]):
    def __init__(self, clients: Sequence[C]) -> None:
        if not clients:
            raise ValueError("ApiLoadBalancer requires at least one client")
        self._clients = list(clients)
        self._index = 0

    @property
    def clients(self) -> list[C]:
        return list(self._clients)

    def _next_client(self) -> tuple[int, C]:
        position = self._index
        self._index = (self._index + 1) % len(self._clients)
        return position, self._clients[position]

    async def execute(
        self,
        operation: Callable[[C], Awaitable[T | None]],
        operation_type: str = "request",
        **context: Any,
    ) -> T:
        """First non-None result across clients. Raises AllClientsFailedError."""
        errors: list[str] = []
        for _ in range(len(self._clients)):
            position, client = self._next_client()
            try:
                result = await operation(client)
            except Exception as e:
                errors.append(f"{_client_id(client, position)}: {e}")
                logger.debug(
                    "load_balancer_client_failed",
                    operation_type=operation_type,
                    instance=_client_id(client, position),
                    error=str(e),
                )
                continue
            if result is not None:
                return result
        logger.error(
            "load_balancer_all_failed",
            operation_type=operation_type,
            instances=len(self._clients),
            errors=errors,
            **context,
        )
        raise AllClientsFailedError(f"All API instances failed for {operation_type} request")

    async def execute_batch(
        self,
        requests: Sequence[R],
        operation: Callable[[C, R], Awaitable[T | None]],
    ) -> list[T | None]:
        """Results in input order; a failed request yields None."""
        if not requests:
            return []
        n = len(self._clients)
        chunks: list[list[R]] = [list(requests[i::n]) for i in range(n)]

        async def run_chunk(position: int, chunk: list[R]) -> list[T | None]:
            client = self._clients[position]
            out: list[T | None] = []
            for request in chunk:
                try:
                    out.append(await operation(client, request))
                except Exception as e:
                    logger.warning(
                        "load_balancer_batch_request_failed",
                        instance=_client_id(client, position),
                        error=str(e),
                    )
                    out.append(None)
            return out

        chunk_results = await asyncio.gather(
            *(run_chunk(position, chunk) for position, chunk in enumerate(chunks))
        )
        return [chunk_results[i % n][i // n] for i in range(len(requests))]

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_instances": len(self._clients),
            "instances": [_client_id(c, i) for i, c in enumerate(self._clients)],
            "current_round_robin_index": self._index,
        }
