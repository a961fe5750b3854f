"""
Token pricing on top of the load-balanced tracker clients.

A historical lookup that no client can answer falls back to the current price
re-stamped with the requested timestamp (latest known value). Batch lookups
apply the same fallback per missing item.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Sequence

from backend_reconciler.core.exceptions import AllClientsFailedError
from backend_reconciler.pricing.load_balancer import ApiLoadBalancer
from backend_reconciler.pricing.tracker_client import PriceData, SolanaTrackerApiClient
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

PriceRequest = tuple[str, int]
"""(token_address, unix timestamp)"""


class PricingService:
    def __init__(self, balancer: ApiLoadBalancer[SolanaTrackerApiClient]) -> None:
        self._balancer = balancer

    async def get_current_price(self, token_address: str) -> PriceData | None:
        try:
            return await self._balancer.execute(
                lambda c: c.get_current_price(token_address),
                "current",
                token=token_address,
            )
        except AllClientsFailedError:
            logger.warning("price_current_unavailable", token=token_address)
            return None

    async def get_historical_price(self, token_address: str, timestamp: int) -> PriceData | None:
        try:
            return await self._balancer.execute(
                lambda c: c.get_historical_price(token_address, timestamp),
                "historical",
                token=token_address,
                timestamp=timestamp,
            )
        except AllClientsFailedError:
            logger.debug("price_historical_fallback_current", token=token_address)
        current = await self.get_current_price(token_address)
        if current is None:
            logger.warning("price_all_strategies_failed", token=token_address, timestamp=timestamp)
            return None
        return replace(current, timestamp=int(timestamp))

    async def get_batch_historical_prices(
        self,
        requests: Sequence[PriceRequest],
    ) -> list[PriceData | None]:
        """Results in request order; misses are filled from the current price when possible."""
        results = await self._balancer.execute_batch(
            requests,
            lambda client, req: client.get_historical_price(req[0], req[1]),
        )
        missing = [i for i, r in enumerate(results) if r is None]
        if not missing:
            return results

        async def fill(i: int) -> None:
            token, timestamp = requests[i]
            current = await self.get_current_price(token)
            if current is not None:
                results[i] = replace(current, timestamp=int(timestamp))

        await asyncio.gather(*(fill(i) for i in missing))
        logger.debug(
            "price_batch_done",
            requested=len(requests),
            fallbacks=len(missing),
            unresolved=sum(1 for r in results if r is None),
        )
        return results

    def get_stats(self) -> dict[str, Any]:
        return {"load_balancer": self._balancer.get_stats()}

    async def aclose(self) -> None:
        for client in self._balancer.clients:
            await client.aclose()
