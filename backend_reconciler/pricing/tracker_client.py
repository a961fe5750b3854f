"""
Solana Tracker price API client (httpx).

Historical price at a timestamp and current price for a token mint. Every
request is paced through this client's own RequestQueue and retried through
the shared RetryPolicy; 404 and "no data" responses are None, not errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from backend_reconciler.core.exceptions import PermanentUpstreamError, TransientUpstreamError
from backend_reconciler.recon_logging import get_logger
from backend_reconciler.utils.rate_limiter import RequestQueue
from backend_reconciler.utils.retry import RETRYABLE_STATUS_CODES, RetryPolicy

logger = get_logger(__name__)

BASE_URL = "https://data.solanatracker.io"
HISTORICAL_PATH = "/price/history/timestamp"
CURRENT_PATH = "/price"
DEFAULT_TIMEOUT_SEC = 60.0
DEFAULT_MIN_INTERVAL_SEC = 1.4
DEFAULT_MAX_RETRIES = 2
CURRENT_PRICE_POOL = "current-price-fallback"


@dataclass(frozen=True)
class PriceData:
    timestamp: int
    price: Decimal
    closest_timestamp: int
    closest_timestamp_unix: int
    pool: str

    @classmethod
    def from_historical(cls, data: Any) -> "PriceData | None":
        """None when the API answers with null price fields (no data for that time)."""
        if not isinstance(data, dict):
            return None
        price = data.get("price")
        closest = data.get("closest_timestamp")
        pool = data.get("pool")
        timestamp = data.get("timestamp")
        if price is None or closest is None or pool is None or timestamp is None:
            return None
        return cls(
            timestamp=int(timestamp),
            price=Decimal(str(price)),
            closest_timestamp=int(closest),
            closest_timestamp_unix=int(data.get("closest_timestamp_unix") or timestamp),
            pool=str(pool),
        )

    @classmethod
    def from_current(cls, data: Any) -> "PriceData | None":
        """/price reports lastUpdated in milliseconds."""
        if not isinstance(data, dict):
            return None
        price = data.get("price")
        last_updated = data.get("lastUpdated")
        if price is None or last_updated is None:
            return None
        return cls(
            timestamp=int(last_updated) // 1000,
            price=Decimal(str(price)),
            closest_timestamp=int(last_updated),
            closest_timestamp_unix=int(last_updated) // 1000,
            pool=CURRENT_PRICE_POOL,
        )


class SolanaTrackerApiClient:
    def __init__(
        self,
        api_key: str,
        instance_id: str,
        *,
        policy: RetryPolicy | None = None,
        queue: RequestQueue | None = None,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = BASE_URL,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        min_interval_sec: float = DEFAULT_MIN_INTERVAL_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._api_key = api_key
        self.instance_id = instance_id
        self._policy = policy or RetryPolicy()
        self._queue = queue or RequestQueue(min_interval_sec, name=f"pricing-{instance_id}")
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries

    async def _request(self, path: str, params: dict[str, str]) -> Any | None:
        url = f"{self._base_url}{path}"
        headers = {"x-api-key": self._api_key, "Content-Type": "application/json"}
        try:
            response = await self._http.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"{path} timed out") from e
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"{path} transport error: {e}") from e
        status = response.status_code
        if status == 404:
            return None
        if status in RETRYABLE_STATUS_CODES:
            raise TransientUpstreamError(f"{path} returned {status}", status_code=status)
        if status >= 400:
            raise PermanentUpstreamError(f"{path} returned {status}", status_code=status)
        try:
            return response.json()
        except ValueError as e:
            raise PermanentUpstreamError(f"{path} returned a non-JSON body") from e

    async def _paced(self, path: str, params: dict[str, str], label: str) -> Any | None:
        return await self._policy.run(
            lambda: self._queue.enqueue(lambda: self._request(path, params)),
            f"{self.instance_id}:{label}",
            max_retries=self._max_retries,
        )

    async def get_historical_price(self, token_address: str, timestamp: int) -> PriceData | None:
        data = await self._paced(
            HISTORICAL_PATH,
            {"token": token_address, "timestamp": str(int(timestamp))},
            "historical",
        )
        result = PriceData.from_historical(data) if data is not None else None
        if result is None:
            logger.debug("price_historical_not_found", instance=self.instance_id, token=token_address)
        return result

    async def get_current_price(self, token_address: str) -> PriceData | None:
        data = await self._paced(CURRENT_PATH, {"token": token_address}, "current")
        result = PriceData.from_current(data) if data is not None else None
        if result is None:
            logger.debug("price_current_not_found", instance=self.instance_id, token=token_address)
        return result

    async def aclose(self) -> None:
        await self._queue.aclose()
        if self._owns_http:
            await self._http.aclose()
