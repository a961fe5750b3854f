"""
Tests for the tracker price client and PricingService fallbacks (httpx.MockTransport).
"""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from backend_reconciler.core.exceptions import PermanentUpstreamError
from backend_reconciler.pricing.load_balancer import ApiLoadBalancer
from backend_reconciler.pricing.service import PricingService
from backend_reconciler.pricing.tracker_client import (
    CURRENT_PRICE_POOL,
    PriceData,
    SolanaTrackerApiClient,
)
from backend_reconciler.utils.retry import RetryPolicy

MINT = "So11111111111111111111111111111111111111112"

HISTORICAL = {
    "price": 150.25,
    "timestamp": 1_700_000_000,
    "closest_timestamp": 1_699_999_990,
    "closest_timestamp_unix": 1_699_999_990,
    "pool": "pool-1",
}
CURRENT = {"price": 160.5, "lastUpdated": 1_700_100_000_000}

FAST_POLICY = RetryPolicy(base_delay_sec=0, jitter_sec=0)


def _client(handler, instance_id: str = "PRIMARY") -> SolanaTrackerApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SolanaTrackerApiClient(
        "key",
        instance_id,
        policy=FAST_POLICY,
        http_client=http,
        min_interval_sec=0,
    )


def test_price_data_parsing():
    hist = PriceData.from_historical(HISTORICAL)
    assert hist.price == Decimal("150.25")
    assert hist.pool == "pool-1"
    assert PriceData.from_historical({**HISTORICAL, "price": None}) is None

    current = PriceData.from_current(CURRENT)
    assert current.timestamp == 1_700_100_000
    assert current.pool == CURRENT_PRICE_POOL


@pytest.mark.asyncio
async def test_client_sends_key_and_params():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=HISTORICAL)

    client = _client(handler)
    price = await client.get_historical_price(MINT, 1_700_000_000)
    await client.aclose()

    assert price.price == Decimal("150.25")
    assert seen[0].headers["x-api-key"] == "key"
    assert seen[0].url.path == "/price/history/timestamp"
    assert seen[0].url.params["timestamp"] == "1700000000"


@pytest.mark.asyncio
async def test_client_404_is_none_and_429_is_retried():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if request.url.path == "/price":
            return httpx.Response(404)
        if calls["n"] == 1:
            return httpx.Response(429)
        return httpx.Response(200, json=HISTORICAL)

    client = _client(handler)
    assert await client.get_current_price(MINT) is None
    assert (await client.get_historical_price(MINT, 1)).pool == "pool-1"
    await client.aclose()


@pytest.mark.asyncio
async def test_client_auth_failure_is_permanent():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(401)

    client = _client(handler)
    with pytest.raises(PermanentUpstreamError):
        await client.get_current_price(MINT)
    assert calls["n"] == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_historical_falls_back_to_current_price_with_requested_timestamp():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/price":
            return httpx.Response(200, json=CURRENT)
        return httpx.Response(200, json={**HISTORICAL, "price": None})

    service = PricingService(ApiLoadBalancer([_client(handler, "PRIMARY"), _client(handler, "SECONDARY")]))
    price = await service.get_historical_price(MINT, 1_600_000_000)
    await service.aclose()

    assert price.price == Decimal("160.5")
    assert price.timestamp == 1_600_000_000
    assert price.pool == CURRENT_PRICE_POOL


@pytest.mark.asyncio
async def test_nothing_available_returns_none():
    service = PricingService(ApiLoadBalancer([_client(lambda request: httpx.Response(404))]))
    assert await service.get_historical_price(MINT, 1) is None
    assert await service.get_current_price(MINT) is None
    await service.aclose()


@pytest.mark.asyncio
async def test_batch_fills_misses_from_current_price():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/price":
            return httpx.Response(200, json=CURRENT)
        if request.url.params["timestamp"] == "2":
            return httpx.Response(404)
        return httpx.Response(200, json={**HISTORICAL, "timestamp": int(request.url.params["timestamp"])})

    service = PricingService(ApiLoadBalancer([_client(handler, "PRIMARY"), _client(handler, "SECONDARY")]))
    results = await service.get_batch_historical_prices([(MINT, 1), (MINT, 2), (MINT, 3)])
    await service.aclose()

    assert [r.timestamp for r in results] == [1, 2, 3]
    assert results[0].pool == "pool-1"
    assert results[1].pool == CURRENT_PRICE_POOL
    assert service.get_stats()["load_balancer"]["total_instances"] == 2
