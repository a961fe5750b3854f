"""
Tests for ApiLoadBalancer round-robin and static batch partitioning.
"""

from __future__ import annotations

import pytest

from backend_reconciler.core.exceptions import AllClientsFailedError
from backend_reconciler.pricing.load_balancer import ApiLoadBalancer


class FakeClient:
    def __init__(self, instance_id: str, answer=None, fail: bool = False) -> None:
        self.instance_id = instance_id
        self.answer = answer
        self.fail = fail
        self.seen: list = []

    async def lookup(self, request=None):
        self.seen.append(request)
        if self.fail:
            raise RuntimeError(f"{self.instance_id} down")
        return self.answer


@pytest.mark.asyncio
async def test_round_robin_index_advances_each_call():
    a, b = FakeClient("A", answer="a"), FakeClient("B", answer="b")
    balancer = ApiLoadBalancer([a, b])

    results = [await balancer.execute(lambda c: c.lookup()) for _ in range(3)]
    assert results == ["a", "b", "a"]
    assert balancer.get_stats()["current_round_robin_index"] == 1


@pytest.mark.asyncio
async def test_skips_failures_and_none_results():
    failing = FakeClient("A", fail=True)
    empty = FakeClient("B", answer=None)
    good = FakeClient("C", answer="c")
    balancer = ApiLoadBalancer([failing, empty, good])

    assert await balancer.execute(lambda c: c.lookup(), "historical") == "c"
    assert len(failing.seen) == len(empty.seen) == len(good.seen) == 1


@pytest.mark.asyncio
async def test_all_clients_failed():
    balancer = ApiLoadBalancer([FakeClient("A", fail=True), FakeClient("B", answer=None)])
    with pytest.raises(AllClientsFailedError):
        await balancer.execute(lambda c: c.lookup(), "current", token="mint")


@pytest.mark.asyncio
async def test_batch_partitions_by_position_and_keeps_order():
    class Echo(FakeClient):
        async def lookup(self, request=None):
            self.seen.append(request)
            if request == 3:
                raise RuntimeError("bad request")
            return f"{self.instance_id}{request}"

    a, b = Echo("A"), Echo("B")
    balancer = ApiLoadBalancer([a, b])

    results = await balancer.execute_batch([0, 1, 2, 3, 4], lambda c, r: c.lookup(r))

    assert results == ["A0", "B1", "A2", None, "A4"]
    assert a.seen == [0, 2, 4]
    assert b.seen == [1, 3]
    assert await balancer.execute_batch([], lambda c, r: c.lookup(r)) == []


def test_requires_clients():
    with pytest.raises(ValueError):
        ApiLoadBalancer([])
