"""
Tests for the cache-through repositories, warm-up and participant registration.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from backend_reconciler.core.exceptions import ItemExistsError, ItemNotFoundError
from backend_reconciler.database.cache import TtlCache
from backend_reconciler.database.cache_initializer import refresh_cache, warm_cache
from backend_reconciler.database.models import GlobalStats, Participant
from backend_reconciler.database.participant_service import ParticipantService
from backend_reconciler.database.repositories import (
    GLOBAL_STATS_KEY,
    GlobalStatsRepository,
    ParticipantRepository,
    participant_store_key,
)

from conftest import WALLET_A, WALLET_B, CountingStore


def _participants(store, clock) -> ParticipantRepository:
    cache = TtlCache(30, name="participants", index_by=lambda p: p.wallet_address, clock=clock)
    return ParticipantRepository(store, cache)


def _stats(store, clock) -> GlobalStatsRepository:
    return GlobalStatsRepository(store, TtlCache(30, name="stats", clock=clock))


class FailingPutStore(CountingStore):
    async def put(self, key, item, *, if_not_exists=False):
        self.calls["put"] += 1
        raise RuntimeError("store unavailable")


@pytest.mark.asyncio
async def test_read_within_ttl_skips_store(counting_store, fake_clock):
    repo = _participants(counting_store, fake_clock)
    await repo.set(Participant.create("p1", WALLET_A))

    fake_clock.advance(29)
    assert (await repo.get("p1")).wallet_address == WALLET_A
    assert counting_store.calls["get"] == 0

    fake_clock.advance(2)
    assert (await repo.get("p1")).wallet_address == WALLET_A
    assert counting_store.calls["get"] == 1


@pytest.mark.asyncio
async def test_failed_store_write_leaves_cache_untouched(sqlite_store, fake_clock):
    store = FailingPutStore(sqlite_store)
    repo = _participants(store, fake_clock)

    with pytest.raises(RuntimeError):
        await repo.set(Participant.create("p1", WALLET_A))
    assert repo.cache.get("p1") is None


@pytest.mark.asyncio
async def test_create_is_conditional(counting_store, fake_clock):
    repo = _participants(counting_store, fake_clock)
    await repo.create(Participant.create("p1", WALLET_A))
    with pytest.raises(ItemExistsError):
        await repo.create(Participant.create("p1", WALLET_B))
    assert (await counting_store.get(participant_store_key("p1")))["walletAddress"] == WALLET_A


@pytest.mark.asyncio
async def test_find_by_wallet_falls_back_to_store_then_uses_index(counting_store, fake_clock):
    await counting_store.put(participant_store_key("p1"), Participant.create("p1", WALLET_A).to_item())
    repo = _participants(counting_store, fake_clock)

    found = await repo.find_by_wallet(WALLET_A)
    assert found.participant_id == "p1"
    scans = counting_store.calls["scan"]
    assert scans >= 1

    assert (await repo.find_by_wallet(WALLET_A)).participant_id == "p1"
    assert counting_store.calls["scan"] == scans
    assert await repo.find_by_wallet(WALLET_B) is None


@pytest.mark.asyncio
async def test_get_all_served_from_cache_while_fresh(counting_store, fake_clock):
    for pid, wallet in (("p1", WALLET_A), ("p2", WALLET_B)):
        await counting_store.put(participant_store_key(pid), Participant.create(pid, wallet).to_item())
    repo = _participants(counting_store, fake_clock)

    assert len(await repo.get_all()) == 2
    scans = counting_store.calls["scan"]

    fake_clock.advance(29)
    assert len(await repo.get_all()) == 2
    assert counting_store.calls["scan"] == scans

    fake_clock.advance(2)
    assert len(await repo.get_all()) == 2
    assert counting_store.calls["scan"] > scans


@pytest.mark.asyncio
async def test_remove_deletes_from_store_and_cache(counting_store, fake_clock):
    repo = _participants(counting_store, fake_clock)
    await repo.set(Participant.create("p1", WALLET_A))
    await repo.remove("p1")
    assert await repo.get("p1") is None
    assert await repo.find_by_wallet(WALLET_A) is None


@pytest.mark.asyncio
async def test_global_stats_default_is_not_persisted(counting_store, fake_clock):
    repo = _stats(counting_store, fake_clock)
    stats = await repo.get()
    assert stats.participant_count == 0
    assert await counting_store.get(GLOBAL_STATS_KEY) is None

    assert await repo.initialize_if_not_exists() is True
    assert await repo.initialize_if_not_exists() is False
    assert await counting_store.get(GLOBAL_STATS_KEY) is not None


@pytest.mark.asyncio
async def test_warm_cache_loads_everything(counting_store, fake_clock):
    await counting_store.put(participant_store_key("p1"), Participant.create("p1", WALLET_A).to_item())
    await counting_store.put("misc#1", {"type": "something_else"})
    participants = _participants(counting_store, fake_clock)
    stats = _stats(counting_store, fake_clock)

    result = await warm_cache(counting_store, participants, stats)
    assert result == {"participants": 1, "global_stats": 1, "skipped": 1}
    # Zeroed stats were written because none existed.
    assert await counting_store.get(GLOBAL_STATS_KEY) is not None

    gets = counting_store.calls["get"]
    scans = counting_store.calls["scan"]
    assert (await participants.get("p1")).wallet_address == WALLET_A
    assert len(await participants.get_all()) == 1
    assert (await stats.get()).participant_count == 0
    assert counting_store.calls["get"] == gets
    assert counting_store.calls["scan"] == scans

    again = await refresh_cache(counting_store, participants, stats)
    assert again["participants"] == 1


@pytest.mark.asyncio
async def test_participant_service_register_and_unlink(counting_store, fake_clock):
    participants = _participants(counting_store, fake_clock)
    stats = _stats(counting_store, fake_clock)
    service = ParticipantService(participants, stats, min_amount=Decimal("1"))

    await service.register("p1", WALLET_A)
    with pytest.raises(ItemExistsError):
        await service.register("p1", WALLET_B)
    with pytest.raises(ItemExistsError):
        await service.register("p2", WALLET_A)
    assert (await stats.get()).participant_count == 1

    updated = await service.set_invested_amount("p1", Decimal("2"))
    assert updated.invested_amount == Decimal("2")
    current = await stats.get()
    assert (current.total_invested, current.active_participants) == (Decimal("2"), 1)

    removed = await service.unlink("p1")
    assert removed.participant_id == "p1"
    assert await service.unlink("p1") is None
    final = await stats.get()
    assert (final.participant_count, final.active_participants, final.total_invested) == (0, 0, Decimal(0))

    with pytest.raises(ItemNotFoundError):
        await service.set_invested_amount("p1", Decimal("1"))


@pytest.mark.asyncio
async def test_stats_set_is_write_through(counting_store, fake_clock):
    repo = _stats(counting_store, fake_clock)
    await repo.set(GlobalStats(Decimal("3"), participant_count=2, active_participants=1, updated_at=1))
    stored = await counting_store.get(GLOBAL_STATS_KEY)
    assert stored["totalInvested"] == "3"
    assert (await repo.get()).participant_count == 2


@pytest.mark.asyncio
async def test_update_invested_amount_writes_fields_only(counting_store, fake_clock):
    repo = _participants(counting_store, fake_clock)
    original = Participant.create("p1", WALLET_A)
    await repo.create(original)

    updated = await repo.update_invested_amount(original.with_invested_amount(Decimal("2.5")))

    assert updated.invested_amount == Decimal("2.5")
    assert updated.created_at == original.created_at
    assert counting_store.calls["update"] == 1
    stored = await counting_store.get(participant_store_key("p1"))
    assert stored["investedAmount"] == "2.5"
    assert (await repo.get("p1")).invested_amount == Decimal("2.5")


@pytest.mark.asyncio
async def test_update_invested_amount_never_recreates_removed_participant(counting_store, fake_clock):
    repo = _participants(counting_store, fake_clock)
    snapshot = Participant.create("p1", WALLET_A)
    await repo.create(snapshot)
    await repo.remove("p1")

    with pytest.raises(ItemNotFoundError):
        await repo.update_invested_amount(snapshot.with_invested_amount(Decimal("5")))

    assert await counting_store.get(participant_store_key("p1")) is None
    assert await repo.get("p1") is None


@pytest.mark.asyncio
async def test_concurrent_registration_of_one_wallet_links_it_once(counting_store, fake_clock):
    participants = _participants(counting_store, fake_clock)
    stats = _stats(counting_store, fake_clock)
    service = ParticipantService(participants, stats)

    results = await asyncio.gather(
        service.register("p1", WALLET_A),
        service.register("p2", WALLET_A),
        return_exceptions=True,
    )

    assert sorted(type(r).__name__ for r in results) == ["ItemExistsError", "Participant"]
    owners = await counting_store.scan_all({"type": "participant", "walletAddress": WALLET_A})
    assert len(owners) == 1
    assert (await stats.get()).participant_count == 1


@pytest.mark.asyncio
async def test_concurrent_registrations_keep_every_stats_increment(counting_store, fake_clock):
    participants = _participants(counting_store, fake_clock)
    stats = _stats(counting_store, fake_clock)
    service = ParticipantService(participants, stats)

    await asyncio.gather(
        service.register("p1", WALLET_A),
        service.register("p2", WALLET_B),
    )
    assert (await stats.get()).participant_count == 2

    await asyncio.gather(service.unlink("p1"), service.unlink("p2"))
    assert (await stats.get()).participant_count == 0
