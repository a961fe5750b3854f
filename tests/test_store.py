"""
Tests for SqlAlchemyStore (temporary SQLite file).
"""

from __future__ import annotations

import pytest

from backend_reconciler.core.exceptions import ItemExistsError, ItemNotFoundError
from backend_reconciler.database.store import SqlAlchemyStore


@pytest.mark.asyncio
async def test_put_get_delete(sqlite_store):
    await sqlite_store.put("k1", {"type": "participant", "value": 1})
    assert await sqlite_store.get("k1") == {"type": "participant", "value": 1}

    await sqlite_store.put("k1", {"type": "participant", "value": 2})
    assert (await sqlite_store.get("k1"))["value"] == 2

    await sqlite_store.delete("k1")
    assert await sqlite_store.get("k1") is None
    # Deleting a missing key is not an error.
    await sqlite_store.delete("k1")


@pytest.mark.asyncio
async def test_conditional_put_rejects_existing_key(sqlite_store):
    await sqlite_store.put("k1", {"value": 1}, if_not_exists=True)
    with pytest.raises(ItemExistsError):
        await sqlite_store.put("k1", {"value": 2}, if_not_exists=True)
    assert (await sqlite_store.get("k1"))["value"] == 1


@pytest.mark.asyncio
async def test_update_merges_and_requires_existing(sqlite_store):
    await sqlite_store.put("k1", {"type": "participant", "a": 1, "b": 2})
    merged = await sqlite_store.update("k1", {"b": 3})
    assert merged == {"type": "participant", "a": 1, "b": 3}
    assert await sqlite_store.get("k1") == merged

    with pytest.raises(ItemNotFoundError):
        await sqlite_store.update("missing", {"a": 1})


@pytest.mark.asyncio
async def test_scan_pages_with_continuation_token(sqlite_store):
    for i in range(5):
        await sqlite_store.put(f"p#{i}", {"type": "participant", "n": i})
    await sqlite_store.put("global#stats", {"type": "global_stats"})

    first = await sqlite_store.scan({"type": "participant"}, limit=2)
    assert [item["n"] for item in first.items] == [0, 1]
    assert first.continuation_token == "p#1"

    second = await sqlite_store.scan({"type": "participant"}, first.continuation_token, limit=2)
    assert [item["n"] for item in second.items] == [2, 3]

    third = await sqlite_store.scan({"type": "participant"}, second.continuation_token, limit=2)
    assert [item["n"] for item in third.items] == [4]
    assert third.continuation_token is None


@pytest.mark.asyncio
async def test_scan_all_with_field_filter(sqlite_store):
    for i in range(150):
        await sqlite_store.put(f"p#{i:03d}", {"type": "participant", "walletAddress": f"w{i % 3}"})

    items = await sqlite_store.scan_all({"type": "participant", "walletAddress": "w1"})
    assert len(items) == 50
    assert all(item["walletAddress"] == "w1" for item in items)
    assert len(await sqlite_store.scan_all()) == 150


@pytest.mark.asyncio
async def test_scan_limit_must_be_positive(sqlite_store):
    with pytest.raises(ValueError):
        await sqlite_store.scan(limit=0)


@pytest.mark.asyncio
async def test_in_memory_store_shares_one_database():
    store = SqlAlchemyStore("sqlite://")
    try:
        await store.put("k", {"v": 1})
        assert await store.get("k") == {"v": 1}
    finally:
        await store.aclose()
