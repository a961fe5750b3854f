"""
Pytest fixtures for reconciler tests.

Temporary SQLite store, a counting store spy, a controllable clock and
builders for jsonParsed transaction bodies.
"""

from __future__ import annotations

from typing import Any

import pytest

from backend_reconciler.database.store import KeyValueStore, ScanPage, SqlAlchemyStore
from backend_reconciler.solana_listener.models import SignatureInfo

# Valid Solana pubkeys (base58, 32 bytes)
TARGET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
WALLET_A = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
WALLET_B = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
WALLET_C = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
SYSTEM_PROGRAM = "11111111111111111111111111111111"

SOL = 1_000_000_000


class FakeClock:
    """Monotonic-style clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore(KeyValueStore):
    """Wraps a store and counts calls per operation."""

    def __init__(self, inner: KeyValueStore) -> None:
        self.inner = inner
        self.calls: dict[str, int] = {"get": 0, "put": 0, "update": 0, "delete": 0, "scan": 0}

    @property
    def writes(self) -> int:
        return self.calls["put"] + self.calls["update"] + self.calls["delete"]

    async def get(self, key: str) -> dict[str, Any] | None:
        self.calls["get"] += 1
        return await self.inner.get(key)

    async def put(self, key: str, item: dict[str, Any], *, if_not_exists: bool = False) -> None:
        self.calls["put"] += 1
        await self.inner.put(key, item, if_not_exists=if_not_exists)

    async def update(self, key: str, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls["update"] += 1
        return await self.inner.update(key, fields)

    async def delete(self, key: str) -> None:
        self.calls["delete"] += 1
        await self.inner.delete(key)

    async def scan(self, filter=None, start_token=None, limit=100) -> ScanPage:
        self.calls["scan"] += 1
        return await self.inner.scan(filter, start_token, limit)


def make_signature(n: int, block_time: int | None) -> SignatureInfo:
    return SignatureInfo(signature=f"s{n}", slot=n, err=None, block_time=block_time)


class FakeRpc:
    """Serves a fixed newest-first history page by page, honoring `before`."""

    def __init__(self, history: list[SignatureInfo], bodies: dict[str, dict] | None = None) -> None:
        self.history = history
        self.bodies = bodies or {}
        self.page_calls: list[tuple[int, str | None]] = []
        self.fetched: list[str] = []
        self.fail_with: Exception | None = None

    async def get_signatures_for_address(self, address, *, limit, before=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.page_calls.append((limit, before))
        start = 0
        if before is not None:
            start = next(i for i, s in enumerate(self.history) if s.signature == before) + 1
        return self.history[start:start + limit]

    async def get_parsed_transaction(self, signature):
        self.fetched.append(signature)
        return self.bodies.get(signature)


@pytest.fixture
def sqlite_store(tmp_path) -> SqlAlchemyStore:
    return SqlAlchemyStore(f"sqlite:///{tmp_path / 'reconciler.db'}")


@pytest.fixture
def counting_store(sqlite_store) -> CountingStore:
    return CountingStore(sqlite_store)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


def transfer_ix(source: str, destination: str, lamports: int, kind: str = "transfer") -> dict[str, Any]:
    """jsonParsed system program transfer instruction."""
    return {
        "program": "system",
        "programId": SYSTEM_PROGRAM,
        "parsed": {
            "type": kind,
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
        "stackHeight": None,
    }


def other_ix(program: str = "spl-token", kind: str = "transferChecked") -> dict[str, Any]:
    return {
        "program": program,
        "programId": WALLET_C,
        "parsed": {"type": kind, "info": {}},
    }


def tx_body(
    instructions: list[dict[str, Any]] | None = None,
    inner: list[dict[str, Any]] | None = None,
    *,
    block_time: int = 1_700_000_000,
    err: Any = None,
) -> dict[str, Any]:
    """getTransaction (jsonParsed) result with optional inner instructions."""
    return {
        "blockTime": block_time,
        "slot": 123,
        "meta": {
            "err": err,
            "innerInstructions": [{"index": 0, "instructions": inner}] if inner else [],
            "logMessages": [],
        },
        "transaction": {
            "signatures": ["sig"],
            "message": {"instructions": instructions or []},
        },
    }
