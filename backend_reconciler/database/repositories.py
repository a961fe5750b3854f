"""
Cache-through repositories for participants and global stats.

Reads go cache -> store -> populate cache; writes go to the store first and
only then to the cache, so a cache problem can never leave the store behind.
The store is always the source of truth: anything missing or expired in the
cache is simply read again.
"""

from __future__ import annotations

import abc
from typing import Generic, Hashable, TypeVar

from backend_reconciler.core.exceptions import ItemExistsError, ItemNotFoundError
from backend_reconciler.database.cache import TtlCache
from backend_reconciler.database.models import (
    GLOBAL_STATS_ITEM_TYPE,
    PARTICIPANT_ITEM_TYPE,
    GlobalStats,
    Participant,
)
from backend_reconciler.database.store import KeyValueStore
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

GLOBAL_STATS_KEY = "global#stats"


def participant_store_key(participant_id: str) -> str:
    return f"participant#{participant_id}"


class CachedRepository(abc.ABC, Generic[T]):
    """Read-through / write-through access to one entity type."""

    entity_name = "item"

    def __init__(self, store: KeyValueStore, cache: TtlCache[T]) -> None:
        self._store = store
        self._cache = cache

    @property
    def cache(self) -> TtlCache[T]:
        return self._cache

    @abc.abstractmethod
    def _store_key(self, key: Hashable) -> str: ...

    @abc.abstractmethod
    def _key_of(self, value: T) -> Hashable: ...

    @abc.abstractmethod
    def _to_item(self, value: T) -> dict: ...

    @abc.abstractmethod
    def _from_item(self, item: dict) -> T: ...

    async def get(self, key: Hashable) -> T | None:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        item = await self._store.get(self._store_key(key))
        if item is None:
            logger.debug("repository_miss", entity=self.entity_name, key=str(key))
            return None
        value = self._from_item(item)
        self._cache.set(key, value)
        return value

    async def set(self, value: T) -> None:
        key = self._key_of(value)
        await self._store.put(self._store_key(key), self._to_item(value))
        self._cache.set(key, value)

    async def remove(self, key: Hashable) -> None:
        await self._store.delete(self._store_key(key))
        self._cache.delete(key)

    @abc.abstractmethod
    async def get_all(self) -> list[T]: ...

    def clear(self) -> None:
        """Drop cached entries only; the store is untouched."""
        self._cache.clear()


class ParticipantRepository(CachedRepository[Participant]):
    """Participants keyed by participant_id, with a wallet-address secondary index."""

    entity_name = "participant"

    def __init__(self, store: KeyValueStore, cache: TtlCache[Participant]) -> None:
        super().__init__(store, cache)
        self._all_loaded_at: float | None = None

    def _store_key(self, key: Hashable) -> str:
        return participant_store_key(str(key))

    def _key_of(self, value: Participant) -> Hashable:
        return value.participant_id

    def _to_item(self, value: Participant) -> dict:
        return value.to_item()

    def _from_item(self, item: dict) -> Participant:
        return Participant.from_item(item)

    async def create(self, participant: Participant) -> None:
        """Conditional insert. Raises ItemExistsError when the participant already exists."""
        await self._store.put(
            self._store_key(participant.participant_id),
            participant.to_item(),
            if_not_exists=True,
        )
        self._cache.set(participant.participant_id, participant)

    async def update_invested_amount(self, participant: Participant) -> Participant:
        """
        Write only the amount fields of an existing participant.

        Never re-creates a removed participant: raises ItemNotFoundError (and
        evicts any cached copy) when the key is gone from the store.
        """
        try:
            item = await self._store.update(
                self._store_key(participant.participant_id),
                {
                    "investedAmount": str(participant.invested_amount),
                    "updatedAt": participant.updated_at,
                },
            )
        except ItemNotFoundError:
            self._cache.delete(participant.participant_id)
            raise
        updated = Participant.from_item(item)
        self._cache.set(updated.participant_id, updated)
        return updated

    async def find_by_wallet(self, wallet_address: str) -> Participant | None:
        cached = self._cache.get_by_index(wallet_address)
        if cached is not None:
            return cached
        items = await self._store.scan_all(
            {"type": PARTICIPANT_ITEM_TYPE, "walletAddress": wallet_address}
        )
        if not items:
            return None
        participant = Participant.from_item(items[0])
        self._cache.set(participant.participant_id, participant)
        return participant

    async def get_all(self) -> list[Participant]:
        """
        Every participant. Served from cache while the last full load is fresh;
        entries loaded together never expire before the load marker does.
        """
        if self._all_loaded_at is not None and self._cache.is_fresh(self._all_loaded_at):
            return self._cache.values()
        loaded_at = self._cache.now()
        items = await self._store.scan_all({"type": PARTICIPANT_ITEM_TYPE})
        participants = [Participant.from_item(item) for item in items]
        for participant in participants:
            self._cache.set(participant.participant_id, participant)
        self._all_loaded_at = loaded_at
        logger.debug("participants_loaded", count=len(participants))
        return participants

    def prime(self, participants: list[Participant]) -> None:
        """Populate the cache from an already-complete listing (cache warm-up)."""
        loaded_at = self._cache.now()
        for participant in participants:
            self._cache.set(participant.participant_id, participant)
        self._all_loaded_at = loaded_at

    def clear(self) -> None:
        super().clear()
        self._all_loaded_at = None


class GlobalStatsRepository(CachedRepository[GlobalStats]):
    """The singleton GlobalStats record."""

    entity_name = "global_stats"

    def _store_key(self, key: Hashable) -> str:
        return GLOBAL_STATS_KEY

    def _key_of(self, value: GlobalStats) -> Hashable:
        return GLOBAL_STATS_KEY

    def _to_item(self, value: GlobalStats) -> dict:
        return value.to_item()

    def _from_item(self, item: dict) -> GlobalStats:
        return GlobalStats.from_item(item)

    async def get(self, key: Hashable = GLOBAL_STATS_KEY) -> GlobalStats:
        """Stored stats, or zeroed stats when none were ever written (not persisted)."""
        stats = await super().get(GLOBAL_STATS_KEY)
        return stats if stats is not None else GlobalStats.empty()

    async def remove(self, key: Hashable = GLOBAL_STATS_KEY) -> None:
        await super().remove(GLOBAL_STATS_KEY)

    async def get_all(self) -> list[GlobalStats]:
        return [await self.get()]

    async def initialize_if_not_exists(self) -> bool:
        """Write zeroed stats unless a record exists; True when this call created it."""
        stats = GlobalStats.empty()
        try:
            await self._store.put(GLOBAL_STATS_KEY, stats.to_item(), if_not_exists=True)
        except ItemExistsError:
            return False
        self._cache.set(GLOBAL_STATS_KEY, stats)
        logger.info("global_stats_initialized")
        return True

    def prime(self, stats: GlobalStats) -> None:
        self._cache.set(GLOBAL_STATS_KEY, stats)


def is_global_stats_item(item: dict) -> bool:
    return item.get("type") == GLOBAL_STATS_ITEM_TYPE
