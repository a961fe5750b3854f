"""
Storage layer: participant and global stats models, the backing key-value
store, the TTL cache and the cache-through repositories on top of both.
"""

from backend_reconciler.database.cache import CacheEntry, TtlCache
from backend_reconciler.database.cache_initializer import refresh_cache, warm_cache
from backend_reconciler.database.models import GlobalStats, Participant
from backend_reconciler.database.participant_service import ParticipantService
from backend_reconciler.database.repositories import (
    CachedRepository,
    GlobalStatsRepository,
    ParticipantRepository,
)
from backend_reconciler.database.store import KeyValueStore, ScanPage, SqlAlchemyStore

__all__ = [
    "CacheEntry",
    "CachedRepository",
    "GlobalStats",
    "GlobalStatsRepository",
    "KeyValueStore",
    "Participant",
    "ParticipantRepository",
    "ParticipantService",
    "ScanPage",
    "SqlAlchemyStore",
    "TtlCache",
    "refresh_cache",
    "warm_cache",
]
