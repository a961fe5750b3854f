"""
Cache warm-up: one full pass over the store at startup.

Loads every participant and the global stats record into the repository
caches so the first reads after boot do not hit the store. Unknown item types
are skipped. When no global stats record exists yet, a zeroed one is written.
"""

from __future__ import annotations

import time

from backend_reconciler.database.models import PARTICIPANT_ITEM_TYPE, GlobalStats, Participant
from backend_reconciler.database.repositories import (
    GlobalStatsRepository,
    ParticipantRepository,
    is_global_stats_item,
)
from backend_reconciler.database.store import KeyValueStore
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)


async def warm_cache(
    store: KeyValueStore,
    participants: ParticipantRepository,
    global_stats: GlobalStatsRepository,
) -> dict[str, int]:
    """Returns counts of what was loaded: participants, global_stats, skipped."""
    started = time.monotonic()
    logger.info("cache_warmup_start")
    items = await store.scan_all()

    loaded: list[Participant] = []
    stats_loaded = 0
    skipped = 0
    for item in items:
        if item.get("type") == PARTICIPANT_ITEM_TYPE:
            loaded.append(Participant.from_item(item))
        elif is_global_stats_item(item):
            global_stats.prime(GlobalStats.from_item(item))
            stats_loaded += 1
        else:
            skipped += 1
            logger.debug("cache_warmup_skip_item", item_type=item.get("type"))
    participants.prime(loaded)

    if stats_loaded == 0:
        await global_stats.initialize_if_not_exists()
        stats_loaded = 1

    result = {"participants": len(loaded), "global_stats": stats_loaded, "skipped": skipped}
    logger.info(
        "cache_warmup_done",
        duration_ms=int((time.monotonic() - started) * 1000),
        **result,
    )
    return result


async def refresh_cache(
    store: KeyValueStore,
    participants: ParticipantRepository,
    global_stats: GlobalStatsRepository,
) -> dict[str, int]:
    """Drop everything cached, then warm again from the store."""
    participants.clear()
    global_stats.clear()
    logger.info("cache_cleared")
    return await warm_cache(store, participants, global_stats)
