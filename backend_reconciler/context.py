"""
Process-wide application context.

build_context() constructs every long-lived component exactly once (store,
caches, repositories, request queues, retry policy, scanner, orchestrator,
scheduler, pricing) and wires them together. The resulting AppContext is
passed explicitly to whoever needs it; nothing here is a lazy global.

The facade methods are what a chat or UI layer calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import httpx

from backend_reconciler.agent_worker.orchestrator import SyncOrchestrator, SyncStatus
from backend_reconciler.analysis_engine.aggregator import WalletDetails
from backend_reconciler.config.env import mask_rpc_url
from backend_reconciler.config.settings import Settings
from backend_reconciler.database.cache import TtlCache
from backend_reconciler.database.models import GlobalStats, Participant
from backend_reconciler.database.participant_service import ParticipantService
from backend_reconciler.database.repositories import GlobalStatsRepository, ParticipantRepository
from backend_reconciler.database.store import KeyValueStore, SqlAlchemyStore
from backend_reconciler.pricing.load_balancer import ApiLoadBalancer
from backend_reconciler.pricing.service import PricingService
from backend_reconciler.pricing.tracker_client import SolanaTrackerApiClient
from backend_reconciler.recon_logging import get_logger
from backend_reconciler.scheduler.engine import NextRun, SchedulerStatus, SyncScheduler
from backend_reconciler.scheduler.phase import PhaseStatus, calculate_phase_status
from backend_reconciler.solana_listener.rpc import RetryingRpc
from backend_reconciler.solana_listener.rpc_client import SolanaRpcClient
from backend_reconciler.solana_listener.scanner import TransactionScanner
from backend_reconciler.utils.rate_limiter import RequestQueue
from backend_reconciler.utils.retry import RetryPolicy

logger = get_logger(__name__)

PRICING_INSTANCE_IDS = ("PRIMARY", "SECONDARY")


@dataclass
class AppContext:
    settings: Settings
    store: KeyValueStore
    participant_cache: TtlCache[Participant]
    stats_cache: TtlCache[GlobalStats]
    participants: ParticipantRepository
    global_stats: GlobalStatsRepository
    participant_service: ParticipantService
    retry_policy: RetryPolicy
    rpc_queue: RequestQueue
    rpc_client: SolanaRpcClient
    rpc: RetryingRpc
    scanner: TransactionScanner
    orchestrator: SyncOrchestrator
    scheduler: SyncScheduler
    pricing: PricingService | None = None

    # -- facade ----------------------------------------------------------------

    def get_sync_status(self) -> SyncStatus:
        return self.orchestrator.get_status()

    async def force_sync_now(self, as_of: datetime | None = None) -> list[WalletDetails]:
        """Raises SyncBusyError while a run is in flight."""
        return await self.scheduler.force_run(as_of)

    async def get_global_stats(self) -> GlobalStats:
        return await self.global_stats.get()

    async def get_participant(self, participant_id: str) -> Participant | None:
        return await self.participants.get(participant_id)

    def get_scheduler_status(self) -> SchedulerStatus:
        return self.scheduler.get_status()

    def time_until_next_sync(self) -> NextRun:
        return self.scheduler.time_until_next_run()

    def get_phase_status(self, now: datetime | None = None) -> PhaseStatus:
        return calculate_phase_status(
            self.settings.phase_start,
            self.settings.phase_month_duration,
            now,
        )

    # -- lifecycle ---------------------------------------------------------------

    def start_background(self) -> None:
        self.participant_cache.start_sweeper()
        self.stats_cache.start_sweeper()
        self.scheduler.start()

    async def aclose(self) -> None:
        await self.scheduler.shutdown()
        await self.participant_cache.stop_sweeper()
        await self.stats_cache.stop_sweeper()
        await self.rpc_queue.aclose()
        await self.rpc_client.aclose()
        if self.pricing is not None:
            await self.pricing.aclose()
        await self.store.aclose()
        logger.info("context_closed")


def build_context(
    settings: Settings,
    *,
    store: KeyValueStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    initial_delay_sec: float | None = None,
) -> AppContext:
    """Construct and wire every component from settings (nothing is started)."""
    store = store or SqlAlchemyStore(settings.database_url)
    participant_cache: TtlCache[Participant] = TtlCache(
        settings.cache_ttl_sec,
        name="participants",
        index_by=lambda p: p.wallet_address,
    )
    stats_cache: TtlCache[GlobalStats] = TtlCache(settings.cache_ttl_sec, name="global_stats")
    participants = ParticipantRepository(store, participant_cache)
    global_stats = GlobalStatsRepository(store, stats_cache)

    retry_policy = RetryPolicy()
    rpc_queue = RequestQueue(settings.rpc_min_interval_sec, name="solana-rpc")
    rpc_client = SolanaRpcClient(
        settings.rpc_url,
        timeout_sec=settings.rpc_timeout_sec,
        http_client=http_client,
    )
    rpc = RetryingRpc(rpc_client, rpc_queue, retry_policy)
    scanner = TransactionScanner(rpc)
    orchestrator = SyncOrchestrator(
        scanner,
        participants,
        global_stats,
        target_address=settings.target_address,
        min_amount=settings.min_amount,
        page_size=settings.page_size,
        max_signatures=settings.max_signatures,
    )
    scheduler_kwargs = {}
    if initial_delay_sec is not None:
        scheduler_kwargs["initial_delay_sec"] = initial_delay_sec
    scheduler = SyncScheduler(
        orchestrator,
        phase_start=settings.phase_start,
        interval_sec=settings.sync_interval_sec,
        phase_end_after=settings.phase_end_after,
        **scheduler_kwargs,
    )

    pricing = None
    if settings.pricing_api_keys:
        clients = [
            SolanaTrackerApiClient(
                key,
                PRICING_INSTANCE_IDS[i] if i < len(PRICING_INSTANCE_IDS) else f"KEY{i + 1}",
                policy=retry_policy,
                http_client=http_client,
                min_interval_sec=settings.pricing_min_interval_sec,
            )
            for i, key in enumerate(settings.pricing_api_keys)
        ]
        pricing = PricingService(ApiLoadBalancer(clients))

    logger.info(
        "context_built",
        rpc_url=mask_rpc_url(settings.rpc_url),
        target=settings.target_address,
        pricing_clients=len(settings.pricing_api_keys),
        cache_ttl_sec=settings.cache_ttl_sec,
    )
    return AppContext(
        settings=settings,
        store=store,
        participant_cache=participant_cache,
        stats_cache=stats_cache,
        participants=participants,
        global_stats=global_stats,
        participant_service=ParticipantService(participants, global_stats, settings.min_amount),
        retry_policy=retry_policy,
        rpc_queue=rpc_queue,
        rpc_client=rpc_client,
        rpc=rpc,
        scanner=scanner,
        orchestrator=orchestrator,
        scheduler=scheduler,
        pricing=pricing,
    )
