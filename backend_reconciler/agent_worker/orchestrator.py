"""
Sync orchestrator: scanner -> classifier/aggregator -> repositories.

One reconciliation run loads every tracked participant, scans the target
address's history strictly before the run's cutoff, recomputes each wallet's
net amount, writes only the participants whose amount changed and rewrites
GlobalStats in full. Runs are single-flight: a call made while another run is
in flight returns None without touching the store.

Status is an immutable SyncStatus snapshot swapped on every transition, so
readers always see a consistent state.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable

from backend_reconciler.analysis_engine.aggregator import (
    AggregateRecord,
    WalletDetails,
    aggregate,
    build_wallet_details,
)
from backend_reconciler.core.exceptions import ItemNotFoundError, ReconciliationError
from backend_reconciler.database.models import GlobalStats, Participant
from backend_reconciler.database.repositories import GlobalStatsRepository, ParticipantRepository
from backend_reconciler.recon_logging import bind_run_context, clear_run_context, get_logger
from backend_reconciler.solana_listener.scanner import (
    DEFAULT_MAX_TOTAL,
    DEFAULT_PAGE_SIZE,
    TransactionScanner,
)
from backend_reconciler.utils.wallet_utils import short_wallet

logger = get_logger(__name__)


class SyncStage(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PROCESSING = "processing"
    UPDATING_PARTICIPANTS = "updating_participants"
    UPDATING_STATS = "updating_stats"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class SyncStatus:
    """Snapshot of the current (or last) run. Timestamps are Unix seconds."""

    is_running: bool = False
    stage: SyncStage = SyncStage.IDLE
    started_at: float | None = None
    updated_at: float | None = None
    total_participants: int | None = None
    processed_participants: int | None = None
    total_transactions: int | None = None
    processed_transactions: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["stage"] = self.stage.value
        return out


def to_epoch_seconds(as_of: datetime | int | float) -> int:
    """Unix seconds for a cutoff; naive datetimes are read as UTC, never host local time."""
    if isinstance(as_of, datetime):
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        return int(as_of.timestamp())
    return int(as_of)


class SyncOrchestrator:
    def __init__(
        self,
        scanner: TransactionScanner,
        participants: ParticipantRepository,
        global_stats: GlobalStatsRepository,
        *,
        target_address: str,
        min_amount: Decimal = Decimal(0),
        page_size: int = DEFAULT_PAGE_SIZE,
        max_signatures: int = DEFAULT_MAX_TOTAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._scanner = scanner
        self._participants = participants
        self._global_stats = global_stats
        self._target = target_address
        self._min_amount = min_amount
        self._page_size = page_size
        self._max_signatures = max_signatures
        self._clock = clock
        self._status = SyncStatus()

    @property
    def target_address(self) -> str:
        return self._target

    def get_status(self) -> SyncStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status.is_running

    def _set_status(self, **changes: Any) -> None:
        self._status = replace(self._status, updated_at=self._clock(), **changes)

    def _try_begin(self) -> bool:
        """Atomic check-and-set of is_running (no await in between)."""
        if self._status.is_running:
            return False
        now = self._clock()
        self._status = SyncStatus(
            is_running=True,
            stage=SyncStage.SCANNING,
            started_at=now,
            updated_at=now,
        )
        return True

    async def run(self, as_of: datetime | int | float) -> list[WalletDetails] | None:
        """
        Reconcile every participant against history strictly before as_of.

        Returns per-wallet details, or None when another run is in flight.
        Raises ReconciliationError (chained from the cause) after recording the
        failure in the status.
        """
        if not self._try_begin():
            logger.warning("sync_already_running", stage=self._status.stage.value)
            return None
        cutoff = to_epoch_seconds(as_of)
        bind_run_context(run_id=uuid.uuid4().hex[:12], cutoff=cutoff)
        logger.info("sync_started", target=short_wallet(self._target))
        try:
            return await self._reconcile(cutoff)
        except Exception as e:
            self._set_status(stage=SyncStage.ERROR, error=str(e) or type(e).__name__)
            logger.error("sync_failed", cutoff=cutoff, error=str(e), error_type=type(e).__name__)
            raise ReconciliationError(f"Reconciliation failed: {e}") from e
        finally:
            self._set_status(is_running=False)
            clear_run_context("run_id", "cutoff")

    async def _reconcile(self, cutoff: int) -> list[WalletDetails]:
        participants = await self._participants.get_all()
        self._set_status(total_participants=len(participants), processed_participants=0)
        if not participants:
            await self._global_stats.set(
                GlobalStats(
                    total_invested=Decimal(0),
                    participant_count=0,
                    active_participants=0,
                    updated_at=int(self._clock()),
                )
            )
            self._set_status(stage=SyncStage.COMPLETED)
            logger.info("sync_completed_no_participants", cutoff=cutoff)
            return []

        wallets = [p.wallet_address for p in participants]
        records = await self._collect(wallets, cutoff, track_progress=True)
        details = build_wallet_details(wallets, records)
        by_wallet = {d.wallet: d for d in details}

        self._set_status(stage=SyncStage.UPDATING_PARTICIPANTS)
        computed: list[Decimal] = []
        updated = 0
        skipped = 0
        for index, participant in enumerate(participants, start=1):
            amount = max(Decimal(0), by_wallet[participant.wallet_address].amount)
            if await self._write_amount(participant, amount):
                computed.append(amount)
                if amount != participant.invested_amount:
                    updated += 1
            else:
                skipped += 1
            self._set_status(processed_participants=index)

        self._set_status(stage=SyncStage.UPDATING_STATS)
        stats = _recompute_stats(computed, self._min_amount, int(self._clock()))
        await self._global_stats.set(stats)

        self._set_status(stage=SyncStage.COMPLETED)
        logger.info(
            "sync_completed",
            cutoff=cutoff,
            participant_count=stats.participant_count,
            active_participants=stats.active_participants,
            total_invested=str(stats.total_invested),
            participants_updated=updated,
            participants_removed=skipped,
        )
        return details

    async def _write_amount(self, participant: Participant, amount: Decimal) -> bool:
        """
        Persist a changed amount with a field update. False when the participant
        was unlinked after the run loaded it; it is then left out of the stats.
        """
        if amount == participant.invested_amount:
            return await self._participants.get(participant.participant_id) is not None
        try:
            await self._participants.update_invested_amount(participant.with_invested_amount(amount))
        except ItemNotFoundError:
            logger.info(
                "participant_removed_during_sync",
                participant_id=participant.participant_id,
                wallet_id=participant.short_wallet,
            )
            return False
        logger.debug(
            "participant_amount_changed",
            participant_id=participant.participant_id,
            wallet_id=participant.short_wallet,
            old_amount=str(participant.invested_amount),
            new_amount=str(amount),
        )
        return True

    def _record_progress(self, count: int) -> None:
        self._set_status(processed_transactions=count)

    async def _collect(
        self,
        wallets: Iterable[str],
        cutoff: int,
        *,
        track_progress: bool,
    ) -> dict[str, AggregateRecord]:
        signatures = await self._scanner.scan_signatures(
            self._target,
            page_size=self._page_size,
            max_total=self._max_signatures,
        )
        retained = [s for s in signatures if s.block_time is not None and s.block_time < cutoff]
        if track_progress:
            self._set_status(
                stage=SyncStage.PROCESSING,
                total_transactions=len(retained),
                processed_transactions=0,
            )
        fetched = await self._scanner.fetch_transactions(
            retained,
            on_progress=self._record_progress if track_progress else None,
        )
        return aggregate(fetched, wallets, cutoff, self._target)

    async def get_wallets_details(
        self,
        wallets: list[str],
        as_of: datetime | int | float,
    ) -> list[WalletDetails]:
        """Same scan and aggregation as a run, without persisting or touching the status."""
        cutoff = to_epoch_seconds(as_of)
        records = await self._collect(wallets, cutoff, track_progress=False)
        return build_wallet_details(wallets, records)


def _recompute_stats(amounts: list[Decimal], min_amount: Decimal, now: int) -> GlobalStats:
    return GlobalStats(
        total_invested=sum(amounts, Decimal(0)),
        participant_count=len(amounts),
        active_participants=sum(1 for a in amounts if a >= min_amount),
        updated_at=now,
    )

