"""
Participant registration outside reconciliation.

Linking and unlinking a wallet adjusts GlobalStats incrementally; the next
reconciliation run recomputes the stats in full and corrects any drift.
Mutations are serialized by one asyncio.Lock: the wallet-ownership check and
the insert, and each stats read-modify-write, happen with no other mutation
interleaved.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from backend_reconciler.core.exceptions import ItemExistsError, ItemNotFoundError
from backend_reconciler.database.models import Participant
from backend_reconciler.database.repositories import GlobalStatsRepository, ParticipantRepository
from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)


class ParticipantService:
    def __init__(
        self,
        participants: ParticipantRepository,
        global_stats: GlobalStatsRepository,
        min_amount: Decimal = Decimal(0),
    ) -> None:
        self._participants = participants
        self._global_stats = global_stats
        self._min_amount = min_amount
        self._lock = asyncio.Lock()

    async def register(self, participant_id: str, wallet_address: str) -> Participant:
        """
        Link a wallet to a participant.

        Raises ValueError for an invalid id or address, ItemExistsError when the
        participant already has a wallet or the wallet belongs to someone else.
        """
        participant = Participant.create(participant_id, wallet_address)
        async with self._lock:
            existing = await self._participants.get(participant.participant_id)
            if existing is not None:
                raise ItemExistsError(
                    f"Participant {participant.participant_id} already linked to {existing.short_wallet}"
                )
            owner = await self._participants.find_by_wallet(participant.wallet_address)
            if owner is not None:
                raise ItemExistsError(f"Wallet {participant.short_wallet} already linked")

            await self._participants.create(participant)
            stats = await self._global_stats.get()
            await self._global_stats.set(
                stats.increment_participant(participant.invested_amount, self._min_amount)
            )
        logger.info(
            "participant_registered",
            participant_id=participant.participant_id,
            wallet_id=participant.short_wallet,
        )
        return participant

    async def unlink(self, participant_id: str) -> Participant | None:
        """Remove the participant; returns what was removed, None if unknown."""
        async with self._lock:
            participant = await self._participants.get(participant_id)
            if participant is None:
                logger.debug("participant_unlink_unknown", participant_id=participant_id)
                return None
            await self._participants.remove(participant_id)
            stats = await self._global_stats.get()
            await self._global_stats.set(
                stats.decrement_participant(participant.invested_amount, self._min_amount)
            )
        logger.info(
            "participant_unlinked",
            participant_id=participant_id,
            wallet_id=participant.short_wallet,
        )
        return participant

    async def set_invested_amount(self, participant_id: str, amount: Decimal) -> Participant:
        """Administrative correction of one participant's amount. Raises ItemNotFoundError."""
        async with self._lock:
            participant = await self._participants.get(participant_id)
            if participant is None:
                raise ItemNotFoundError(f"Participant not found: {participant_id}")
            updated = await self._participants.update_invested_amount(
                participant.with_invested_amount(amount)
            )
            stats = await self._global_stats.get()
            await self._global_stats.set(
                stats.update_invested_amount(participant.invested_amount, updated.invested_amount, self._min_amount)
            )
        return updated
