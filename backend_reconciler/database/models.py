"""
Domain models for stored entities.

Participant (one tracked wallet per participant) and the GlobalStats singleton.
Both are immutable; every change returns a new instance. They convert to and
from plain store items themselves, so any KeyValueStore can hold them.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from backend_reconciler.utils.wallet_utils import is_valid_wallet, short_wallet

PARTICIPANT_ITEM_TYPE = "participant"
GLOBAL_STATS_ITEM_TYPE = "global_stats"


def _now() -> int:
    return int(time.time())


@dataclass(frozen=True)
class Participant:
    """Tracked participant and the net amount reconciled for its wallet."""

    participant_id: str
    wallet_address: str
    invested_amount: Decimal
    created_at: int
    """Unix timestamp (seconds)."""
    updated_at: int
    """Unix timestamp (seconds) of the last amount change."""

    def __post_init__(self) -> None:
        if self.invested_amount < 0:
            raise ValueError("Invested amount cannot be negative")

    @classmethod
    def create(
        cls,
        participant_id: str,
        wallet_address: str,
        invested_amount: Decimal = Decimal(0),
    ) -> "Participant":
        if not participant_id or not participant_id.strip():
            raise ValueError("Participant id is required")
        if not wallet_address or not is_valid_wallet(wallet_address):
            raise ValueError(f"Invalid wallet address: {wallet_address!r}")
        now = _now()
        return cls(
            participant_id=participant_id.strip(),
            wallet_address=wallet_address.strip(),
            invested_amount=Decimal(invested_amount),
            created_at=now,
            updated_at=now,
        )

    @property
    def short_wallet(self) -> str:
        return short_wallet(self.wallet_address)

    def with_invested_amount(self, amount: Decimal) -> "Participant":
        if amount < 0:
            raise ValueError("Invested amount cannot be negative")
        return replace(self, invested_amount=Decimal(amount), updated_at=_now())

    def to_item(self) -> dict[str, Any]:
        """Store representation; Decimal kept as string to avoid precision loss."""
        return {
            "type": PARTICIPANT_ITEM_TYPE,
            "participantId": self.participant_id,
            "walletAddress": self.wallet_address,
            "investedAmount": str(self.invested_amount),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Participant":
        return cls(
            participant_id=item["participantId"],
            wallet_address=item["walletAddress"],
            invested_amount=Decimal(str(item.get("investedAmount", "0"))),
            created_at=int(item.get("createdAt", 0)),
            updated_at=int(item.get("updatedAt", 0)),
        )


@dataclass(frozen=True)
class GlobalStats:
    """Aggregate figures across all participants (singleton record)."""

    total_invested: Decimal
    participant_count: int
    active_participants: int
    updated_at: int

    def __post_init__(self) -> None:
        if self.total_invested < 0:
            raise ValueError("Total invested cannot be negative")
        if self.participant_count < 0:
            raise ValueError("Participant count cannot be negative")
        if self.active_participants < 0:
            raise ValueError("Active participants count cannot be negative")
        if self.active_participants > self.participant_count:
            raise ValueError("Active participants cannot exceed total participants")

    @classmethod
    def empty(cls) -> "GlobalStats":
        return cls(
            total_invested=Decimal(0),
            participant_count=0,
            active_participants=0,
            updated_at=_now(),
        )

    def increment_participant(self, invested_amount: Decimal, min_amount: Decimal) -> "GlobalStats":
        active = self.active_participants + (1 if invested_amount >= min_amount else 0)
        return GlobalStats(
            total_invested=self.total_invested + invested_amount,
            participant_count=self.participant_count + 1,
            active_participants=active,
            updated_at=_now(),
        )

    def decrement_participant(self, invested_amount: Decimal, min_amount: Decimal) -> "GlobalStats":
        active = self.active_participants
        if invested_amount >= min_amount:
            active = max(0, active - 1)
        count = max(0, self.participant_count - 1)
        return GlobalStats(
            total_invested=max(Decimal(0), self.total_invested - invested_amount),
            participant_count=count,
            active_participants=min(active, count),
            updated_at=_now(),
        )

    def update_invested_amount(
        self,
        old_amount: Decimal,
        new_amount: Decimal,
        min_amount: Decimal,
    ) -> "GlobalStats":
        was_active = old_amount >= min_amount
        is_active = new_amount >= min_amount
        change = 0
        if is_active and not was_active:
            change = 1
        elif was_active and not is_active:
            change = -1
        return GlobalStats(
            total_invested=max(Decimal(0), self.total_invested + (new_amount - old_amount)),
            participant_count=self.participant_count,
            active_participants=max(0, self.active_participants + change),
            updated_at=_now(),
        )

    def to_item(self) -> dict[str, Any]:
        return {
            "type": GLOBAL_STATS_ITEM_TYPE,
            "totalInvested": str(self.total_invested),
            "participantCount": self.participant_count,
            "activeParticipants": self.active_participants,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "GlobalStats":
        return cls(
            total_invested=Decimal(str(item.get("totalInvested", "0"))),
            participant_count=int(item.get("participantCount", 0)),
            active_participants=int(item.get("activeParticipants", 0)),
            updated_at=int(item.get("updatedAt", 0)),
        )
