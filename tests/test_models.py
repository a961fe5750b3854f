"""
Tests for Participant and GlobalStats domain rules.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_reconciler.database.models import GlobalStats, Participant

from conftest import WALLET_A

MIN = Decimal("1")


def test_participant_create_validates_inputs():
    p = Participant.create(" user-1 ", WALLET_A)
    assert p.participant_id == "user-1"
    assert p.invested_amount == Decimal(0)
    assert p.short_wallet == f"{WALLET_A[:8]}...{WALLET_A[-8:]}"

    with pytest.raises(ValueError):
        Participant.create("", WALLET_A)
    with pytest.raises(ValueError):
        Participant.create("user-1", "not-a-wallet")


def test_participant_amount_never_negative():
    p = Participant.create("user-1", WALLET_A)
    with pytest.raises(ValueError):
        p.with_invested_amount(Decimal("-0.1"))
    updated = p.with_invested_amount(Decimal("2.5"))
    assert updated.invested_amount == Decimal("2.5")
    assert p.invested_amount == Decimal(0)


def test_participant_item_keeps_decimal_precision():
    p = Participant.create("user-1", WALLET_A).with_invested_amount(Decimal("0.000000001"))
    item = p.to_item()
    assert isinstance(item["investedAmount"], str)
    assert Decimal(item["investedAmount"]) == Decimal("0.000000001")
    assert Participant.from_item(item) == p


def test_global_stats_invariants():
    with pytest.raises(ValueError):
        GlobalStats(Decimal(0), participant_count=1, active_participants=2, updated_at=0)
    with pytest.raises(ValueError):
        GlobalStats(Decimal(-1), participant_count=0, active_participants=0, updated_at=0)
    with pytest.raises(ValueError):
        GlobalStats(Decimal(0), participant_count=-1, active_participants=0, updated_at=0)


def test_increment_and_decrement_track_active_threshold():
    stats = GlobalStats.empty()
    stats = stats.increment_participant(Decimal(0), MIN)
    stats = stats.increment_participant(Decimal(3), MIN)
    assert (stats.participant_count, stats.active_participants, stats.total_invested) == (2, 1, Decimal(3))

    stats = stats.decrement_participant(Decimal(3), MIN)
    assert (stats.participant_count, stats.active_participants, stats.total_invested) == (1, 0, Decimal(0))

    # Clamped at zero even when asked to remove more than exists.
    stats = stats.decrement_participant(Decimal(5), MIN).decrement_participant(Decimal(5), MIN)
    assert (stats.participant_count, stats.active_participants, stats.total_invested) == (0, 0, Decimal(0))


def test_update_invested_amount_crossing_threshold():
    stats = GlobalStats(Decimal("0.5"), participant_count=1, active_participants=0, updated_at=0)
    up = stats.update_invested_amount(Decimal("0.5"), Decimal(2), MIN)
    assert up.active_participants == 1
    assert up.total_invested == Decimal(2)

    down = up.update_invested_amount(Decimal(2), Decimal("0.1"), MIN)
    assert down.active_participants == 0
    assert down.total_invested == Decimal("0.1")


def test_global_stats_item_round_trip():
    stats = GlobalStats(Decimal("12.5"), participant_count=3, active_participants=2, updated_at=42)
    assert GlobalStats.from_item(stats.to_item()) == stats
    assert stats.to_item()["type"] == "global_stats"
