"""
Per-wallet aggregation of classified native transfers.

Folds the target address's transaction history into one AggregateRecord per
tracked wallet: transfers into the target are credited to their source wallet,
transfers out of the target are debited from their destination wallet.
Deterministic for a fixed history and cutoff.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Literal

from backend_reconciler.solana_listener.models import FetchedTransaction
from backend_reconciler.solana_listener.parser import (
    extract_instructions,
    is_failed,
    is_transfer_into,
    is_transfer_out_of,
)

LAMPORTS_PER_SOL = 1_000_000_000

Direction = Literal["in", "out"]


def lamports_to_sol(lamports: int) -> Decimal:
    """Exact conversion; never goes through float."""
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)


@dataclass(frozen=True)
class WalletTransaction:
    """One attributed transfer. amount is signed: positive in, negative out."""

    timestamp: int
    tx_id: str
    amount: Decimal
    direction: Direction

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "tx_id": self.tx_id,
            "amount": str(self.amount),
            "direction": self.direction,
        }


@dataclass
class AggregateRecord:
    """Scan-scoped running totals for one tracked wallet."""

    in_amount: Decimal = Decimal(0)
    in_tx_ids: set[str] = field(default_factory=set)
    out_amount: Decimal = Decimal(0)
    out_tx_ids: set[str] = field(default_factory=set)
    transactions: list[WalletTransaction] = field(default_factory=list)

    @property
    def net_amount(self) -> Decimal:
        return sum((t.amount for t in self.transactions), Decimal(0))


@dataclass(frozen=True)
class WalletDetails:
    """Net (unclamped) amount and chronological transfers for one wallet."""

    wallet: str
    amount: Decimal
    transactions: tuple[WalletTransaction, ...] = ()


def _credit(record: AggregateRecord, tx_id: str, block_time: int, lamports: int) -> None:
    if tx_id in record.in_tx_ids:
        return
    amount = lamports_to_sol(lamports)
    record.in_tx_ids.add(tx_id)
    record.in_amount += amount
    record.transactions.append(
        WalletTransaction(timestamp=block_time, tx_id=tx_id, amount=amount, direction="in")
    )


def _debit(record: AggregateRecord, tx_id: str, block_time: int, lamports: int) -> None:
    if tx_id in record.out_tx_ids:
        return
    amount = lamports_to_sol(lamports)
    record.out_tx_ids.add(tx_id)
    record.out_amount += amount
    record.transactions.append(
        WalletTransaction(timestamp=block_time, tx_id=tx_id, amount=-amount, direction="out")
    )


def aggregate(
    transactions: Iterable[FetchedTransaction],
    tracked_wallets: Iterable[str],
    cutoff: int,
    target: str,
) -> dict[str, AggregateRecord]:
    """
    Build per-wallet aggregates for transactions strictly older than cutoff.

    Every tracked wallet (except the target itself) gets a record, even when
    nothing is attributed to it. Transactions with no block time, no body or
    a failed status contribute nothing. A transaction id counts at most once
    per direction per wallet, so a transfer visible both as a top-level and an
    inner instruction is not double counted.
    """
    records: dict[str, AggregateRecord] = {
        wallet: AggregateRecord() for wallet in tracked_wallets if wallet != target
    }
    for fetched in transactions:
        block_time = fetched.block_time
        if block_time is None or block_time >= cutoff:
            continue
        if is_failed(fetched.body):
            continue
        for ix in extract_instructions(fetched.body):
            if is_transfer_into(ix, target):
                record = records.get(ix.source)
                if record is not None:
                    _credit(record, fetched.signature, block_time, ix.lamports)
            elif is_transfer_out_of(ix, target):
                record = records.get(ix.destination)
                if record is not None:
                    _debit(record, fetched.signature, block_time, ix.lamports)
    return records


def build_wallet_details(
    wallets: Iterable[str],
    records: dict[str, AggregateRecord],
) -> list[WalletDetails]:
    """One WalletDetails per requested wallet, in request order; unknown wallets are zero."""
    details: list[WalletDetails] = []
    for wallet in wallets:
        record = records.get(wallet)
        if record is None:
            details.append(WalletDetails(wallet=wallet, amount=Decimal(0)))
            continue
        ordered = sorted(record.transactions, key=lambda t: t.timestamp)
        details.append(
            WalletDetails(wallet=wallet, amount=record.net_amount, transactions=tuple(ordered))
        )
    return details
