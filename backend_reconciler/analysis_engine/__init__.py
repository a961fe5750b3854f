"""
Analysis engine package: per-wallet aggregation of attributed transfers.

Consumes fetched transactions from the solana_listener scanner and produces
per-wallet totals used by the sync orchestrator.
"""

from backend_reconciler.analysis_engine.aggregator import (
    LAMPORTS_PER_SOL,
    AggregateRecord,
    WalletDetails,
    WalletTransaction,
    aggregate,
    build_wallet_details,
    lamports_to_sol,
)

__all__ = [
    "LAMPORTS_PER_SOL",
    "AggregateRecord",
    "WalletDetails",
    "WalletTransaction",
    "aggregate",
    "build_wallet_details",
    "lamports_to_sol",
]
