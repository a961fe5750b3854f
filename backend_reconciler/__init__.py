"""
Backend reconciler: phase participation tracking on Solana.

Scans the target wallet's on-chain history, attributes native SOL transfers to
registered participant wallets and keeps per-participant and global investment
figures current in a cache-fronted store. Modular layout: ledger access in
solana_listener, aggregation in analysis_engine, the sync run in agent_worker,
timing in scheduler, storage in database and auxiliary token prices in pricing.
"""

__version__ = "0.1.0"
