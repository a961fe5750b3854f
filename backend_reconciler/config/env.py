"""
Environment loading and endpoint resolution.

.env at the repository root is loaded once per call with override=False, so
variables already set in the process environment always win.

Ledger endpoint precedence: SOLANA_RPC_URL, then a Helius URL built from
HELIUS_API_KEY for SOLANA_NETWORK (mainnet | devnet, default mainnet), then
the cluster's public endpoint.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"
DEFAULT_DB_FILE = "reconciler.db"

PUBLIC_RPC_URLS = {
    "mainnet": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
}
HELIUS_RPC_URLS = {
    "mainnet": "https://mainnet.helius-rpc.com/?api-key={key}",
    "devnet": "https://devnet.helius-rpc.com/?api-key={key}",
}


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def load_reconciler_env() -> None:
    load_dotenv(ENV_FILE, override=False)


def get_solana_network() -> str:
    """'devnet' when SOLANA_NETWORK says so, otherwise 'mainnet'."""
    return "devnet" if _env("SOLANA_NETWORK").lower() == "devnet" else "mainnet"


def get_solana_rpc_url() -> str:
    explicit = _env("SOLANA_RPC_URL")
    if explicit:
        return explicit
    cluster = get_solana_network()
    helius_key = _env("HELIUS_API_KEY")
    if helius_key:
        return HELIUS_RPC_URLS[cluster].format(key=helius_key)
    return PUBLIC_RPC_URLS[cluster]


def get_database_url() -> str:
    """DATABASE_URL verbatim, else a SQLite file (RECONCILER_DB_PATH or reconciler.db at the repo root)."""
    explicit = _env("DATABASE_URL")
    if explicit:
        return explicit
    db_path = _env("RECONCILER_DB_PATH") or str(REPO_ROOT / DEFAULT_DB_FILE)
    return "sqlite:///" + db_path


def mask_rpc_url(url: str) -> str:
    """Hide an embedded api-key query value before the URL is logged."""
    head, marker, _ = url.partition("api-key=")
    return f"{head}{marker}***" if marker else url
