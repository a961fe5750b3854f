"""
Application settings built from environment variables.

get_settings() validates required values, applies defaults for optional ones
and returns a frozen Settings object shared through the AppContext.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from backend_reconciler.config.env import (
    get_database_url,
    get_solana_rpc_url,
    load_reconciler_env,
)
from backend_reconciler.core.exceptions import ConfigError
from backend_reconciler.solana_listener.rpc_client import MAX_SIGNATURES_PER_REQUEST

DEFAULT_SIG_PAGE_LIMIT = 50
DEFAULT_MAX_SIGS_PER_ADDRESS = 5000
DEFAULT_SYNC_INTERVAL_MINUTES = 60
DEFAULT_PHASE_END_DAYS = 1
DEFAULT_RPC_MIN_INTERVAL_MS = 300
DEFAULT_RPC_TIMEOUT_SEC = 30.0
DEFAULT_CACHE_TTL_SECONDS = 15 * 60
DEFAULT_PRICING_MIN_INTERVAL_MS = 1400


@dataclass(frozen=True)
class Settings:
    """Typed settings for the RPC client, reconciliation, scheduler, cache and pricing."""

    rpc_url: str
    target_address: str
    phase_start: datetime
    database_url: str
    phase_month_duration: int = 1
    min_amount: Decimal = Decimal("0")
    page_size: int = DEFAULT_SIG_PAGE_LIMIT
    max_signatures: int = DEFAULT_MAX_SIGS_PER_ADDRESS
    sync_interval_sec: float = DEFAULT_SYNC_INTERVAL_MINUTES * 60.0
    phase_end_after: timedelta = timedelta(days=DEFAULT_PHASE_END_DAYS)
    rpc_min_interval_sec: float = DEFAULT_RPC_MIN_INTERVAL_MS / 1000.0
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    cache_ttl_sec: float = float(DEFAULT_CACHE_TTL_SECONDS)
    pricing_api_keys: tuple[str, ...] = field(default_factory=tuple)
    pricing_min_interval_sec: float = DEFAULT_PRICING_MIN_INTERVAL_MS / 1000.0


def parse_phase_start(raw: str) -> datetime:
    """Parse an ISO-8601 date/datetime; naive values are taken as UTC."""
    try:
        value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ConfigError(f"PHASE_START_DATE is not an ISO-8601 date: {raw!r}") from e
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_int_in_range(name: str, default: int, minimum: int, maximum: int | None = None) -> int:
    value = _env_int(name, default)
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ConfigError(f"{name} must be {bounds}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise ConfigError(f"{name} must be a decimal amount, got {raw!r}") from e


def get_settings() -> Settings:
    """
    Return the current application settings.

    Raises ConfigError listing every missing required variable
    (WALLET_ADDRESS, PHASE_START_DATE), or for the first malformed or
    out-of-range one.
    """
    load_reconciler_env()
    target = (os.getenv("WALLET_ADDRESS") or "").strip()
    phase_start_raw = (os.getenv("PHASE_START_DATE") or "").strip()
    missing = [
        name
        for name, value in (("WALLET_ADDRESS", target), ("PHASE_START_DATE", phase_start_raw))
        if not value
    ]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    api_keys = tuple(
        k
        for k in (
            (os.getenv("SOLANA_TRACKER_API_KEY_PRIMARY") or "").strip(),
            (os.getenv("SOLANA_TRACKER_API_KEY_SECONDARY") or "").strip(),
        )
        if k
    )
    return Settings(
        rpc_url=get_solana_rpc_url(),
        target_address=target,
        phase_start=parse_phase_start(phase_start_raw),
        database_url=get_database_url(),
        phase_month_duration=_env_int("PHASE_MONTH_DURATION", 1),
        min_amount=_env_decimal("FARMER_MIN_SOL_AMOUNT", Decimal("0")),
        page_size=_env_int_in_range(
            "SIG_PAGE_LIMIT", DEFAULT_SIG_PAGE_LIMIT, 1, MAX_SIGNATURES_PER_REQUEST
        ),
        max_signatures=_env_int_in_range("MAX_SIGS_PER_ADDRESS", DEFAULT_MAX_SIGS_PER_ADDRESS, 1),
        sync_interval_sec=_env_float("SYNC_INTERVAL_MINUTES", DEFAULT_SYNC_INTERVAL_MINUTES) * 60.0,
        phase_end_after=timedelta(days=_env_float("PHASE_END_DAYS", DEFAULT_PHASE_END_DAYS)),
        rpc_min_interval_sec=_env_int("RPC_MIN_INTERVAL_MS", DEFAULT_RPC_MIN_INTERVAL_MS) / 1000.0,
        rpc_timeout_sec=_env_float("RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC),
        cache_ttl_sec=_env_float("CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS),
        pricing_api_keys=api_keys,
        pricing_min_interval_sec=_env_int("PRICING_MIN_INTERVAL_MS", DEFAULT_PRICING_MIN_INTERVAL_MS) / 1000.0,
    )
