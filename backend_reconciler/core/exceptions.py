"""
Application-level exceptions.

Upstream failures are split into transient (retried with backoff) and
permanent (surfaced immediately). Orchestration failures are wrapped in
ReconciliationError after being recorded into the sync status.
"""

from __future__ import annotations


class ReconcilerError(Exception):
    """Base class for all reconciler errors."""


class ConfigError(ReconcilerError):
    """Missing or invalid configuration value(s)."""


class UpstreamError(ReconcilerError):
    """A call to an upstream service (ledger RPC, pricing API) failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientUpstreamError(UpstreamError):
    """Rate-limited, timed out, 5xx or connection reset. Safe to retry."""


class PermanentUpstreamError(UpstreamError):
    """Malformed request, invalid params or not found. Never retried."""


class AllClientsFailedError(UpstreamError):
    """Every client behind a load balancer failed or returned nothing."""


class ReconciliationError(ReconcilerError):
    """A reconciliation run failed; the cause is chained."""


class SyncBusyError(ReconcilerError):
    """A reconciliation run is already in flight."""


class ItemExistsError(ReconcilerError):
    """Conditional put failed: the key already exists in the store."""


class ItemNotFoundError(ReconcilerError):
    """Update targeted a key that does not exist in the store."""
