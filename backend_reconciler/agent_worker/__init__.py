"""Reconciliation worker: sync orchestrator and the long-running process entrypoint."""

from backend_reconciler.agent_worker.orchestrator import SyncOrchestrator, SyncStage, SyncStatus

__all__ = ["SyncOrchestrator", "SyncStage", "SyncStatus"]
