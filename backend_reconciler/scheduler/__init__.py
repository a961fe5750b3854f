"""Periodic reconciliation scheduling and phase window helpers."""

from backend_reconciler.scheduler.engine import NextRun, SchedulerStatus, SyncScheduler
from backend_reconciler.scheduler.phase import PhaseStatus, calculate_phase_status, is_phase_ended

__all__ = [
    "NextRun",
    "PhaseStatus",
    "SchedulerStatus",
    "SyncScheduler",
    "calculate_phase_status",
    "is_phase_ended",
]
