"""
Structured logging for the reconciler.

Use get_logger(__name__) in every module; a sync run binds run_id/cutoff with
bind_run_context() so nested components inherit them.
"""

from backend_reconciler.recon_logging.logger import (
    bind_run_context,
    clear_run_context,
    configure_logging,
    get_logger,
)

__all__ = ["bind_run_context", "clear_run_context", "configure_logging", "get_logger"]
