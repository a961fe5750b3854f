"""
Persistent reconciler process.

Loads settings, builds the AppContext, warms the caches from the store, starts
the cache sweepers and the scheduler, then waits for SIGINT/SIGTERM. Shutdown
stops the timer, lets an in-flight run finish and closes every resource.

Usage: python -m backend_reconciler.agent_worker.runtime
"""

from __future__ import annotations

import asyncio
import signal
import sys

from backend_reconciler.config import get_settings
from backend_reconciler.context import build_context
from backend_reconciler.core.exceptions import ConfigError
from backend_reconciler.database.cache_initializer import warm_cache
from backend_reconciler.recon_logging import configure_logging, get_logger

logger = get_logger(__name__)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support add_signal_handler.
            pass


async def run() -> None:
    settings = get_settings()
    configure_logging()
    context = build_context(settings)
    stop = asyncio.Event()
    _install_signal_handlers(stop)
    try:
        await warm_cache(context.store, context.participants, context.global_stats)
        context.start_background()
        phase = context.get_phase_status()
        logger.info(
            "runtime_started",
            phase_start=phase.start_date.isoformat(),
            phase_end=phase.end_date.isoformat(),
            registration_active=phase.is_registration_active,
            sync_interval_sec=settings.sync_interval_sec,
        )
        await stop.wait()
        logger.info("runtime_shutdown_signal")
    finally:
        await context.aclose()
        logger.info("runtime_stopped")


def main() -> int:
    """CLI entrypoint."""
    try:
        asyncio.run(run())
        return 0
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
        return 0
    except ConfigError as e:
        logger.error("runtime_config_error", error=str(e))
        return 2
    except Exception as e:
        logger.exception("runtime_fatal", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
