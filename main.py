"""
Main entrypoint: run the reconciler (scheduler + cache sweepers) until SIGINT/SIGTERM.

Env: WALLET_ADDRESS, PHASE_START_DATE (required); SOLANA_RPC_URL or HELIUS_API_KEY,
DATABASE_URL / RECONCILER_DB_PATH, SYNC_INTERVAL_MINUTES, etc. (see backend_reconciler.config.settings).
"""

import sys

from backend_reconciler.agent_worker.runtime import main

if __name__ == "__main__":
    sys.exit(main())
