"""
Transaction history scanner.

Pages backward through an address's signature history using the `before`
cursor, then fetches the parsed body of each retained signature. All calls go
through RetryingRpc.
"""

from __future__ import annotations

from typing import Callable

from backend_reconciler.recon_logging import get_logger
from backend_reconciler.solana_listener.models import FetchedTransaction, SignatureInfo
from backend_reconciler.solana_listener.rpc import RetryingRpc
from backend_reconciler.utils.wallet_utils import short_wallet

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_TOTAL = 5000


class TransactionScanner:
    """Signature paging and transaction body fetching for one RPC endpoint."""

    def __init__(self, rpc: RetryingRpc) -> None:
        self._rpc = rpc

    async def scan_signatures(
        self,
        address: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_total: int = DEFAULT_MAX_TOTAL,
        cutoff: int | None = None,
    ) -> list[SignatureInfo]:
        """
        Collect up to max_total signatures, newest first.

        Stops on an empty page, on max_total, or when cutoff (Unix seconds) is
        given and the oldest signature of a page is older than it. The cutoff
        exit only saves calls; callers re-filter by block time themselves.
        """
        collected: list[SignatureInfo] = []
        before: str | None = None
        pages = 0
        while len(collected) < max_total:
            limit = min(page_size, max_total - len(collected))
            page = await self._rpc.get_signatures_for_address(address, limit=limit, before=before)
            pages += 1
            if not page:
                break
            collected.extend(page)
            oldest = page[-1]
            before = oldest.signature
            if cutoff is not None and oldest.block_time is not None and oldest.block_time < cutoff:
                break
        logger.info(
            "scanner_signatures_collected",
            wallet_id=short_wallet(address),
            signature_count=len(collected),
            pages=pages,
            max_total=max_total,
        )
        return collected

    async def fetch_transactions(
        self,
        signatures: list[SignatureInfo],
        on_progress: Callable[[int], None] | None = None,
    ) -> list[FetchedTransaction]:
        """Fetch parsed bodies one by one (the queue paces them); on_progress gets the running count."""
        fetched: list[FetchedTransaction] = []
        for info in signatures:
            body = await self._rpc.get_parsed_transaction(info.signature)
            fetched.append(
                FetchedTransaction(signature=info.signature, block_time=info.block_time, body=body)
            )
            if on_progress is not None:
                on_progress(len(fetched))
        return fetched
