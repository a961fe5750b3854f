"""
Data models for ledger RPC output.

SignatureInfo mirrors one getSignaturesForAddress result item; FetchedTransaction
pairs it with the jsonParsed getTransaction body (None when the node has no body).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SignatureInfo:
    """
    One getSignaturesForAddress entry for the target address.

    signature doubles as the `before` cursor for the next (older) page; err is
    the on-chain failure payload, None for successful transactions.
    """

    signature: str
    slot: int | None
    err: Any
    block_time: int | None  # Unix seconds; the node may omit it for old slots
    memo: str | None = None
    confirmation_status: str | None = None  # processed | confirmed | finalized

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "SignatureInfo":
        raw_time = item.get("blockTime")
        raw_slot = item.get("slot")
        return cls(
            signature=str(item["signature"]),
            slot=None if raw_slot is None else int(raw_slot),
            err=item.get("err"),
            block_time=int(raw_time) if isinstance(raw_time, (int, float)) else None,
            memo=item.get("memo"),
            confirmation_status=item.get("confirmationStatus"),
        )


@dataclass(frozen=True)
class FetchedTransaction:
    """A signature together with its parsed transaction body."""

    signature: str
    block_time: int | None
    body: dict[str, Any] | None
