"""
Solana ledger access: JSON-RPC client, paced/retrying wrapper, history scanner
and the instruction classifier that turns parsed transactions into transfers.
"""

from backend_reconciler.solana_listener.models import FetchedTransaction, SignatureInfo
from backend_reconciler.solana_listener.parser import (
    NativeTransfer,
    Unclassified,
    extract_instructions,
    is_transfer_into,
    is_transfer_out_of,
)
from backend_reconciler.solana_listener.rpc import RetryingRpc
from backend_reconciler.solana_listener.rpc_client import SolanaRpcClient
from backend_reconciler.solana_listener.scanner import TransactionScanner

__all__ = [
    "FetchedTransaction",
    "NativeTransfer",
    "RetryingRpc",
    "SignatureInfo",
    "SolanaRpcClient",
    "TransactionScanner",
    "Unclassified",
    "extract_instructions",
    "is_transfer_into",
    "is_transfer_out_of",
]
