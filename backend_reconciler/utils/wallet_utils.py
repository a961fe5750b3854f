"""Wallet validation utilities."""

from solders.pubkey import Pubkey


def is_valid_wallet(w: str) -> bool:
    """Return True if w is a valid Solana wallet (Pubkey) address."""
    try:
        Pubkey.from_string(w.strip())
        return True
    except Exception:
        return False


def short_wallet(w: str) -> str:
    """First and last 8 characters, for log lines and display."""
    if len(w) <= 16:
        return w
    return f"{w[:8]}...{w[-8:]}"
