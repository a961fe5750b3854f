"""
Core: the exception hierarchy shared by every layer.

Used by the ledger client, repositories, orchestrator and scheduler.
"""
