"""Shared helpers: request queue, retry policy, wallet validation."""
