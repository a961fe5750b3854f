"""
Configuration management for the reconciler.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for all service configuration.
"""

from backend_reconciler.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
