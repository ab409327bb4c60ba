"""
Configuration management for the Backend X402 gateway.

Loads settings from environment variables and an optional project-root .env.
Exposes a single source of truth for all service configuration.
"""

from backend_x402.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
