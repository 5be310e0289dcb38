"""Core configuration."""

from .config import DEFAULT_CALLBACK_PORT, Settings, resolve_credentials

__all__ = ["DEFAULT_CALLBACK_PORT", "Settings", "resolve_credentials"]
