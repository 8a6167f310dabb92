"""Core module for configuration and utilities."""

from discompress.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
