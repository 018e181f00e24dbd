"""Application configuration."""

from ui_catalog.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
