"""Configuration module for PriceScout."""

from pricescout.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
