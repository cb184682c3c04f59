"""Configuration module for the cafe ledger."""

from cafe_ledger.config.logging import configure_logging, get_logger
from cafe_ledger.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "get_logger"]
