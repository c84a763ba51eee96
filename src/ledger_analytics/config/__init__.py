"""Configuration module for ledger analytics."""

from ledger_analytics.config.logging import configure_logging, get_logger
from ledger_analytics.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "get_logger"]
