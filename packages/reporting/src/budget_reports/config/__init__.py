"""Configuration module for budget reports."""

from budget_reports.config.logging import configure_logging
from budget_reports.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
