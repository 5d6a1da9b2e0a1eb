"""Configuration package."""

from cashflow.config.settings import (
    EngineSettings,
    GoogleSheetsSettings,
    MONTH_PATTERN,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "EngineSettings",
    "GoogleSheetsSettings",
    "MONTH_PATTERN",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
