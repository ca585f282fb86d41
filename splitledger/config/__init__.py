"""Configuration package."""

from splitledger.config.settings import (
    ROUNDING_STRATEGIES,
    AppSettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "ROUNDING_STRATEGIES",
    "AppSettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
