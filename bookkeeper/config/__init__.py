"""Configuration package."""

from bookkeeper.config.settings import (
    AppSettings,
    DispatchSettings,
    GoogleSheetsSettings,
    ResolverSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DispatchSettings",
    "GoogleSheetsSettings",
    "ResolverSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
