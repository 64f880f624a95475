"""Configuration package."""

from organizer.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleOAuthSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleOAuthSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
