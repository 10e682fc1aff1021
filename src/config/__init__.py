"""Configuration package."""

from src.config.settings import (
    AppSettings,
    CloudinarySettings,
    FirebaseAuthSettings,
    FirestoreSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CloudinarySettings",
    "FirebaseAuthSettings",
    "FirestoreSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
