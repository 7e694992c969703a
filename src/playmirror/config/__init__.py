"""Configuration module for PlayMirror."""

from .settings import (
    DatabaseSettings,
    ImporterSettings,
    MatchingSettings,
    ObservabilitySettings,
    Settings,
    SyncSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "ImporterSettings",
    "MatchingSettings",
    "ObservabilitySettings",
    "Settings",
    "SyncSettings",
    "get_settings",
]
