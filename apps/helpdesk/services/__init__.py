"""Service layer exports."""

from .settings import SettingNotFoundError, SettingsStore

__all__ = [
    "SettingNotFoundError",
    "SettingsStore",
]
