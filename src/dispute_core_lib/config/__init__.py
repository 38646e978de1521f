"""Configuration"""

from dispute_core_lib.config.settings import (
    RedisSettings,
    Settings,
    get_settings,
    reset_settings,
)

__all__ = [
    "RedisSettings",
    "Settings",
    "get_settings",
    "reset_settings",
]
