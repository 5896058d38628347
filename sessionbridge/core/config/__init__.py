"""Configuration package."""

from .settings import BridgeSettings, get_settings, reset_settings

__all__ = ["BridgeSettings", "get_settings", "reset_settings"]
