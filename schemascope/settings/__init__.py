"""Settings module for schemascope."""

from .settings import InferenceSettings, get_settings, reset_settings

__all__ = ["InferenceSettings", "get_settings", "reset_settings"]
