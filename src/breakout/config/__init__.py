"""
Configuration module for the breakout engine.

Exports the Settings models and get_settings for application-wide
configuration management.
"""

from .settings import (
    EntrySettings,
    FusionSettings,
    IndicatorSettings,
    LoggingSettings,
    PatternSettings,
    RiskSettings,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "IndicatorSettings",
    "PatternSettings",
    "FusionSettings",
    "RiskSettings",
    "EntrySettings",
    "LoggingSettings",
]
