"""Configuration package."""

from .settings import (
    Settings,
    BrowserSettings,
    LLMSettings,
    RecoverySettings,
    LocatorSettings,
    DOMProcessorSettings,
    LoggingSettings,
    settings,
)

__all__ = [
    "Settings",
    "BrowserSettings",
    "LLMSettings",
    "RecoverySettings",
    "LocatorSettings",
    "DOMProcessorSettings",
    "LoggingSettings",
    "settings",
]
