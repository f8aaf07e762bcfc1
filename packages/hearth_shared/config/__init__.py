"""Public API for shared Hearth configuration utilities."""

from .loader import load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    ComponentsSettings,
    DatabaseSettings,
    HearthSettings,
    LoggingSettings,
    resolve_component_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ComponentsSettings",
    "DatabaseSettings",
    "HearthSettings",
    "LoggingSettings",
    "load_settings",
    "resolve_component_settings",
]
