"""Settings loading with the standard Hearth precedence cascade.

The cascade is always:
1) Explicit overrides passed by the caller
2) Environment variables
3) YAML config file (``~/.config/hearth/hearth.yml`` unless a path is given)
4) Built-in defaults

Environment variable format:
- Prefix: ``HEARTH_``
- Nested keys: ``__`` separator
- Example: ``HEARTH_LOGGING__LEVEL=DEBUG`` -> ``logging.level = "DEBUG"``
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic_settings import SettingsConfigDict

from .models import DEFAULT_CONFIG_PATH, HearthSettings


def load_settings(
    *,
    config_path: str | Path | None = None,
    **overrides: Any,
) -> HearthSettings:
    """Load settings, reading YAML from ``config_path`` when provided."""
    resolved = Path(config_path).expanduser() if config_path is not None else DEFAULT_CONFIG_PATH
    if config_path is not None and not resolved.exists():
        raise FileNotFoundError(f"config file not found: {resolved}")

    class _FileBoundSettings(HearthSettings):
        model_config = SettingsConfigDict(yaml_file=resolved)

    return _FileBoundSettings(**overrides)
