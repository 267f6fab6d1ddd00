"""Configuration: optional YAML file + .env overlay."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from atspi_watch.core.errors import WatchConfigurationError

DEFAULTS: dict[str, Any] = {
    "log_level": "INFO",
    "show_event_details": False,
    "bus_address": None,
}


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str | Path | None) -> dict[str, Any]:
    """Load config from YAML file. Use SafeLoader. Returns raw dict ({} if absent)."""
    if path is None:
        return {}
    path = Path(path)
    if not path.exists():
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise WatchConfigurationError(
            f"Invalid YAML in {path}: {exc}",
            code="invalid_yaml",
            details={"path": str(path)},
            original_error=exc,
        ) from exc
    return data if isinstance(data, dict) else {}


def load_config_with_env(path: str | Path | None) -> dict[str, Any]:
    """Load .env (python-dotenv) into the process env, then the YAML file."""
    from dotenv import load_dotenv

    load_dotenv()
    return load_config(path)


class Config:
    """Config accessor over defaults merged with file values."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = _deep_update(DEFAULTS, data or {})

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    @property
    def log_level(self) -> str:
        """Log level used when neither --verbose nor LOG_LEVEL is given."""
        return str(self._data.get("log_level") or "INFO").upper()

    @property
    def show_event_details(self) -> bool:
        """Print the decoded event after each cache event's signature line."""
        return bool(self._data.get("show_event_details", False))

    @property
    def bus_address(self) -> str | None:
        """Accessibility bus address; AT_SPI_BUS_ADDRESS still takes precedence."""
        value = self._data.get("bus_address")
        return str(value) if value else None
