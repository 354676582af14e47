"""Service configuration management."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pomobus.models import ServiceConfig

log = logging.getLogger(__name__)

_CONFIG_DIR = Path.home() / ".config" / "pomobus"
_CONFIG_FILE = _CONFIG_DIR / "config.json"


def load_config() -> ServiceConfig:
    """Load config from disk, returning defaults if none exists."""
    if _CONFIG_FILE.exists():
        try:
            data = json.loads(_CONFIG_FILE.read_text())
            return ServiceConfig(**data)
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            log.warning("Ignoring invalid config %s: %s", _CONFIG_FILE, exc)
    return ServiceConfig()


def save_config(config: ServiceConfig) -> Path:
    """Write config to disk. Returns the config file path."""
    _CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    _CONFIG_FILE.write_text(config.model_dump_json(indent=2))
    return _CONFIG_FILE


def update_config(**changes: Any) -> ServiceConfig:
    """Apply validated changes on top of the stored config and save it."""
    current = load_config()
    config = ServiceConfig(**{**current.model_dump(), **changes})
    save_config(config)
    return config


def reset_config() -> ServiceConfig:
    """Remove the stored config, going back to defaults."""
    if _CONFIG_FILE.exists():
        _CONFIG_FILE.unlink()
    return ServiceConfig()
