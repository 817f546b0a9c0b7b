"""User configuration for pack-image-fetch.

Reads ``$PACK_HOME/config.json``::

    {
        "registry-mirrors": {"index.docker.io": "mirror.gcr.io"},
        "pull-policy": "daily"
    }

A missing or unreadable file yields the defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pack_fetch.constants import get_config_path
from pack_fetch.utils import log_debug, log_warn


class FetchConfig(BaseModel):
    """Settings read from the user configuration file."""

    model_config = ConfigDict(populate_by_name=True)

    registry_mirrors: dict[str, str] = Field(default_factory=dict, alias="registry-mirrors")
    """Registry host (or ``*``) -> mirror host."""

    pull_policy: str = Field(default="", alias="pull-policy")
    """Default pull policy expression when none is given on the command line."""


def load_json(path: str | Path) -> dict[str, Any]:
    """Load a JSON file, returning empty dict on missing/invalid file.

    Args:
        path: Path to JSON file to load.

    Returns:
        Dictionary containing JSON data, or empty dict if file is missing/invalid.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            return data
    except FileNotFoundError:
        pass
    except (json.JSONDecodeError, OSError) as exc:
        log_warn(f"Ignoring unreadable config {path}: {exc}")
    return {}


def load_config(path: str | Path | None = None) -> FetchConfig:
    """Load the user configuration, falling back to defaults."""
    config_path = Path(path) if path is not None else get_config_path()
    data = load_json(config_path)
    try:
        config = FetchConfig.model_validate(data)
    except ValidationError as exc:
        log_warn(f"Ignoring invalid config {config_path}: {exc}")
        return FetchConfig()
    log_debug(f"Loaded config from {config_path}")
    return config
