"""Filesystem locations used by the ingestion pipeline."""

from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_DATA_ROOT = Path("data") / "brain"
_DEFAULT_CONFIG_FILE = Path("config.json")


def get_data_root() -> Path:
    """Return the root directory for sources, jobs and facts."""
    override = os.environ.get("BRAIN_DATA_ROOT")
    if override:
        return Path(override)
    return _DEFAULT_DATA_ROOT


def get_config_file() -> Path:
    """Return the path of the optional JSON project configuration."""
    override = os.environ.get("BRAIN_CONFIG_FILE")
    if override:
        return Path(override)
    return _DEFAULT_CONFIG_FILE
