"""Project configuration management."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Optional

from src import paths


class ProjectConfig:
    """Access to project configuration values."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return

        config_path = paths.get_config_file()
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    self._data = json.load(f)
            except (OSError, ValueError):
                # If config fails to load, we treat it as empty
                self._data = {}
            if not isinstance(self._data, dict):
                self._data = {}

        self._loaded = True

    @property
    def model(self) -> str:
        """Get the configured LLM model, defaulting to gpt-4o-mini."""
        self._ensure_loaded()
        return self._data.get("model", "gpt-4o-mini")

    @property
    def api_url(self) -> Optional[str]:
        """Get the configured LLM endpoint base URL."""
        self._ensure_loaded()
        return self._data.get("api_url")

    @property
    def user_agent(self) -> Optional[str]:
        """Get the user agent override for page fetches."""
        self._ensure_loaded()
        return self._data.get("user_agent")

    @property
    def request_timeout(self) -> Optional[float]:
        """Get the per-request timeout in seconds."""
        self._ensure_loaded()
        value = self._data.get("request_timeout")
        return float(value) if value is not None else None

    @property
    def max_pages(self) -> Optional[int]:
        """Get the default page cap for sources that do not set one."""
        self._ensure_loaded()
        value = self._data.get("max_pages")
        return int(value) if value is not None else None

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw configuration value."""
        self._ensure_loaded()
        return self._data.get(key, default)


@lru_cache(maxsize=1)
def get_config() -> ProjectConfig:
    """Get the singleton configuration instance."""
    return ProjectConfig()
