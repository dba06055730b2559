"""
Configuration management for Luminote.
Settings live in a JSON file in the data directory; LUMINOTE_* environment
variables take precedence over the file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from .autosave import DEFAULT_AUTOSAVE_DELAY_SECONDS
from .paths import config_path, database_path
from .store import Backend, LocalBackend, RemoteBackend

logger = logging.getLogger(__name__)

BACKENDS = ("local", "remote")

ENV_OVERRIDES = {
    "backend": "LUMINOTE_BACKEND",
    "api_base_url": "LUMINOTE_API_URL",
    "api_key": "LUMINOTE_API_KEY",
    "local_database": "LUMINOTE_DATABASE",
    "autosave_delay_seconds": "LUMINOTE_AUTOSAVE_DELAY",
    "request_timeout_seconds": "LUMINOTE_REQUEST_TIMEOUT",
    "log_level": "LUMINOTE_LOG_LEVEL",
}

FLOAT_KEYS = {"autosave_delay_seconds", "request_timeout_seconds"}


class Config:
    """Manage application configuration"""

    def __init__(self, config_file: Path | None = None):
        self.config_file = Path(config_file) if config_file else config_path()
        self._config = self._load_config()

    def _load_config(self) -> dict[str, Any]:
        config = self._default_config()
        if self.config_file.exists():
            try:
                stored = json.loads(self.config_file.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.exception("Error loading config from %s", self.config_file)
            else:
                if isinstance(stored, dict):
                    config.update(stored)
        return config

    def _default_config(self) -> dict[str, Any]:
        return {
            "backend": "local",
            "api_base_url": "",
            "api_key": "",
            "local_database": str(database_path()),
            "autosave_delay_seconds": DEFAULT_AUTOSAVE_DELAY_SECONDS,
            "request_timeout_seconds": 15.0,
            "log_level": "WARNING",
        }

    def save(self) -> None:
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(json.dumps(self._config, indent=2), encoding="utf-8")
        except OSError:
            logger.exception("Error saving config to %s", self.config_file)

    def get(self, key: str, default: Any = None) -> Any:
        env_name = ENV_OVERRIDES.get(key)
        if env_name and os.environ.get(env_name):
            value: Any = os.environ[env_name]
        else:
            value = self._config.get(key, default)
        if key in FLOAT_KEYS:
            return _as_positive_float(value, self._default_config()[key])
        return value

    def set(self, key: str, value: Any) -> None:
        self._config[key] = value
        self.save()


def build_backend(config: Config) -> Backend:
    kind = str(config.get("backend", "local")).strip().lower()
    if kind not in BACKENDS:
        raise ValueError(f"Unsupported backend: {kind}")
    if kind == "remote":
        return RemoteBackend(
            base_url=str(config.get("api_base_url", "")),
            api_key=str(config.get("api_key", "")),
            timeout_seconds=config.get("request_timeout_seconds"),
        )
    return LocalBackend(Path(str(config.get("local_database"))).expanduser())


def _as_positive_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if parsed <= 0:
        return default
    return parsed
