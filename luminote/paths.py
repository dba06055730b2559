from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "Luminote"


def data_directory() -> Path:
    override = os.environ.get("LUMINOTE_HOME")
    if override:
        return Path(override).expanduser()
    if os.name == "nt":
        local_appdata = os.environ.get("LOCALAPPDATA")
        base = Path(local_appdata) if local_appdata else Path.home() / "AppData" / "Local"
        return base / APP_DIR_NAME
    xdg_data = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg_data) if xdg_data else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME.lower()


def config_path() -> Path:
    return data_directory() / "config.json"


def database_path() -> Path:
    return data_directory() / "luminote.sqlite3"


def ensure_directories() -> None:
    data_directory().mkdir(parents=True, exist_ok=True)
