"""Configuration loader for Code ∧ Break.

Handles loading, saving, and default creation of the JSON settings files.
Resolves platform-appropriate data directories:
  - macOS:   ~/Library/Application Support/CodeBreak
  - Windows: %APPDATA%/CodeBreak
  - Other:   ~/.codebreak
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from codebreak.core.models import POMODORO_PROFILE_NAME

logger = logging.getLogger(__name__)

PROFILES_FILE = "profiles.json"
SETTINGS_FILE = "settings.json"


def get_data_directory() -> Path:
    """Return the platform-appropriate data directory for Code ∧ Break."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    else:
        base = Path.home()
        return base / ".codebreak"
    return base / "CodeBreak"


def get_default_settings() -> dict[str, Any]:
    """Return the default application settings dictionary."""
    return {
        "selectedProfile": POMODORO_PROFILE_NAME,
        "windowWidth": 400,
        "windowHeight": 300,
        "windowX": 100,
        "windowY": 100,
        "startMinimized": False,
        "autoSaveDelayMs": 500,
        "autoSavePollMs": 100,
        "tickIntervalMs": 1000,
        "dashboardEnabled": True,
        "dashboardPort": 5556,
        "suppressInFullscreen": True,
    }


def get_default_profiles_path() -> Path:
    return get_data_directory() / PROFILES_FILE


def get_default_config_path() -> Path:
    """Return the default path for settings.json."""
    return get_data_directory() / SETTINGS_FILE


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load application settings from a JSON file.

    If *path* is ``None``, the platform default location is used.
    When the file does not exist, default settings are created,
    written to disk, and returned.  If the file exists but is invalid
    JSON, the error is logged and defaults are returned.  Keys missing
    from an older file are filled in from the defaults.
    """
    config_path = Path(path) if path is not None else get_default_config_path()

    if not config_path.exists():
        logger.info("Settings file not found at %s; creating defaults.", config_path)
        defaults = get_default_settings()
        save_config(defaults, config_path)
        return defaults

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("Top-level JSON value must be an object")
    except (json.JSONDecodeError, ValueError, OSError) as exc:
        logger.error("Failed to load settings from %s: %s; using defaults.", config_path, exc)
        return get_default_settings()

    merged = get_default_settings()
    merged.update(data)
    return merged


def save_config(config: dict[str, Any], path: str | Path | None = None) -> None:
    """Write *config* to a JSON file.

    If *path* is ``None``, the platform default location is used.
    Parent directories are created automatically.
    """
    config_path = Path(path) if path is not None else get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)
        fh.write("\n")
