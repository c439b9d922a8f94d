"""JSON-backed persistence for profiles and application settings.

Profiles live in ``profiles.json`` and application settings in
``settings.json`` inside the data directory.  Profiles can additionally be
exported to, and imported from, standalone JSON or plain-text backups.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from codebreak.core.config import PROFILES_FILE, SETTINGS_FILE, get_data_directory, load_config, save_config
from codebreak.core.models import (
    MAX_BREAK_MINUTES,
    MAX_PROFILE_NAME_LENGTH,
    MAX_SNOOZE_MINUTES,
    MAX_WORK_MINUTES,
    MIN_BREAK_MINUTES,
    MIN_SNOOZE_MINUTES,
    MIN_WORK_MINUTES,
    NotificationType,
    Profile,
    create_default_profiles,
    is_valid_break_minutes,
    is_valid_snooze_minutes,
    is_valid_work_minutes,
)

logger = logging.getLogger(__name__)

APP_NAME = "CodeBreak"
EXPORT_VERSION = "1.0"
TEXT_HEADER = f"=== {APP_NAME} Settings Backup ==="
TEXT_PROFILE_PREFIX = "Profile: "
EXPORT_FORMATS = ("json", "text")

# Profile attribute -> key used in the JSON files.
JSON_KEYS = {
    "name": "profileName",
    "work_minutes": "workMinutes",
    "break_minutes": "breakMinutes",
    "pomodoro_mode": "pomodoroMode",
    "sound_enabled": "soundEnabled",
    "popup_enabled": "popupEnabled",
    "flash_enabled": "flashEnabled",
    "snooze_minutes": "snoozeMinutes",
    "auto_start": "autoStart",
    "minimize_to_tray": "minimizeToTray",
}
NOTIFICATIONS_KEY = "enabledNotifications"

# Profile attribute -> label used in text backups.
TEXT_LABELS = {
    "work_minutes": "Work minutes",
    "break_minutes": "Break minutes",
    "pomodoro_mode": "Pomodoro mode",
    "sound_enabled": "Sound",
    "popup_enabled": "Popup",
    "flash_enabled": "Screen flash",
    "snooze_minutes": "Snooze minutes",
    "auto_start": "Auto start",
    "minimize_to_tray": "Minimize to tray",
}
TEXT_NOTIFICATIONS_LABEL = "Enabled notifications"

_INT_FIELDS = {"work_minutes", "break_minutes", "snooze_minutes"}


def profile_to_dict(profile: Profile) -> dict[str, Any]:
    """Map *profile* to its JSON representation."""
    data = {key: getattr(profile, attr) for attr, key in JSON_KEYS.items()}
    data[NOTIFICATIONS_KEY] = [t.name for t in profile.enabled_notifications()]
    return data


class ProfileStore:
    """Read/write interface to the profile and settings files.

    ``load_*`` never fail: a missing or unreadable file yields the
    built-in defaults.  ``save_*`` and ``export_to_file`` let ``OSError``
    propagate so callers can decide whether to retry or report.
    """

    def __init__(self, data_dir: str | Path | None = None) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else get_data_directory()
        self.profiles_path = self.data_dir / PROFILES_FILE
        self.settings_path = self.data_dir / SETTINGS_FILE

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def load_profiles(self) -> list[Profile]:
        """Return the stored profiles, or the default presets."""
        if not self.profiles_path.exists():
            logger.info("No profile file at %s; using default profiles.", self.profiles_path)
            return create_default_profiles()

        try:
            data = json.loads(self.profiles_path.read_text(encoding="utf-8"))
            profiles = self._profiles_from_json(data)
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.error("Failed to load profiles from %s: %s; using defaults.", self.profiles_path, exc)
            return create_default_profiles()

        if not profiles:
            logger.warning("Profile file %s holds no profiles; using defaults.", self.profiles_path)
            return create_default_profiles()
        return profiles

    def save_profiles(self, profiles: list[Profile]) -> None:
        payload = {"profiles": [profile_to_dict(p) for p in profiles]}
        self._write_json(self.profiles_path, payload)
        logger.debug("Saved %d profiles to %s", len(profiles), self.profiles_path)

    # ------------------------------------------------------------------
    # Application settings
    # ------------------------------------------------------------------

    def load_settings(self) -> dict[str, Any]:
        return load_config(self.settings_path)

    def save_settings(self, settings: dict[str, Any]) -> None:
        save_config(settings, self.settings_path)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_to_file(self, profiles: list[Profile], path: str | Path, fmt: str = "json") -> Path:
        """Write *profiles* to *path* as ``json`` or ``text``.  Returns the path."""
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt!r}")

        out = Path(path)
        if fmt == "json":
            payload = {
                "export_info": {
                    "app_name": APP_NAME,
                    "version": EXPORT_VERSION,
                    "export_date": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                    "profile_count": len(profiles),
                },
                "profiles": [profile_to_dict(p) for p in profiles],
            }
            self._write_json(out, payload)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(self._profiles_to_text(profiles), encoding="utf-8")

        logger.info("Exported %d profiles to %s (%s)", len(profiles), out, fmt)
        return out

    def import_from_file(self, path: str | Path) -> list[Profile]:
        """Read profiles from a JSON or text backup, detecting the format.

        Raises:
            FileNotFoundError: If *path* does not exist.
            ValueError: If the content is in neither format or holds no profiles.
        """
        src = Path(path)
        if not src.exists():
            raise FileNotFoundError(f"File not found: {src}")

        content = src.read_text(encoding="utf-8")
        stripped = content.strip()

        if stripped.startswith("{") and '"profiles"' in content:
            logger.debug("Detected JSON backup: %s", src)
            try:
                data = json.loads(content)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Malformed JSON backup: {exc}") from exc
            profiles = self._profiles_from_json(data)
        elif TEXT_HEADER in content or TEXT_PROFILE_PREFIX in content:
            logger.debug("Detected text backup: %s", src)
            profiles = self._profiles_from_text(content)
        else:
            raise ValueError(
                "Unsupported file format; expected a JSON or CodeBreak text backup."
            )

        if not profiles:
            raise ValueError("No profiles could be read from the file.")
        return profiles

    @staticmethod
    def validate(profiles: list[Profile]) -> list[str]:
        """Return human-readable problems found in *profiles* (empty when all valid)."""
        issues: list[str] = []
        for i, profile in enumerate(profiles, start=1):
            prefix = f"Profile {i} ({profile.name}): "
            if not profile.name or not profile.name.strip():
                issues.append(prefix + "name is empty.")
            elif len(profile.name) > MAX_PROFILE_NAME_LENGTH:
                issues.append(prefix + f"name is longer than {MAX_PROFILE_NAME_LENGTH} characters.")
            if not is_valid_work_minutes(profile.work_minutes):
                issues.append(
                    prefix + f"work minutes must be {MIN_WORK_MINUTES}-{MAX_WORK_MINUTES}: {profile.work_minutes}"
                )
            if not is_valid_break_minutes(profile.break_minutes):
                issues.append(
                    prefix + f"break minutes must be {MIN_BREAK_MINUTES}-{MAX_BREAK_MINUTES}: {profile.break_minutes}"
                )
            if not is_valid_snooze_minutes(profile.snooze_minutes):
                issues.append(
                    prefix + f"snooze minutes must be {MIN_SNOOZE_MINUTES}-{MAX_SNOOZE_MINUTES}: {profile.snooze_minutes}"
                )
        return issues

    # ------------------------------------------------------------------
    # JSON mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _profile_from_dict(data: dict[str, Any]) -> Profile:
        """Build a profile from one JSON entry.

        Raises:
            ValueError: If a present key holds a value of the wrong type.
        """
        profile = Profile()
        for attr, key in JSON_KEYS.items():
            if key not in data:
                continue
            value = data[key]
            if attr == "name":
                if not isinstance(value, str):
                    raise ValueError(f"{key} must be a string, got {value!r}")
            elif attr in _INT_FIELDS:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"{key} must be an integer, got {value!r}")
            elif not isinstance(value, bool):
                raise ValueError(f"{key} must be true or false, got {value!r}")
            setattr(profile, attr, value)

        if NOTIFICATIONS_KEY in data:
            profile.notification_settings = {t: False for t in NotificationType}
            for type_name in data[NOTIFICATIONS_KEY] or []:
                try:
                    profile.set_notification_enabled(NotificationType[str(type_name).strip()], True)
                except KeyError:
                    logger.warning("Unknown notification type %r ignored", type_name)
        return profile

    def _profiles_from_json(self, data: Any) -> list[Profile]:
        if not isinstance(data, dict) or not isinstance(data.get("profiles"), list):
            raise ValueError("Expected an object with a 'profiles' list")

        profiles = []
        for i, entry in enumerate(data["profiles"], start=1):
            if not isinstance(entry, dict):
                logger.warning("Skipping profile entry %d: not an object", i)
                continue
            try:
                profiles.append(self._profile_from_dict(entry))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping profile entry %d: %s", i, exc)
        return profiles

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
            fh.write("\n")

    # ------------------------------------------------------------------
    # Text mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _profiles_to_text(profiles: list[Profile]) -> str:
        lines = [TEXT_HEADER, f"Created: {datetime.now():%Y-%m-%d %H:%M:%S}", "", "=== Profiles ==="]
        for profile in profiles:
            lines.append(f"{TEXT_PROFILE_PREFIX}{profile.name}")
            for attr, label in TEXT_LABELS.items():
                value = getattr(profile, attr)
                if attr in _INT_FIELDS:
                    lines.append(f"  {label}: {value} min")
                else:
                    lines.append(f"  {label}: {'yes' if value else 'no'}")
            names = ", ".join(t.display_name for t in profile.enabled_notifications())
            lines.append(f"  {TEXT_NOTIFICATIONS_LABEL}: {names}")
            lines.append("")
        return "\n".join(lines) + "\n"

    def _profiles_from_text(self, content: str) -> list[Profile]:
        profiles: list[Profile] = []
        current: Optional[Profile] = None

        for raw in content.splitlines():
            line = raw.strip()
            if line.startswith(TEXT_PROFILE_PREFIX):
                current = Profile(name=line[len(TEXT_PROFILE_PREFIX):].strip())
                profiles.append(current)
            elif current is not None and ": " in line:
                label, value = (part.strip() for part in line.split(": ", 1))
                self._apply_text_property(current, label, value)
            elif current is not None and line.endswith(":") and line[:-1] == TEXT_NOTIFICATIONS_LABEL:
                self._apply_text_property(current, TEXT_NOTIFICATIONS_LABEL, "")
        return profiles

    @staticmethod
    def _apply_text_property(profile: Profile, label: str, value: str) -> None:
        if label == TEXT_NOTIFICATIONS_LABEL:
            profile.notification_settings = {t: False for t in NotificationType}
            wanted = {v.strip() for v in value.split(",") if v.strip()}
            for t in NotificationType:
                if t.display_name in wanted or t.name in wanted:
                    profile.set_notification_enabled(t, True)
            return

        attr = next((a for a, l in TEXT_LABELS.items() if l == label), None)
        if attr is None:
            logger.debug("Unknown text property %r ignored", label)
            return
        try:
            if attr in _INT_FIELDS:
                setattr(profile, attr, int(value.replace("min", "").strip()))
            else:
                setattr(profile, attr, value.lower() in ("yes", "true"))
        except ValueError:
            logger.warning("Could not parse %s = %r for profile %s", label, value, profile.name)
