"""Profile registry for Code ∧ Break.

Owns the profile list, the currently selected profile and the *pending*
draft: an independent copy of the current profile that receives edits
until they are committed.  Committing ("applying pending changes") copies
the draft into the current profile and is the only way edits reach the
persisted list; it runs before every save and every profile switch.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from codebreak.core.config import get_default_settings
from codebreak.core.events import EventBus, ProfileChanged, SettingChanged
from codebreak.core.models import (
    MAX_PROFILE_NAME_LENGTH,
    MAX_SNOOZE_MINUTES,
    MIN_SNOOZE_MINUTES,
    PROTECTED_PROFILE_NAMES,
    QUICK_PRESETS,
    ImportResult,
    NotificationType,
    Profile,
    create_default_profiles,
    find_by_name,
    is_valid_break_minutes,
    is_valid_snooze_minutes,
    is_valid_work_minutes,
)
from codebreak.persistence.store import JSON_KEYS, ProfileStore

logger = logging.getLogger(__name__)

_INT_VALIDATORS: dict[str, Callable[[int], bool]] = {
    "work_minutes": is_valid_work_minutes,
    "break_minutes": is_valid_break_minutes,
    "snooze_minutes": is_valid_snooze_minutes,
}
_BOOL_FIELDS = {
    "pomodoro_mode",
    "sound_enabled",
    "popup_enabled",
    "flash_enabled",
    "auto_start",
    "minimize_to_tray",
}
# camelCase names from the JSON schema are accepted as aliases.
_FIELD_ALIASES = {key: attr for attr, key in JSON_KEYS.items() if attr != "name"}

SELECTED_PROFILE_KEY = "selectedProfile"
NEW_PROFILE_BASE_NAME = "My Profile"
COPY_SUFFIX = " copy"

# Export format -> (file name prefix, extension) for quick backups.
BACKUP_NAMES = {
    "json": ("codebreak_backup", ".json"),
    "text": ("codebreak_readable", ".txt"),
}


def _snapshot_or_none(profile: Optional[Profile]) -> Optional[Profile]:
    return profile.snapshot() if profile is not None else None


class ProfileRegistry:
    """In-memory profile list with a current profile and a pending draft.

    Every mutation goes through this class.  Other components receive
    snapshots through :class:`ProfileChanged` / :class:`SettingChanged`
    events and must not hold on to the live objects.
    """

    def __init__(self, store: ProfileStore, event_bus: EventBus) -> None:
        self.store = store
        self.event_bus = event_bus
        self._lock = threading.RLock()
        self._profiles: list[Profile] = []
        self._current: Optional[Profile] = None
        self._pending: Optional[Profile] = None
        self._settings: dict[str, Any] = get_default_settings()
        self._on_change: Optional[Callable[[], None]] = None
        self._loading = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def set_change_listener(self, listener: Optional[Callable[[], None]]) -> None:
        """Install the callback invoked after every mutation (the auto-saver)."""
        self._on_change = listener

    def load(self) -> None:
        """Populate the registry from the store and select the saved profile."""
        with self._lock:
            self._loading = True
            try:
                self._profiles = self.store.load_profiles() or create_default_profiles()
                self._settings = self.store.load_settings()

                selected = find_by_name(self._profiles, self._settings.get(SELECTED_PROFILE_KEY))
                if selected is None:
                    selected = self._profiles[0]
                    logger.info("Saved profile not found; selecting %s", selected.name)
                    self._settings[SELECTED_PROFILE_KEY] = selected.name
                self._current = selected
                self._pending = selected.snapshot()
            finally:
                self._loading = False
        logger.info("Loaded %d profiles; current: %s", len(self._profiles), self._current.name)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    # Queries return snapshots; the live objects never leave the registry.

    @property
    def profiles(self) -> list[Profile]:
        with self._lock:
            return [p.snapshot() for p in self._profiles]

    @property
    def current_profile(self) -> Optional[Profile]:
        with self._lock:
            return _snapshot_or_none(self._current)

    @property
    def pending_profile(self) -> Optional[Profile]:
        with self._lock:
            return _snapshot_or_none(self._pending)

    @property
    def settings(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._settings)

    def current_with_pending(self) -> Optional[Profile]:
        """Snapshot of the current profile including uncommitted edits."""
        with self._lock:
            source = self._pending if self._pending is not None else self._current
            if source is None:
                return None
            snap = source.snapshot()
            snap.name = self._current.name if self._current is not None else source.name
            return snap

    def find_profile(self, name: Optional[str]) -> Optional[Profile]:
        with self._lock:
            return _snapshot_or_none(find_by_name(self._profiles, name))

    def profile_names(self) -> list[str]:
        with self._lock:
            return [p.name for p in self._profiles]

    # ------------------------------------------------------------------
    # Commit protocol
    # ------------------------------------------------------------------

    def apply_pending_changes(self) -> None:
        """Copy the pending draft into the current profile."""
        with self._lock:
            if self._pending is not None and self._current is not None:
                self._current.copy_from(self._pending)

    def commit(self) -> tuple[list[Profile], dict[str, Any]]:
        """Apply pending changes and return snapshots ready to persist."""
        with self._lock:
            self.apply_pending_changes()
            return [p.snapshot() for p in self._profiles], dict(self._settings)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def set_current_profile(self, profile: Optional[Profile]) -> bool:
        """Switch to *profile*, which must be one of the registry's own objects.

        Callers outside the registry hold snapshots and use
        :meth:`select_profile` instead.
        """
        with self._lock:
            if profile is None or not any(p is profile for p in self._profiles):
                logger.warning("Cannot select a profile that is not registered: %r", profile)
                return False

            old = self._current.snapshot() if self._current is not None else None
            if self._current is not None:
                self.apply_pending_changes()

            self._current = profile
            self._settings[SELECTED_PROFILE_KEY] = profile.name
            self._pending = profile.snapshot()
            new = profile.snapshot()

        logger.info("Current profile: %s -> %s", old.name if old else None, new.name)
        self.event_bus.publish(ProfileChanged(old, new))
        self._mark_changed()
        return True

    def select_profile(self, name: str) -> bool:
        with self._lock:
            target = find_by_name(self._profiles, name)
        return self.set_current_profile(target)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update_field(self, field_name: str, value: Any) -> bool:
        """Apply one validated edit to the pending draft.

        Returns ``False`` for unknown fields and invalid values.  Setting
        a field to the value it already has is accepted without marking
        the registry dirty.
        """
        attr = _FIELD_ALIASES.get(field_name, field_name)

        if attr in _INT_VALIDATORS:
            if isinstance(value, bool) or not isinstance(value, int):
                logger.warning("Rejected %s=%r: expected an integer", field_name, value)
                return False
            if not _INT_VALIDATORS[attr](value):
                logger.warning("Rejected %s=%r: out of range", field_name, value)
                return False
        elif attr in _BOOL_FIELDS:
            if not isinstance(value, bool):
                logger.warning("Rejected %s=%r: expected a boolean", field_name, value)
                return False
        else:
            logger.warning("Unknown profile field %r ignored", field_name)
            return False

        with self._lock:
            if self._pending is None:
                return False
            if getattr(self._pending, attr) == value:
                return True
            setattr(self._pending, attr, value)
            snapshot = self._pending.snapshot()

        self.event_bus.publish(SettingChanged(attr, value, snapshot))
        self._mark_changed()
        return True

    def update_notification_setting(self, notification_type: NotificationType, enabled: bool) -> bool:
        with self._lock:
            if self._pending is None:
                return False
            if self._pending.is_notification_enabled(notification_type) == bool(enabled):
                return True
            self._pending.set_notification_enabled(notification_type, enabled)
            snapshot = self._pending.snapshot()

        self.event_bus.publish(SettingChanged("notification_settings", snapshot.notification_settings, snapshot))
        self._mark_changed()
        return True

    # ------------------------------------------------------------------
    # Profile management
    # ------------------------------------------------------------------

    def add_profile(self, name: Optional[str]) -> Optional[Profile]:
        """Create a profile from the pending settings.  ``None`` on failure."""
        with self._lock:
            profile = self._add(name)
        if profile is None:
            return None
        logger.info("Added profile %s", profile.name)
        self._mark_changed()
        return profile.snapshot()

    def delete_profile(self, name: str) -> bool:
        with self._lock:
            if len(self._profiles) <= 1:
                logger.warning("Refusing to delete the last remaining profile")
                return False
            target = find_by_name(self._profiles, name)
            if target is None:
                return False
            return self._remove(target)

    def safe_delete_profile(self, name: str) -> bool:
        """Like :meth:`delete_profile` but the built-in presets are protected."""
        if name in PROTECTED_PROFILE_NAMES:
            logger.warning("Refusing to delete built-in profile %s", name)
            return False
        return self.delete_profile(name)

    def duplicate_profile(self, source_name: str, new_name: str) -> Optional[Profile]:
        with self._lock:
            source = find_by_name(self._profiles, source_name)
            if source is None:
                return None
            duplicate = self._add(new_name)
            if duplicate is None:
                return None
            duplicate.copy_from(source)
            self._apply_new_profile_policy(duplicate)
            snapshot = duplicate.snapshot()
        logger.info("Duplicated %s as %s", source_name, snapshot.name)
        self._mark_changed()
        return snapshot

    def duplicate_current_profile(self, new_name: Optional[str] = None) -> Optional[Profile]:
        with self._lock:
            if self._current is None:
                return None
            if new_name is None or not new_name.strip():
                new_name = self._unique_name(self._current.name, suffix=COPY_SUFFIX)
            return self.duplicate_profile(self._current.name, new_name)

    def save_current_as_new_profile(self, name: Optional[str] = None) -> Optional[Profile]:
        """Store the in-progress settings under a new name."""
        with self._lock:
            if name is None or not name.strip():
                name = self._unique_name(NEW_PROFILE_BASE_NAME)
            return self.add_profile(name)

    def update_profile_with_current_settings(self, name: str) -> bool:
        """Overwrite the settings of profile *name* with the pending draft."""
        with self._lock:
            target = find_by_name(self._profiles, name)
            if target is None or self._pending is None:
                return False
            target.copy_from(self._pending)
        logger.info("Updated profile %s with the current settings", name)
        self._mark_changed()
        return True

    def auto_save_current_profile(self) -> bool:
        """Commit the pending draft into the current profile and schedule a save."""
        with self._lock:
            if self._current is None:
                return False
            name = self._current.name
        return self.update_profile_with_current_settings(name)

    def create_quick_profile(
        self, work_minutes: int, break_minutes: int, name: Optional[str] = None
    ) -> Optional[Profile]:
        """Create a profile from two durations with sensible defaults."""
        if not (is_valid_work_minutes(work_minutes) and is_valid_break_minutes(break_minutes)):
            logger.warning("Rejected quick profile %d/%d: out of range", work_minutes, break_minutes)
            return None

        with self._lock:
            if name is None or not name.strip():
                name = self._unique_name(f"{work_minutes} min work")
            name = self._validate_new_name(name)
            if name is None:
                return None

            profile = Profile(
                name=name,
                work_minutes=work_minutes,
                break_minutes=break_minutes,
                pomodoro_mode=break_minutes > 0,
                flash_enabled=False,
                snooze_minutes=min(MAX_SNOOZE_MINUTES, max(MIN_SNOOZE_MINUTES, 3, break_minutes // 2)),
            )
            self._apply_new_profile_policy(profile)
            self._profiles.append(profile)
            snapshot = profile.snapshot()

        self._mark_changed()
        return snapshot

    def create_preset_profile(self, key: str) -> Optional[Profile]:
        """Create one of the :data:`QUICK_PRESETS` under a unique name."""
        preset = QUICK_PRESETS.get(key)
        if preset is None:
            logger.warning("Unknown quick preset %r", key)
            return None
        name, work_minutes, break_minutes = preset
        with self._lock:
            name = self._unique_name(name)
            return self.create_quick_profile(work_minutes, break_minutes, name)

    def reset_to_defaults(self) -> None:
        """Replace everything with the built-in presets and default settings."""
        with self._lock:
            old = self._current.snapshot() if self._current is not None else None
            self._profiles = create_default_profiles()
            self._current = self._profiles[0]
            self._pending = self._current.snapshot()
            self._settings = get_default_settings()
            self._settings[SELECTED_PROFILE_KEY] = self._current.name
            new = self._current.snapshot()

        logger.info("Profiles reset to defaults")
        self.event_bus.publish(ProfileChanged(old, new))
        self._mark_changed()

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_profiles(self, path: str | Path, fmt: str = "json") -> Path:
        profiles, _ = self.commit()
        return self.store.export_to_file(profiles, path, fmt)

    def quick_backup(self, directory: str | Path | None = None, fmt: str = "json") -> Optional[Path]:
        """Export every profile to a timestamped file in *directory*.

        The directory defaults to the store's data directory.  Returns the
        written path, or ``None`` when the file could not be written.
        """
        if fmt not in BACKUP_NAMES:
            raise ValueError(f"Unsupported export format: {fmt!r}")
        prefix, suffix = BACKUP_NAMES[fmt]
        target = Path(directory) if directory is not None else self.store.data_dir
        path = target / f"{prefix}_{datetime.now():%Y%m%d_%H%M%S}{suffix}"
        try:
            return self.export_profiles(path, fmt)
        except OSError as exc:
            logger.error("Quick backup to %s failed: %s", path, exc)
            return None

    def import_profiles(self, path: str | Path) -> ImportResult:
        """Add the profiles found in *path*, renaming any name collisions."""
        try:
            imported = self.store.import_from_file(path)
        except (OSError, ValueError) as exc:
            logger.error("Profile import from %s failed: %s", path, exc)
            return ImportResult(False, f"Import failed: {exc}")

        issues = self.store.validate(imported)
        if issues:
            return ImportResult(False, "Imported profiles are invalid.", issues=issues)

        renamed = 0
        with self._lock:
            for profile in imported:
                unique = self._unique_name(profile.name, pattern=" ({n})")
                if unique != profile.name:
                    renamed += 1
                    profile.name = unique
                profile.set_notification_enabled(NotificationType.REST, True)
                self._profiles.append(profile)

        logger.info("Imported %d profiles from %s (%d renamed)", len(imported), path, renamed)
        self._mark_changed()
        message = f"Imported {len(imported)} profiles."
        if renamed:
            message += f" {renamed} renamed to avoid duplicates."
        return ImportResult(True, message, len(imported), 0)

    def replace_all_profiles(self, path: str | Path) -> ImportResult:
        """Replace the whole list with the profiles found in *path*."""
        try:
            imported = self.store.import_from_file(path)
        except (OSError, ValueError) as exc:
            logger.error("Profile import from %s failed: %s", path, exc)
            return ImportResult(False, f"Import failed: {exc}")

        issues = self.store.validate(imported)
        if issues:
            return ImportResult(False, "Imported profiles are invalid.", issues=issues)

        unique: list[Profile] = []
        for profile in imported:
            if find_by_name(unique, profile.name) is None:
                profile.set_notification_enabled(NotificationType.REST, True)
                unique.append(profile)

        with self._lock:
            backup = self._profiles
            self._profiles = unique
            # The previous current profile is gone, so there is nothing to commit into.
            self._current = None
            if not self.set_current_profile(unique[0]):
                self._profiles = backup
                return ImportResult(False, "Could not activate the imported profiles.")

        skipped = len(imported) - len(unique)
        return ImportResult(True, f"Replaced profiles with {len(unique)} imported profiles.", len(unique), skipped)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _remove(self, target: Profile) -> bool:
        self._profiles = [p for p in self._profiles if p is not target]
        logger.info("Deleted profile %s", target.name)
        if self._current is target:
            # Edits to a deleted profile are discarded.
            self._current = None
            self._pending = None
            self.set_current_profile(self._profiles[0])
        self._mark_changed()
        return True

    @staticmethod
    def _apply_new_profile_policy(profile: Profile) -> None:
        profile.set_notification_enabled(NotificationType.REST, True)
        profile.minimize_to_tray = False

    def _add(self, name: Optional[str]) -> Optional[Profile]:
        name = self._validate_new_name(name)
        if name is None:
            return None
        profile = Profile(name=name)
        if self._pending is not None:
            profile.copy_from(self._pending)
        self._apply_new_profile_policy(profile)
        self._profiles.append(profile)
        return profile

    def _validate_new_name(self, name: Optional[str]) -> Optional[str]:
        """Stripped *name* if it can name a new profile, else ``None``."""
        if name is None or not name.strip():
            logger.warning("Profile name must not be blank")
            return None
        name = name.strip()
        if len(name) > MAX_PROFILE_NAME_LENGTH:
            logger.warning("Profile name is longer than %d characters: %r", MAX_PROFILE_NAME_LENGTH, name)
            return None
        if find_by_name(self._profiles, name) is not None:
            logger.warning("Profile %r already exists", name)
            return None
        return name

    def _unique_name(self, base: str, suffix: str = "", pattern: str = " {n}") -> str:
        """First free name of the form ``base + suffix`` then ``base + suffix + pattern``.

        *base* is shortened so the result never exceeds
        :data:`MAX_PROFILE_NAME_LENGTH`.
        """
        n = 0
        while True:
            tail = suffix + (pattern.format(n=n) if n else "")
            candidate = base[:MAX_PROFILE_NAME_LENGTH - len(tail)].rstrip() + tail
            if find_by_name(self._profiles, candidate) is None:
                return candidate
            n += 1

    def _mark_changed(self) -> None:
        if self._loading or self._on_change is None:
            return
        self._on_change()
