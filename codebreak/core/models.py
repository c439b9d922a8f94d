"""Core data models for Code ∧ Break.

Defines the constants, enums and dataclasses shared across the application:
- Limits and presets: timer ranges, profile preset names
- Timer: TimerState, Phase, NotificationType
- Profiles: Profile and its preset factories
- Import/export: ImportResult
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Limits and presets
# ---------------------------------------------------------------------------

SECONDS_PER_MINUTE = 60

DEFAULT_WORK_MINUTES = 25
DEFAULT_BREAK_MINUTES = 5
DEFAULT_SNOOZE_MINUTES = 5

MIN_WORK_MINUTES, MAX_WORK_MINUTES = 1, 180
MIN_BREAK_MINUTES, MAX_BREAK_MINUTES = 1, 60
MIN_SNOOZE_MINUTES, MAX_SNOOZE_MINUTES = 1, 30

MAX_PROFILE_NAME_LENGTH = 50

POMODORO_PROFILE_NAME = "Pomodoro"
LONG_WORK_PROFILE_NAME = "Long Work"
SHORT_FOCUS_PROFILE_NAME = "Short Focus"
DEFAULT_PROFILE_NAME = "Default Profile"

# Presets that the "safe" delete path refuses to remove.
PROTECTED_PROFILE_NAMES = frozenset(
    {POMODORO_PROFILE_NAME, LONG_WORK_PROFILE_NAME, SHORT_FOCUS_PROFILE_NAME}
)


def minutes_to_seconds(minutes: int) -> int:
    return minutes * SECONDS_PER_MINUTE


def format_time(total_seconds: int) -> str:
    """Format a second count as ``MM:SS``."""
    minutes, seconds = divmod(max(0, total_seconds), SECONDS_PER_MINUTE)
    return f"{minutes:02d}:{seconds:02d}"


def is_valid_work_minutes(minutes: int) -> bool:
    return MIN_WORK_MINUTES <= minutes <= MAX_WORK_MINUTES


def is_valid_break_minutes(minutes: int) -> bool:
    return MIN_BREAK_MINUTES <= minutes <= MAX_BREAK_MINUTES


def is_valid_snooze_minutes(minutes: int) -> bool:
    return MIN_SNOOZE_MINUTES <= minutes <= MAX_SNOOZE_MINUTES


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------

class TimerState(Enum):
    """Lifecycle state of the timer engine."""
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


class Phase(Enum):
    """Which half of a work/break cycle is due."""
    WORK = "work"
    BREAK = "break"


class NotificationType(Enum):
    """Kinds of break reminder, each with a display name and message."""
    REST = ("Rest", "Take a short break!")
    STRETCH = ("Stretch", "Get up and move around!")
    WATER = ("Water", "Time to drink some water!")
    EYE_REST = ("Eye Rest", "Give your eyes a rest!")

    def __init__(self, display_name: str, message: str) -> None:
        self.display_name = display_name
        self.message = message


def _default_notification_settings() -> dict[NotificationType, bool]:
    settings = {t: False for t in NotificationType}
    settings[NotificationType.REST] = True
    return settings


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@dataclass
class Profile:
    """A named set of timer and notification preferences.

    Identity is the display name.  Uniqueness of names is the registry's
    responsibility; a Profile on its own happily shares a name with another.
    """
    name: str = DEFAULT_PROFILE_NAME
    work_minutes: int = DEFAULT_WORK_MINUTES
    break_minutes: int = DEFAULT_BREAK_MINUTES
    pomodoro_mode: bool = True
    sound_enabled: bool = True
    popup_enabled: bool = True
    flash_enabled: bool = True
    snooze_minutes: int = DEFAULT_SNOOZE_MINUTES
    auto_start: bool = False
    minimize_to_tray: bool = False
    notification_settings: dict[NotificationType, bool] = field(
        default_factory=_default_notification_settings
    )

    # Fields carried over by copy_from (everything except identity).
    SETTING_FIELDS = (
        "work_minutes",
        "break_minutes",
        "pomodoro_mode",
        "sound_enabled",
        "popup_enabled",
        "flash_enabled",
        "snooze_minutes",
        "auto_start",
        "minimize_to_tray",
    )

    def is_valid(self) -> bool:
        return (
            is_valid_work_minutes(self.work_minutes)
            and is_valid_break_minutes(self.break_minutes)
            and is_valid_snooze_minutes(self.snooze_minutes)
            and self.name is not None
            and bool(self.name.strip())
            and len(self.name) <= MAX_PROFILE_NAME_LENGTH
        )

    def copy_from(self, other: "Profile") -> None:
        """Copy every setting from *other*, keeping this profile's name."""
        for name in self.SETTING_FIELDS:
            setattr(self, name, getattr(other, name))
        self.notification_settings = dict(other.notification_settings)

    def snapshot(self) -> "Profile":
        """Return an independent copy, safe to hand to other components."""
        clone = Profile(name=self.name)
        clone.copy_from(self)
        return clone

    def same_settings(self, other: "Profile") -> bool:
        return all(
            getattr(self, name) == getattr(other, name) for name in self.SETTING_FIELDS
        ) and self.enabled_notifications() == other.enabled_notifications()

    def is_notification_enabled(self, notification_type: NotificationType) -> bool:
        return bool(self.notification_settings.get(notification_type, False))

    def set_notification_enabled(
        self, notification_type: NotificationType, enabled: bool
    ) -> None:
        self.notification_settings[notification_type] = bool(enabled)

    def enabled_notifications(self) -> list[NotificationType]:
        """Enabled notification types in declaration order."""
        return [t for t in NotificationType if self.is_notification_enabled(t)]

    def __str__(self) -> str:
        return f"{self.name} (work: {self.work_minutes} min, break: {self.break_minutes} min)"


def create_pomodoro_profile() -> Profile:
    return Profile(
        name=POMODORO_PROFILE_NAME, work_minutes=25, break_minutes=5, pomodoro_mode=True
    )


def create_long_work_profile() -> Profile:
    return Profile(
        name=LONG_WORK_PROFILE_NAME, work_minutes=60, break_minutes=10, pomodoro_mode=False
    )


def create_short_focus_profile() -> Profile:
    return Profile(
        name=SHORT_FOCUS_PROFILE_NAME, work_minutes=15, break_minutes=3, pomodoro_mode=True
    )


# Named quick presets: key -> (profile name, work minutes, break minutes).
QUICK_PRESETS = {
    "classic": ("Classic Pomodoro", 25, 5),
    "power_session": ("Power Session", 50, 10),
    "sprint": ("Sprint", 15, 3),
    "deep_work": ("Deep Work", 90, 15),
    "study": ("Study Session", 30, 10),
    "quick_break": ("Between Meetings", 10, 2),
}


def create_default_profiles() -> list[Profile]:
    """The three built-in presets, in their canonical order."""
    return [
        create_pomodoro_profile(),
        create_long_work_profile(),
        create_short_focus_profile(),
    ]


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------

@dataclass
class ImportResult:
    """Outcome of importing profiles from an external file."""
    success: bool
    message: str
    added_count: int = 0
    skipped_count: int = 0
    issues: list[str] = field(default_factory=list)


def find_by_name(profiles: list[Profile], name: Optional[str]) -> Optional[Profile]:
    """Return the first profile whose name matches exactly, or ``None``."""
    if name is None:
        return None
    for profile in profiles:
        if profile.name == name:
            return profile
    return None
