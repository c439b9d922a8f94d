"""Timer controller for Code ∧ Break.

Keeps the timer engine and notification router in step with the active
profile, and implements the user-facing timer actions (acknowledge a
completed phase, keep working, snooze, emergency break, presets) along
with the derived session statistics.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from codebreak.core.events import EventBus, ProfileChanged, SettingChanged
from codebreak.core.models import (
    NotificationType,
    Phase,
    Profile,
    TimerState,
    create_long_work_profile,
    create_pomodoro_profile,
    create_short_focus_profile,
    is_valid_break_minutes,
    is_valid_work_minutes,
)
from codebreak.core.notifications import NotificationRouter
from codebreak.core.timer import TimerEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimerStatistics:
    """Session counts estimated from the engine's cycle counter."""
    total_cycles: int
    work_minutes: int
    break_minutes: int
    pomodoro_mode: bool
    current_phase: Phase

    @classmethod
    def from_engine(cls, engine: TimerEngine) -> "TimerStatistics":
        return cls(
            total_cycles=engine.current_cycle,
            work_minutes=engine.work_minutes,
            break_minutes=engine.break_minutes,
            pomodoro_mode=engine.pomodoro_mode,
            current_phase=engine.current_phase,
        )

    @property
    def work_sessions(self) -> int:
        # Pomodoro cycles alternate work, break, work, ...
        return (self.total_cycles + 1) // 2 if self.pomodoro_mode else self.total_cycles

    @property
    def break_sessions(self) -> int:
        return self.total_cycles // 2 if self.pomodoro_mode else 0

    @property
    def estimated_work_minutes(self) -> int:
        return self.work_sessions * self.work_minutes

    @property
    def estimated_break_minutes(self) -> int:
        return self.break_sessions * self.break_minutes

    @property
    def productivity_ratio(self) -> float:
        """Share of estimated time spent working, in percent."""
        total = self.estimated_work_minutes + self.estimated_break_minutes
        return self.estimated_work_minutes / total * 100 if total else 0.0

    def to_dict(self) -> dict:
        return {
            "totalCycles": self.total_cycles,
            "workSessions": self.work_sessions,
            "breakSessions": self.break_sessions,
            "estimatedWorkMinutes": self.estimated_work_minutes,
            "estimatedBreakMinutes": self.estimated_break_minutes,
            "productivityRatio": round(self.productivity_ratio, 1),
        }


class TimerController:
    """Applies profile snapshots to the engine and drives it on user actions."""

    def __init__(
        self,
        engine: TimerEngine,
        router: NotificationRouter,
        event_bus: EventBus,
    ) -> None:
        self.engine = engine
        self.router = router
        self.event_bus = event_bus
        self._profile: Optional[Profile] = None

        event_bus.subscribe(ProfileChanged, self._on_profile_changed)
        event_bus.subscribe(SettingChanged, self._on_setting_changed)

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile

    def apply_profile(self, profile: Profile) -> None:
        """Push a profile snapshot into the engine and the router."""
        self._profile = profile.snapshot()
        self.engine.set_profile(self._profile)
        self.engine.set_work_minutes(profile.work_minutes)
        self.engine.set_break_minutes(profile.break_minutes)
        self.engine.set_pomodoro_mode(profile.pomodoro_mode)
        self.router.set_profile(self._profile)

    # ------------------------------------------------------------------
    # Timer actions
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.engine.start()

    def pause(self) -> None:
        self.engine.pause()

    def toggle(self) -> None:
        if self.engine.state is TimerState.RUNNING:
            self.engine.pause()
        else:
            self.engine.start()

    def stop(self) -> None:
        self.engine.stop()

    def reset(self) -> None:
        self.engine.reset()

    def acknowledge_break(self) -> None:
        """Confirm a completion: Pomodoro runs the next phase, otherwise rewind."""
        if self.engine.pomodoro_mode:
            self.engine.start()
        else:
            self.engine.reset()

    def continue_work(self) -> None:
        """Skip the break and start a fresh work phase."""
        if self.engine.pomodoro_mode:
            self.engine.stop()
            self.engine.start()
        elif self.engine.state is TimerState.PAUSED:
            self.engine.start()

    def snooze(self, notification_type: NotificationType) -> None:
        """Remind again after the profile's snooze time and keep the timer going."""
        minutes = self._profile.snooze_minutes if self._profile is not None else 5
        self.router.snooze(notification_type, minutes)
        if self.engine.state is TimerState.PAUSED:
            self.engine.start()

    def trigger_emergency_break(self) -> NotificationType:
        """Pause right away and show a random enabled break notification."""
        self.engine.pause()
        notification_type = self.engine.pick_notification_type()
        logger.info("Emergency break: %s", notification_type.display_name)
        self.router.dispatch(notification_type)
        return notification_type

    def statistics(self) -> TimerStatistics:
        return TimerStatistics.from_engine(self.engine)

    def status_text(self) -> str:
        """One-line summary such as ``Running | Pomodoro | Cycle 2 | Break``."""
        engine = self.engine
        return " | ".join((
            engine.state.value.capitalize(),
            "Pomodoro" if engine.pomodoro_mode else "Normal",
            f"Cycle {engine.current_cycle}",
            engine.current_phase.value.capitalize(),
        ))

    def set_work_minutes(self, minutes: int) -> None:
        if is_valid_work_minutes(minutes):
            self.engine.set_work_minutes(minutes)

    def set_break_minutes(self, minutes: int) -> None:
        if is_valid_break_minutes(minutes):
            self.engine.set_break_minutes(minutes)

    def set_pomodoro_mode(self, enabled: bool) -> None:
        """Switch modes; a running timer is stopped and rewound."""
        self.engine.set_pomodoro_mode(enabled)
        if self.engine.state is TimerState.RUNNING:
            self.engine.stop()

    def set_quick_timer(self, work_minutes: int, break_minutes: int, pomodoro_mode: bool) -> None:
        """Apply ad-hoc durations, restarting if the timer was running."""
        was_running = self.engine.state is TimerState.RUNNING
        if was_running:
            self.engine.stop()

        self.engine.set_work_minutes(work_minutes)
        self.engine.set_break_minutes(break_minutes)
        self.engine.set_pomodoro_mode(pomodoro_mode)
        self.engine.reset()

        if was_running:
            self.engine.start()

    def apply_pomodoro_preset(self) -> None:
        self._apply_preset(create_pomodoro_profile())

    def apply_long_work_preset(self) -> None:
        self._apply_preset(create_long_work_profile())

    def apply_short_focus_preset(self) -> None:
        self._apply_preset(create_short_focus_profile())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply_preset(self, preset: Profile) -> None:
        self.set_quick_timer(preset.work_minutes, preset.break_minutes, preset.pomodoro_mode)

    def _on_profile_changed(self, event: ProfileChanged) -> None:
        if event.new is not None:
            self.apply_profile(event.new)

    def _on_setting_changed(self, event: SettingChanged) -> None:
        self._profile = event.profile.snapshot()
        self.engine.set_profile(self._profile)
        self.router.set_profile(self._profile)
        if event.field == "work_minutes":
            self.engine.set_work_minutes(event.value)
        elif event.field == "break_minutes":
            self.engine.set_break_minutes(event.value)
        elif event.field == "pomodoro_mode":
            self.set_pomodoro_mode(event.value)
