"""Timer engine for Code ∧ Break.

A small state machine (STOPPED / RUNNING / PAUSED) that counts down the
current phase one tick at a time.  In Pomodoro mode an even cycle count
means a work phase is due and an odd count means a break is due.  Every
completed phase pauses the engine; the next :meth:`TimerEngine.start`
acknowledges the completion and runs the following phase.
"""

import logging
import random
import threading
from typing import Callable, Optional

from codebreak.core.events import EventBus, TimerCompleted, TimerStateChanged, TimerTick
from codebreak.core.models import (
    DEFAULT_BREAK_MINUTES,
    DEFAULT_WORK_MINUTES,
    NotificationType,
    Phase,
    Profile,
    TimerState,
    format_time,
    minutes_to_seconds,
)

logger = logging.getLogger(__name__)


class PeriodicTicker:
    """Calls *callback* every *interval* seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="codebreak-ticker"
        )
        self._thread.start()

    def cancel(self) -> None:
        # Not joined: the caller may hold the lock the tick callback is waiting on.
        self._stopped.set()

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Timer tick failed")


TickerFactory = Callable[[float, Callable[[], None]], PeriodicTicker]


class TimerEngine:
    """Counts down work and break phases and publishes timer events.

    All state lives behind one re-entrant lock.  Ticks are tagged with the
    generation of the ticker that produced them; :meth:`pause` and
    :meth:`stop` bump the generation under the lock, so once either returns
    a stale tick can no longer change state or emit anything.
    """

    TICK_INTERVAL = 1.0

    def __init__(
        self,
        event_bus: EventBus,
        tick_interval: float = TICK_INTERVAL,
        ticker_factory: TickerFactory = PeriodicTicker,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.event_bus = event_bus
        self.tick_interval = tick_interval
        self._ticker_factory = ticker_factory
        self._rng = rng or random.Random()
        self._lock = threading.RLock()

        self._state = TimerState.STOPPED
        self._work_minutes = DEFAULT_WORK_MINUTES
        self._break_minutes = DEFAULT_BREAK_MINUTES
        self._remaining_seconds = minutes_to_seconds(self._work_minutes)
        self._current_cycle = 0
        self._pomodoro_mode = True
        self._notification_type = NotificationType.REST
        self._profile: Optional[Profile] = None

        self._ticker = None
        self._generation = 0

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def work_minutes(self) -> int:
        return self._work_minutes

    @property
    def break_minutes(self) -> int:
        return self._break_minutes

    @property
    def remaining_seconds(self) -> int:
        return self._remaining_seconds

    @property
    def current_cycle(self) -> int:
        return self._current_cycle

    @property
    def pomodoro_mode(self) -> bool:
        return self._pomodoro_mode

    @property
    def current_notification_type(self) -> NotificationType:
        return self._notification_type

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile

    @property
    def current_phase(self) -> Phase:
        if self._pomodoro_mode and self._current_cycle % 2 == 1:
            return Phase.BREAK
        return Phase.WORK

    @property
    def formatted_time(self) -> str:
        return format_time(self._remaining_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run the current phase.  No-op when already running."""
        with self._lock:
            if self._state is TimerState.RUNNING:
                return
            self._set_state(TimerState.RUNNING)
            self._generation += 1
            generation = self._generation
            self._ticker = self._ticker_factory(
                self.tick_interval, lambda: self._tick(generation)
            )
            self._ticker.start()

    def pause(self) -> None:
        """Halt ticking.  No-op unless running."""
        with self._lock:
            if self._state is not TimerState.RUNNING:
                return
            self._set_state(TimerState.PAUSED)
            self._cancel_ticker()

    def stop(self) -> None:
        """Stop ticking and rewind to the start of a work phase."""
        with self._lock:
            self._set_state(TimerState.STOPPED)
            self._cancel_ticker()
            self.reset()

    def reset(self) -> None:
        """Rewind the countdown and cycle counter without touching the state."""
        with self._lock:
            self._remaining_seconds = minutes_to_seconds(self._work_minutes)
            self._current_cycle = 0
            self._emit_tick()

    def set_work_minutes(self, minutes: int) -> None:
        with self._lock:
            self._work_minutes = minutes
            if self._state is TimerState.STOPPED:
                self._remaining_seconds = minutes_to_seconds(minutes)
                self._emit_tick()

    def set_break_minutes(self, minutes: int) -> None:
        with self._lock:
            self._break_minutes = minutes

    def set_pomodoro_mode(self, enabled: bool) -> None:
        with self._lock:
            self._pomodoro_mode = bool(enabled)

    def set_profile(self, profile: Optional[Profile]) -> None:
        """Use *profile* (a snapshot) when choosing notification types."""
        with self._lock:
            self._profile = profile.snapshot() if profile is not None else None
        logger.debug("Timer profile set to %s", profile.name if profile else None)

    def pick_notification_type(self) -> NotificationType:
        """Random enabled type of the active profile; REST when none is enabled."""
        if self._profile is not None:
            enabled = self._profile.enabled_notifications()
            if enabled:
                return self._rng.choice(enabled)
        return NotificationType.REST

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is not TimerState.RUNNING:
                return
            self._remaining_seconds -= 1
            self._emit_tick()
            if self._remaining_seconds <= 0:
                self._complete_phase()

    def _complete_phase(self) -> None:
        self.pause()
        self._current_cycle += 1

        if self._pomodoro_mode:
            if self._current_cycle % 2 == 1:
                self._remaining_seconds = minutes_to_seconds(self._break_minutes)
                self._notification_type = self.pick_notification_type()
            else:
                self._remaining_seconds = minutes_to_seconds(self._work_minutes)
                self._notification_type = NotificationType.REST
        else:
            self._remaining_seconds = minutes_to_seconds(self._work_minutes)
            self._notification_type = self.pick_notification_type()

        logger.info(
            "Phase complete (cycle %d); next: %s for %s",
            self._current_cycle,
            self.current_phase.value,
            format_time(self._remaining_seconds),
        )
        self.event_bus.publish(
            TimerCompleted(
                notification_type=self._notification_type,
                phase=self.current_phase,
                duration_seconds=self._remaining_seconds,
                cycle=self._current_cycle,
            )
        )

    def _cancel_ticker(self) -> None:
        self._generation += 1
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _set_state(self, state: TimerState) -> None:
        self._state = state
        self.event_bus.publish(TimerStateChanged(state))

    def _emit_tick(self) -> None:
        self.event_bus.publish(TimerTick(self._remaining_seconds, self.current_phase))
