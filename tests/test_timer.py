"""Unit tests for the TimerEngine state machine.

Ticks are driven by hand through a fake ticker factory; one test at the
bottom runs the real PeriodicTicker with a very short interval.
"""

import random
import threading
import time

import pytest

from codebreak.core.events import EventBus, TimerCompleted, TimerStateChanged, TimerTick
from codebreak.core.models import NotificationType, Phase, Profile, TimerState
from codebreak.core.timer import PeriodicTicker, TimerEngine


class FakeTicker:
    """Records the tick callback instead of running a thread."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class FakeTickerFactory:

    def __init__(self):
        self.tickers: list[FakeTicker] = []

    def __call__(self, interval, callback):
        ticker = FakeTicker(interval, callback)
        self.tickers.append(ticker)
        return ticker

    @property
    def current(self) -> FakeTicker:
        return self.tickers[-1]

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            self.current.callback()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def ticks():
    return FakeTickerFactory()


@pytest.fixture
def engine(bus, ticks):
    return TimerEngine(bus, ticker_factory=ticks, rng=random.Random(7))


def _record(bus, kind):
    events = []
    bus.subscribe(kind, events.append)
    return events


# ------------------------------------------------------------------
# Initial state and setters
# ------------------------------------------------------------------

class TestInitialState:

    def test_defaults(self, engine):
        assert engine.state is TimerState.STOPPED
        assert engine.remaining_seconds == 1500
        assert engine.current_cycle == 0
        assert engine.pomodoro_mode is True
        assert engine.current_phase is Phase.WORK
        assert engine.formatted_time == "25:00"

    def test_set_work_minutes_while_stopped_updates_countdown(self, engine, bus):
        events = _record(bus, TimerTick)
        engine.set_work_minutes(50)
        assert engine.remaining_seconds == 3000
        assert events[-1] == TimerTick(3000, Phase.WORK)

    def test_set_work_minutes_while_paused_keeps_countdown(self, engine, ticks):
        engine.start()
        ticks.fire(10)
        engine.pause()
        engine.set_work_minutes(50)
        assert engine.work_minutes == 50
        assert engine.remaining_seconds == 1490

    def test_set_profile_stores_snapshot(self, engine):
        profile = Profile(name="p")
        engine.set_profile(profile)
        profile.work_minutes = 99
        assert engine.profile.work_minutes == 25
        assert engine.profile is not profile


# ------------------------------------------------------------------
# Transitions
# ------------------------------------------------------------------

class TestTransitions:

    def test_start_runs_ticker(self, engine, ticks, bus):
        states = _record(bus, TimerStateChanged)
        engine.start()
        assert engine.state is TimerState.RUNNING
        assert ticks.current.started
        assert ticks.current.interval == 1.0
        assert states == [TimerStateChanged(TimerState.RUNNING)]

    def test_start_when_running_is_noop(self, engine, ticks):
        engine.start()
        engine.start()
        assert len(ticks.tickers) == 1

    def test_tick_decrements_and_emits(self, engine, ticks, bus):
        events = _record(bus, TimerTick)
        engine.start()
        ticks.fire(3)
        assert engine.remaining_seconds == 1497
        assert [e.remaining_seconds for e in events] == [1499, 1498, 1497]

    def test_pause_keeps_remaining(self, engine, ticks):
        engine.start()
        ticks.fire(5)
        engine.pause()
        assert engine.state is TimerState.PAUSED
        assert engine.remaining_seconds == 1495
        assert ticks.current.cancelled

    def test_pause_when_not_running_is_noop(self, engine, bus):
        states = _record(bus, TimerStateChanged)
        engine.pause()
        assert engine.state is TimerState.STOPPED
        assert states == []

    def test_stale_tick_after_pause_is_ignored(self, engine, ticks, bus):
        engine.start()
        stale = ticks.current.callback
        engine.pause()
        events = _record(bus, TimerTick)

        stale()

        assert engine.remaining_seconds == 1500
        assert events == []

    def test_stale_tick_after_restart_is_ignored(self, engine, ticks):
        engine.start()
        stale = ticks.current.callback
        engine.pause()
        engine.start()

        stale()
        assert engine.remaining_seconds == 1500
        ticks.fire()
        assert engine.remaining_seconds == 1499

    def test_resume_continues_countdown(self, engine, ticks):
        engine.start()
        ticks.fire(5)
        engine.pause()
        engine.start()
        ticks.fire(5)
        assert engine.remaining_seconds == 1490

    def test_stop_rewinds(self, engine, ticks):
        engine.start()
        ticks.fire(100)
        engine.stop()
        assert engine.state is TimerState.STOPPED
        assert engine.remaining_seconds == 1500
        assert engine.current_cycle == 0

    def test_reset_keeps_state(self, engine, ticks):
        engine.start()
        ticks.fire(100)
        engine.reset()
        assert engine.state is TimerState.RUNNING
        assert engine.remaining_seconds == 1500


# ------------------------------------------------------------------
# Phase completion
# ------------------------------------------------------------------

class TestCompletion:

    def test_work_phase_completion_in_pomodoro_mode(self, engine, ticks, bus):
        completed = _record(bus, TimerCompleted)
        engine.start()
        ticks.fire(1500)

        assert engine.state is TimerState.PAUSED
        assert engine.current_cycle == 1
        assert engine.remaining_seconds == 300
        assert engine.current_phase is Phase.BREAK
        assert len(completed) == 1
        assert completed[0].phase is Phase.BREAK
        assert completed[0].duration_seconds == 300
        assert completed[0].cycle == 1

    def test_break_completion_returns_to_work_with_rest(self, engine, ticks, bus):
        completed = _record(bus, TimerCompleted)
        engine.start()
        ticks.fire(1500)
        engine.start()
        ticks.fire(300)

        assert engine.current_cycle == 2
        assert engine.remaining_seconds == 1500
        assert engine.current_phase is Phase.WORK
        assert completed[-1].notification_type is NotificationType.REST

    def test_ticks_after_completion_are_ignored(self, engine, ticks):
        engine.start()
        ticks.fire(1500)
        ticks.fire(10)
        assert engine.remaining_seconds == 300
        assert engine.current_cycle == 1

    def test_one_minute_cycles(self, engine, ticks, bus):
        completed = _record(bus, TimerCompleted)
        engine.set_work_minutes(1)
        engine.set_break_minutes(1)

        engine.start()
        ticks.fire(60)
        assert engine.current_cycle == 1
        assert engine.current_phase is Phase.BREAK
        assert engine.remaining_seconds == 60
        assert engine.state is TimerState.PAUSED

        engine.start()
        ticks.fire(60)
        assert engine.current_cycle == 2
        assert engine.current_phase is Phase.WORK
        assert engine.remaining_seconds == 60
        assert len(completed) == 2

    def test_non_pomodoro_always_refills_work(self, engine, ticks):
        engine.set_pomodoro_mode(False)
        engine.set_work_minutes(2)
        engine.start()
        ticks.fire(120)
        assert engine.current_cycle == 1
        assert engine.current_phase is Phase.WORK
        assert engine.remaining_seconds == 120

    def test_notification_type_chosen_from_enabled(self, engine, ticks, bus):
        profile = Profile(name="p", work_minutes=1)
        profile.set_notification_enabled(NotificationType.REST, False)
        profile.set_notification_enabled(NotificationType.WATER, True)
        engine.set_profile(profile)
        engine.set_work_minutes(1)
        completed = _record(bus, TimerCompleted)

        engine.start()
        ticks.fire(60)

        assert completed[0].notification_type is NotificationType.WATER
        assert engine.current_notification_type is NotificationType.WATER

    def test_no_enabled_types_falls_back_to_rest(self, engine, ticks, bus):
        profile = Profile(name="p")
        profile.set_notification_enabled(NotificationType.REST, False)
        engine.set_profile(profile)
        engine.set_work_minutes(1)
        completed = _record(bus, TimerCompleted)

        engine.start()
        ticks.fire(60)

        assert completed[0].notification_type is NotificationType.REST

    def test_without_profile_uses_rest(self, engine, ticks, bus):
        engine.set_work_minutes(1)
        completed = _record(bus, TimerCompleted)
        engine.start()
        ticks.fire(60)
        assert completed[0].notification_type is NotificationType.REST


# ------------------------------------------------------------------
# Real ticker
# ------------------------------------------------------------------

class TestPeriodicTicker:

    def test_calls_callback_until_cancelled(self):
        fired = threading.Event()
        count = []

        def callback():
            count.append(1)
            if len(count) >= 3:
                fired.set()

        ticker = PeriodicTicker(0.01, callback)
        ticker.start()
        assert fired.wait(2)
        ticker.cancel()
        time.sleep(0.05)
        seen = len(count)
        time.sleep(0.05)
        assert len(count) == seen

    def test_failing_callback_keeps_ticking(self):
        calls = []
        done = threading.Event()

        def callback():
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise RuntimeError("tick failed")

        ticker = PeriodicTicker(0.01, callback)
        ticker.start()
        assert done.wait(2)
        ticker.cancel()

    def test_no_tick_after_pause_returns(self, bus):
        engine = TimerEngine(bus, tick_interval=0.005)
        events = _record(bus, TimerTick)
        engine.start()
        time.sleep(0.05)
        engine.pause()
        seen = len(events)
        time.sleep(0.05)
        assert len(events) == seen
        assert engine.state is TimerState.PAUSED
