"""Unit tests for the debounced AutoSaveScheduler.

A fake clock drives ``poll_once`` directly; the background loop itself is
covered by one short real-time test.
"""

import json
import threading
import time
from unittest.mock import MagicMock

import pytest

from codebreak.core.autosave import AutoSaveScheduler
from codebreak.core.events import EventBus, ProfileChanged
from codebreak.core.registry import ProfileRegistry
from codebreak.persistence.store import ProfileStore


class FakeClock:

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path)


@pytest.fixture
def registry(store, bus):
    reg = ProfileRegistry(store, bus)
    reg.load()
    return reg


@pytest.fixture
def scheduler(registry, store, bus, clock):
    return AutoSaveScheduler(registry, store, bus, clock=clock)


def _saved_profiles(store):
    return json.loads(store.profiles_path.read_text(encoding="utf-8"))["profiles"]


# ------------------------------------------------------------------
# Debounce
# ------------------------------------------------------------------

class TestDebounce:

    def test_idle_poll_does_nothing(self, scheduler, store):
        assert scheduler.poll_once() is False
        assert not store.profiles_path.exists()
        assert scheduler.flush_count == 0

    def test_registry_edits_mark_dirty(self, scheduler, registry):
        registry.update_field("work_minutes", 30)
        assert scheduler.has_unsaved_changes()

    def test_no_flush_before_quiet_period(self, scheduler, registry, clock):
        registry.update_field("work_minutes", 30)
        clock.advance(0.4)
        assert scheduler.poll_once() is False
        assert scheduler.has_unsaved_changes()

    def test_flush_after_quiet_period(self, scheduler, registry, store, clock):
        registry.update_field("work_minutes", 30)
        clock.advance(0.5)
        assert scheduler.poll_once() is True

        assert not scheduler.has_unsaved_changes()
        assert _saved_profiles(store)[0]["workMinutes"] == 30
        assert registry.current_profile.work_minutes == 30

    def test_each_edit_restarts_quiet_period(self, scheduler, registry, clock):
        registry.update_field("work_minutes", 30)
        clock.advance(0.4)
        registry.update_field("work_minutes", 31)
        clock.advance(0.4)
        assert scheduler.poll_once() is False
        clock.advance(0.1)
        assert scheduler.poll_once() is True

    def test_many_marks_one_flush(self, scheduler, clock):
        for _ in range(10):
            scheduler.mark_dirty()
        clock.advance(1)
        assert scheduler.poll_once() is True
        assert scheduler.poll_once() is False
        assert scheduler.flush_count == 1

    def test_flush_writes_settings(self, scheduler, registry, store, clock):
        registry.select_profile("Long Work")
        clock.advance(1)
        scheduler.poll_once()
        assert store.load_settings()["selectedProfile"] == "Long Work"

    def test_flush_publishes_profile_changed(self, scheduler, registry, bus, clock):
        events = []
        bus.subscribe(ProfileChanged, events.append)
        registry.update_field("break_minutes", 8)
        clock.advance(1)
        scheduler.poll_once()

        assert len(events) == 1
        assert events[0].old is None
        assert events[0].new.name == "Pomodoro"
        assert events[0].new.break_minutes == 8


# ------------------------------------------------------------------
# Failure handling
# ------------------------------------------------------------------

class TestFailures:

    def _failing_store(self, store):
        failing = MagicMock(wraps=store)
        failing.save_profiles.side_effect = OSError("disk full")
        return failing

    def test_failed_flush_stays_dirty(self, registry, store, bus, clock):
        scheduler = AutoSaveScheduler(registry, self._failing_store(store), bus, clock=clock)
        scheduler.mark_dirty()
        clock.advance(1)
        assert scheduler.poll_once() is False
        assert scheduler.has_unsaved_changes()
        assert scheduler.flush_count == 0

    def test_failed_flush_retried_on_next_poll(self, registry, store, bus, clock):
        failing = self._failing_store(store)
        scheduler = AutoSaveScheduler(registry, failing, bus, clock=clock)
        scheduler.mark_dirty()
        clock.advance(1)
        scheduler.poll_once()

        failing.save_profiles.side_effect = None
        assert scheduler.poll_once() is True
        assert not scheduler.has_unsaved_changes()

    def test_force_save_raises(self, registry, store, bus, clock):
        scheduler = AutoSaveScheduler(registry, self._failing_store(store), bus, clock=clock)
        with pytest.raises(OSError):
            scheduler.force_save()


# ------------------------------------------------------------------
# Forced and concurrent flushes
# ------------------------------------------------------------------

class TestForceSave:

    def test_force_save_ignores_debounce(self, scheduler, registry, store):
        registry.update_field("work_minutes", 77)
        scheduler.force_save()
        assert _saved_profiles(store)[0]["workMinutes"] == 77
        assert not scheduler.has_unsaved_changes()

    def test_force_save_when_clean(self, scheduler, store):
        scheduler.force_save()
        assert store.profiles_path.exists()
        assert scheduler.flush_count == 1

    def test_mark_during_flush_keeps_dirty(self, registry, store, bus, clock):
        slow = MagicMock(wraps=store)
        scheduler = AutoSaveScheduler(registry, slow, bus, clock=clock)

        def save_and_edit(profiles):
            store.save_profiles(profiles)
            registry.update_field("work_minutes", 44)

        slow.save_profiles.side_effect = save_and_edit
        registry.update_field("work_minutes", 43)
        scheduler.force_save()

        assert scheduler.has_unsaved_changes()
        assert _saved_profiles(store)[0]["workMinutes"] == 43

        slow.save_profiles.side_effect = None
        clock.advance(1)
        assert scheduler.poll_once() is True
        assert _saved_profiles(store)[0]["workMinutes"] == 44

    def test_flushes_do_not_overlap(self, registry, store, bus):
        active = []
        overlaps = []
        guard = threading.Lock()
        slow = MagicMock(wraps=store)

        def save(profiles):
            with guard:
                if active:
                    overlaps.append(True)
                active.append(1)
            time.sleep(0.02)
            with guard:
                active.pop()

        slow.save_profiles.side_effect = save
        scheduler = AutoSaveScheduler(registry, slow, bus)
        threads = [threading.Thread(target=scheduler.force_save) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert scheduler.flush_count == 4


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------

class TestLifecycle:

    def test_shutdown_flushes_pending_changes(self, scheduler, registry, store):
        registry.update_field("snooze_minutes", 12)
        scheduler.shutdown()
        assert _saved_profiles(store)[0]["snoozeMinutes"] == 12
        assert not scheduler.has_unsaved_changes()

    def test_shutdown_when_clean_writes_nothing(self, scheduler, store):
        scheduler.shutdown()
        assert not store.profiles_path.exists()

    def test_background_loop_flushes(self, registry, store, bus):
        scheduler = AutoSaveScheduler(
            registry, store, bus, debounce_seconds=0.02, poll_interval=0.01
        )
        scheduler.start()
        try:
            registry.update_field("work_minutes", 61)
            deadline = time.monotonic() + 2
            while scheduler.has_unsaved_changes() and time.monotonic() < deadline:
                time.sleep(0.01)
            assert not scheduler.has_unsaved_changes()
            assert _saved_profiles(store)[0]["workMinutes"] == 61
        finally:
            scheduler.shutdown()
