"""Debounced auto-save for Code ∧ Break.

The registry marks the scheduler dirty on every edit.  A background loop
polls at a short interval and, once no further edits have arrived for the
debounce window, flushes: pending edits are committed and the profile list
and application settings are written through the :class:`ProfileStore`.
"""

import logging
import threading
import time
from typing import Callable, Optional

from codebreak.core.events import EventBus, ProfileChanged
from codebreak.core.registry import ProfileRegistry
from codebreak.persistence.store import ProfileStore

logger = logging.getLogger(__name__)


class AutoSaveScheduler:
    """IDLE/DIRTY state machine with a polling flush loop.

    Only one flush runs at a time.  Each dirty mark bumps a generation
    counter; a flush clears the dirty flag only if no mark arrived while
    it was writing, so late edits always get a flush of their own.
    """

    DEBOUNCE_SECONDS = 0.5
    POLL_INTERVAL_SECONDS = 0.1

    def __init__(
        self,
        registry: ProfileRegistry,
        store: ProfileStore,
        event_bus: EventBus,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.store = store
        self.event_bus = event_bus
        self.debounce_seconds = debounce_seconds
        self.poll_interval = poll_interval
        self.clock = clock

        self._state_lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._dirty = False
        self._dirty_generation = 0
        self._last_change = 0.0
        self.flush_count = 0

        self._running = False
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

        registry.set_change_listener(self.mark_dirty)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def mark_dirty(self) -> None:
        with self._state_lock:
            self._dirty = True
            self._dirty_generation += 1
            self._last_change = self.clock()

    def has_unsaved_changes(self) -> bool:
        with self._state_lock:
            return self._dirty

    def poll_once(self, now: Optional[float] = None) -> bool:
        """Flush if dirty and quiet for the debounce window.

        Returns ``True`` when a flush happened.  A failed flush is logged
        and left dirty so a later poll retries it.
        """
        now = self.clock() if now is None else now
        with self._state_lock:
            due = self._dirty and now - self._last_change >= self.debounce_seconds
        if not due:
            return False

        try:
            self._flush()
        except Exception:
            logger.exception("Auto-save failed; will retry")
            return False
        return True

    def force_save(self) -> None:
        """Flush immediately, dirty or not.

        Raises:
            OSError: If the store could not be written.
        """
        try:
            self._flush()
        except OSError:
            logger.exception("Forced save failed")
            raise

    def start(self) -> None:
        """Run the poll loop in a daemon background thread."""
        if self._running:
            return
        self._running = True
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self.run, daemon=True, name="codebreak-autosave"
        )
        self._thread.start()
        logger.info("Auto-save started (debounce=%.2fs)", self.debounce_seconds)

    def run(self) -> None:
        """Main loop: poll until :meth:`shutdown` is called."""
        while self._running:
            self.poll_once()
            self._stopped.wait(self.poll_interval)

    def shutdown(self) -> None:
        """Stop the loop and write any unsaved changes."""
        self._running = False
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

        if self.has_unsaved_changes():
            logger.info("Saving unsaved changes before shutdown")
            try:
                self.force_save()
            except OSError:
                logger.error("Unsaved changes could not be written at shutdown")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _flush(self) -> None:
        with self._flush_lock:
            with self._state_lock:
                generation = self._dirty_generation

            profiles, settings = self.registry.commit()
            self.store.save_profiles(profiles)
            self.store.save_settings(settings)

            with self._state_lock:
                if self._dirty_generation == generation:
                    self._dirty = False
            self.flush_count += 1

        logger.debug("Saved %d profiles", len(profiles))
        current = self.registry.current_profile
        if current is not None:
            self.event_bus.publish(ProfileChanged(None, current))
