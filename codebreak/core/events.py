"""Typed publish/subscribe for Code ∧ Break.

Events are small frozen dataclasses; subscribers register against the event
class and are invoked synchronously, in subscription order, by
:meth:`EventBus.publish`.  A bus is created once by the application and
passed to every component that needs it.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from codebreak.core.models import NotificationType, Phase, Profile, TimerState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfileChanged:
    """The active profile was switched or its saved state changed.

    ``old`` is ``None`` when the event only reports that the current profile
    was persisted.  Both profiles are snapshots.
    """
    old: Optional[Profile]
    new: Optional[Profile]


@dataclass(frozen=True)
class SettingChanged:
    """A single field of the pending (unsaved) profile was edited."""
    field: str
    value: Any
    profile: Profile


@dataclass(frozen=True)
class TimerTick:
    remaining_seconds: int
    phase: Phase


@dataclass(frozen=True)
class TimerStateChanged:
    state: TimerState


@dataclass(frozen=True)
class TimerCompleted:
    """A phase finished; ``phase`` and ``duration_seconds`` describe the next one."""
    notification_type: NotificationType
    phase: Phase
    duration_seconds: int
    cycle: int


Handler = Callable[[Any], None]


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------

class EventBus:
    """Synchronous event dispatcher keyed by event class."""

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, kind: type, handler: Handler) -> None:
        with self._lock:
            self._subscribers.setdefault(kind, []).append(handler)

    def unsubscribe(self, kind: type, handler: Handler) -> None:
        """Remove *handler*; unknown handlers are ignored."""
        with self._lock:
            handlers = self._subscribers.get(kind)
            if not handlers:
                return
            try:
                handlers.remove(handler)
            except ValueError:
                return
            if not handlers:
                del self._subscribers[kind]

    def publish(self, event: Any) -> None:
        """Deliver *event* to every subscriber of its class.

        A failing handler is logged and skipped so the remaining handlers
        still receive the event.
        """
        if event is None:
            return
        with self._lock:
            handlers = list(self._subscribers.get(type(event), ()))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler %r failed for %s", handler, type(event).__name__
                )

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def subscriber_count(self, kind: Optional[type] = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._subscribers.get(kind, ()))
            return sum(len(h) for h in self._subscribers.values())
