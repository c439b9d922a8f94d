"""Notification routing for Code ∧ Break.

When a phase completes the router checks whether the chosen notification
type is enabled for the active profile and whether anything (such as a
fullscreen application) should suppress it, then fans out to every
enabled channel.  Channels fail independently.
"""

import logging
import sys
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from codebreak.core.events import EventBus, ProfileChanged, TimerCompleted
from codebreak.core.models import SECONDS_PER_MINUTE, NotificationType, Profile

logger = logging.getLogger(__name__)

APP_TITLE = "Code ∧ Break"


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

class NotificationChannel(ABC):
    """One way of getting a reminder in front of the user."""

    name = "channel"

    @abstractmethod
    def is_enabled(self, profile: Optional[Profile]) -> bool:
        """Return True if this channel should fire for *profile*."""

    @abstractmethod
    def send(self, notification_type: NotificationType) -> None:
        """Deliver the reminder.  May raise; the router logs failures."""


class SoundChannel(NotificationChannel):
    """Plays the system alert sound."""

    name = "sound"

    def is_enabled(self, profile: Optional[Profile]) -> bool:
        return profile is None or profile.sound_enabled

    def send(self, notification_type: NotificationType) -> None:
        if sys.platform == "win32":
            import winsound
            winsound.MessageBeep()
        else:
            sys.stdout.write("\a")
            sys.stdout.flush()


class PopupChannel(NotificationChannel):
    """Shows a dialog through a UI-supplied callback ``(title, message)``."""

    name = "popup"

    def __init__(self, show: Callable[[str, str], None]) -> None:
        self.show = show

    def is_enabled(self, profile: Optional[Profile]) -> bool:
        return profile is None or profile.popup_enabled

    def send(self, notification_type: NotificationType) -> None:
        self.show(notification_type.display_name, notification_type.message)


class FlashChannel(NotificationChannel):
    """Briefly flashes the screen through a UI-supplied callback."""

    name = "flash"

    def __init__(self, flash: Callable[[], None]) -> None:
        self.flash = flash

    def is_enabled(self, profile: Optional[Profile]) -> bool:
        return profile is None or profile.flash_enabled

    def send(self, notification_type: NotificationType) -> None:
        self.flash()


class TrayChannel(NotificationChannel):
    """Posts a system tray balloon via ``notify(title, message)``."""

    name = "tray"

    def __init__(self, notify: Callable[[str, str], None]) -> None:
        self.notify = notify

    def is_enabled(self, profile: Optional[Profile]) -> bool:
        return True

    def send(self, notification_type: NotificationType) -> None:
        self.notify(APP_TITLE, notification_type.message)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class NotificationRouter:
    """Decides whether and where to show a timer completion reminder."""

    def __init__(
        self,
        event_bus: EventBus,
        channels: Optional[list[NotificationChannel]] = None,
        fullscreen_check: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.event_bus = event_bus
        self.channels: list[NotificationChannel] = list(channels or [])
        self.fullscreen_check = fullscreen_check
        self._profile: Optional[Profile] = None

        event_bus.subscribe(TimerCompleted, self._on_timer_completed)
        event_bus.subscribe(ProfileChanged, self._on_profile_changed)

    @property
    def profile(self) -> Optional[Profile]:
        return self._profile

    def set_profile(self, profile: Optional[Profile]) -> None:
        self._profile = profile.snapshot() if profile is not None else None

    def add_channel(self, channel: NotificationChannel) -> None:
        self.channels.append(channel)

    def is_type_enabled(self, notification_type: NotificationType) -> bool:
        """Profile gate; with no profile every type is enabled."""
        if self._profile is None:
            return True
        return self._profile.is_notification_enabled(notification_type)

    def should_show(self) -> bool:
        """False only when a fullscreen application is positively detected."""
        if self.fullscreen_check is None:
            return True
        try:
            return not self.fullscreen_check()
        except Exception:
            logger.debug("Fullscreen check failed; showing notification", exc_info=True)
            return True

    def dispatch(self, notification_type: NotificationType) -> bool:
        """Send *notification_type* to every enabled channel.

        Returns ``True`` if the notification passed the profile and
        suppression checks (even if individual channels failed).
        """
        if not self.is_type_enabled(notification_type):
            logger.info("Notification %s disabled for this profile", notification_type.display_name)
            return False
        if not self.should_show():
            logger.info("Notification %s suppressed (fullscreen)", notification_type.display_name)
            return False

        logger.info("Notification: %s - %s", notification_type.display_name, notification_type.message)
        profile = self._profile
        for channel in list(self.channels):
            if not channel.is_enabled(profile):
                continue
            try:
                channel.send(notification_type)
            except Exception:
                logger.exception("Notification channel %s failed", channel.name)
        return True

    def snooze(self, notification_type: NotificationType, minutes: int) -> threading.Timer:
        """Re-dispatch *notification_type* after *minutes*, without blocking."""
        timer = threading.Timer(minutes * SECONDS_PER_MINUTE, self.dispatch, args=(notification_type,))
        timer.daemon = True
        timer.start()
        logger.info("Snoozed %s for %d min", notification_type.display_name, minutes)
        return timer

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_timer_completed(self, event: TimerCompleted) -> None:
        self.dispatch(event.notification_type)

    def _on_profile_changed(self, event: ProfileChanged) -> None:
        if event.new is not None:
            self.set_profile(event.new)
