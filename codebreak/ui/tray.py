"""System tray front end for Code ∧ Break.

A pystray icon whose tooltip follows the countdown and whose menu drives
the timer controller.  Timer events arrive on background threads and are
handed to the :class:`UiDispatcher` before touching the icon.
"""

import logging
import threading
from typing import Any, Optional

from codebreak.core.events import EventBus, ProfileChanged, TimerStateChanged, TimerTick
from codebreak.core.models import Phase, TimerState, format_time
from codebreak.ui.dispatcher import UiDispatcher

logger = logging.getLogger(__name__)

APP_NAME = "CodeBreak"
ICON_SIZE = 64
BLINK_SECONDS = 0.5

STATE_COLORS = {
    TimerState.STOPPED: (90, 125, 154),
    TimerState.RUNNING: (76, 175, 80),
    TimerState.PAUSED: (255, 152, 0),
}


def create_icon_image(state: TimerState = TimerState.STOPPED):
    """Render the tray icon for *state* with Pillow, or None if unavailable."""
    try:
        from PIL import Image, ImageDraw
    except ImportError:
        return None

    img = Image.new("RGBA", (ICON_SIZE, ICON_SIZE), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.ellipse((4, 4, ICON_SIZE - 4, ICON_SIZE - 4), fill=STATE_COLORS[state])
    # A caret, for the "∧" in the name.
    draw.line((20, 42, 32, 20, 44, 42), fill=(255, 255, 255), width=6)
    return img


def format_tooltip(remaining_seconds: int, phase: Phase, profile_name: Optional[str]) -> str:
    label = "Work" if phase is Phase.WORK else "Break"
    text = f"{APP_NAME} - {label} {format_time(remaining_seconds)}"
    if profile_name:
        text += f" ({profile_name})"
    return text


class TrayIcon:
    """Wraps a ``pystray.Icon`` bound to a running :class:`CodeBreakApp`."""

    def __init__(self, app: Any, event_bus: EventBus, dispatcher: UiDispatcher) -> None:
        self.app = app
        self.dispatcher = dispatcher
        self.icon = None
        self._state = TimerState.STOPPED
        current = app.registry.current_profile
        self._profile_name: Optional[str] = current.name if current is not None else None

        event_bus.subscribe(TimerTick, self._on_tick)
        event_bus.subscribe(TimerStateChanged, self._on_state_changed)
        event_bus.subscribe(ProfileChanged, self._on_profile_changed)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Create the icon and block in the pystray event loop."""
        try:
            import pystray
        except ImportError:
            logger.warning(
                "pystray not available; running without system tray. "
                "Install pystray for tray icon support."
            )
            return

        image = create_icon_image(self._state)
        if image is None:
            logger.warning("Could not create tray icon image; skipping tray")
            return

        self.icon = pystray.Icon(APP_NAME, image, APP_NAME, self.build_menu(pystray))
        self.icon.run()

    def stop(self) -> None:
        if self.icon is not None:
            try:
                self.icon.stop()
            except Exception:
                logger.debug("Tray icon already stopped")
            self.icon = None

    def notify(self, title: str, message: str) -> None:
        """Show a tray balloon; used by the tray notification channel."""
        if self.icon is None:
            logger.info("%s: %s", title, message)
            return
        self.icon.notify(message, title)

    def set_tooltip(self, text: str) -> None:
        if self.icon is not None:
            self.icon.title = text

    def set_state(self, state: TimerState) -> None:
        self._state = state
        if self.icon is not None:
            image = create_icon_image(state)
            if image is not None:
                self.icon.icon = image
            self.icon.update_menu()

    def blink(self) -> None:
        """Flash the icon white once; the state colour returns after a moment."""
        if self.icon is None:
            return
        try:
            from PIL import Image
        except ImportError:
            return
        self.icon.icon = Image.new("RGBA", (ICON_SIZE, ICON_SIZE), (255, 255, 255, 255))
        timer = threading.Timer(BLINK_SECONDS, self.dispatcher.post, args=(self.set_state, self._state))
        timer.daemon = True
        timer.start()

    def build_menu(self, pystray: Any):
        """Build the tray menu from the ``pystray`` module."""
        MenuItem, Menu = pystray.MenuItem, pystray.Menu
        controller = self.app.controller

        def _toggle_label(item):
            return "Pause" if self._state is TimerState.RUNNING else "Start"

        def _profile_item(name: str):
            return MenuItem(
                name,
                lambda: self.app.registry.select_profile(name),
                checked=lambda item: self._profile_name == name,
                radio=True,
            )

        def _profiles_menu():
            return [_profile_item(name) for name in self.app.registry.profile_names()]

        return Menu(
            MenuItem(_toggle_label, lambda: controller.toggle(), default=True),
            MenuItem("Stop", lambda: controller.stop()),
            MenuItem("Acknowledge", lambda: controller.acknowledge_break()),
            MenuItem("Break Now", lambda: controller.trigger_emergency_break()),
            Menu.SEPARATOR,
            MenuItem("Profiles", Menu(_profiles_menu)),
            MenuItem("Dashboard", lambda: self.app.open_dashboard()),
            Menu.SEPARATOR,
            MenuItem("Quit", lambda: self.app.stop()),
        )

    # ------------------------------------------------------------------
    # Event handlers (background threads)
    # ------------------------------------------------------------------

    def _on_tick(self, event: TimerTick) -> None:
        text = format_tooltip(event.remaining_seconds, event.phase, self._profile_name)
        self.dispatcher.post(self.set_tooltip, text)

    def _on_state_changed(self, event: TimerStateChanged) -> None:
        self.dispatcher.post(self.set_state, event.state)

    def _on_profile_changed(self, event: ProfileChanged) -> None:
        if event.new is not None:
            self._profile_name = event.new.name
