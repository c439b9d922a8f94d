"""Application wiring for Code ∧ Break.

Builds the event bus, profile store and registry, auto-saver, timer
engine, notification router and controller, then runs the system tray
icon (or waits headless) with the web dashboard in a background thread.
"""

import logging
import subprocess
import sys
import threading
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from codebreak.core.autosave import AutoSaveScheduler
from codebreak.core.controller import TimerController
from codebreak.core.events import EventBus
from codebreak.core.notifications import (
    FlashChannel,
    NotificationRouter,
    PopupChannel,
    SoundChannel,
    TrayChannel,
)
from codebreak.core.registry import ProfileRegistry
from codebreak.core.timer import TimerEngine
from codebreak.persistence.store import ProfileStore
from codebreak.platform.fullscreen import FullscreenDetector
from codebreak.ui.dispatcher import UiDispatcher

logger = logging.getLogger(__name__)


@dataclass
class StartupOptions:
    """Command-line overrides applied when the app starts."""
    minimized: bool = False
    use_tray: bool = True
    profile: Optional[str] = None
    auto_start: bool = False


class CodeBreakApp:
    """Main application class that runs Code ∧ Break as a tray app."""

    def __init__(
        self,
        data_dir: str | Path | None = None,
        options: Optional[StartupOptions] = None,
    ) -> None:
        self.options = options or StartupOptions()
        self.event_bus = EventBus()
        self.store = ProfileStore(data_dir)
        self.registry = ProfileRegistry(self.store, self.event_bus)
        self.dispatcher = UiDispatcher()
        self.scheduler: Optional[AutoSaveScheduler] = None
        self.engine: Optional[TimerEngine] = None
        self.router: Optional[NotificationRouter] = None
        self.controller: Optional[TimerController] = None
        self.tray = None
        self._dashboard_port: Optional[int] = None
        self._stopped = threading.Event()
        self._initialized = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load profiles and wire up every component.  Safe to call twice."""
        if self._initialized:
            return

        self.registry.load()
        settings = self.registry.settings

        self.scheduler = AutoSaveScheduler(
            self.registry,
            self.store,
            self.event_bus,
            debounce_seconds=settings.get("autoSaveDelayMs", 500) / 1000,
            poll_interval=settings.get("autoSavePollMs", 100) / 1000,
        )
        self.engine = TimerEngine(
            self.event_bus,
            tick_interval=settings.get("tickIntervalMs", 1000) / 1000,
        )
        self.router = NotificationRouter(
            self.event_bus,
            [
                SoundChannel(),
                PopupChannel(self._show_popup),
                FlashChannel(self._flash_screen),
            ],
            fullscreen_check=self._fullscreen_check(settings),
        )
        self.controller = TimerController(self.engine, self.router, self.event_bus)

        if self.options.use_tray:
            from codebreak.ui.tray import TrayIcon
            self.tray = TrayIcon(self, self.event_bus, self.dispatcher)
            self.router.add_channel(TrayChannel(
                lambda title, message: self.dispatcher.post(self.tray.notify, title, message)
            ))

        current = self.registry.current_profile
        if current is not None:
            self.controller.apply_profile(current)
        self._apply_startup_options()
        self._initialized = True

    def start(self) -> None:
        """Start background work, then block in the tray loop until quit."""
        self.initialize()
        self.scheduler.start()
        self.dispatcher.start()
        self._start_dashboard()

        if self.tray is not None:
            self.tray.run()
            if not self._stopped.is_set():
                logger.info("Tray unavailable; running headless")

        try:
            self._stopped.wait()
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        """Stop the timer, flush unsaved changes and tear down the UI."""
        if self.engine is not None:
            self.engine.stop()
        if self.scheduler is not None:
            self.scheduler.shutdown()
        self.dispatcher.stop()
        if self.tray is not None:
            self.tray.stop()
        self._stopped.set()
        logger.info("Code ∧ Break stopped")

    def open_dashboard(self) -> None:
        """Open the dashboard in the default browser."""
        if self._dashboard_port is None:
            logger.warning("Dashboard is not running")
            return
        try:
            webbrowser.open(f"http://127.0.0.1:{self._dashboard_port}")
        except Exception:
            logger.exception("Failed to open dashboard")

    # ------------------------------------------------------------------
    # Startup helpers
    # ------------------------------------------------------------------

    def _apply_startup_options(self) -> None:
        opts = self.options
        if opts.profile:
            if not self.registry.select_profile(opts.profile):
                logger.warning("Profile %r not found; keeping %s", opts.profile,
                               self.registry.current_profile.name)

        current = self.registry.current_profile
        if opts.auto_start or (current is not None and current.auto_start):
            logger.info("Auto-starting timer")
            self.controller.start()

    @staticmethod
    def _fullscreen_check(settings: dict) -> Optional[FullscreenDetector]:
        if not settings.get("suppressInFullscreen", True):
            return None
        detector = FullscreenDetector()
        if not detector.available:
            logger.debug("Fullscreen detection unavailable on %s", sys.platform)
            return None
        return detector

    def _start_dashboard(self) -> None:
        """Start the web dashboard in a background thread."""
        settings = self.registry.settings
        if not settings.get("dashboardEnabled", True):
            return
        try:
            from codebreak.ui.web import start_dashboard
            self._dashboard_port = settings.get("dashboardPort", 5556)
            start_dashboard(self, port=self._dashboard_port)
        except Exception:
            logger.exception("Failed to start web dashboard")
            self._dashboard_port = None
            return

        if not self.options.minimized and not settings.get("startMinimized", False):
            self.open_dashboard()

    # ------------------------------------------------------------------
    # Notification callbacks
    # ------------------------------------------------------------------

    def _show_popup(self, title: str, message: str) -> None:
        """Show a popup with the given message using native dialogs where possible."""
        if sys.platform == "darwin":
            self.dispatcher.post(self._osascript_display, title, message)
        else:
            logger.info("%s: %s", title, message)

    def _flash_screen(self) -> None:
        if self.tray is not None:
            self.dispatcher.post(self.tray.blink)
        else:
            logger.info("Break time!")

    @staticmethod
    def _osascript_display(title: str, message: str) -> None:
        """Display text via a native macOS dialog."""
        escaped = message.replace("\\", "\\\\").replace('"', '\\"')
        script = (
            f'display dialog "{escaped}" '
            f'with title "{title}" '
            f'buttons {{"OK"}} default button "OK"'
        )
        try:
            subprocess.Popen(
                ["osascript", "-e", script],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError:
            logger.info("%s: %s", title, message)
