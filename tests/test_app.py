"""Unit tests for the CodeBreakApp wiring.

Since pystray requires a display, tray tests only check wiring; the web
dashboard and browser are patched out.
"""

import json
import threading
from unittest.mock import MagicMock, patch

import pytest

from codebreak.core.models import NotificationType, TimerState
from codebreak.core.notifications import TrayChannel
from codebreak.ui.app import CodeBreakApp, StartupOptions


@pytest.fixture
def app(tmp_path):
    """A headless app instance backed by a temp data directory."""
    instance = CodeBreakApp(tmp_path, StartupOptions(use_tray=False))
    yield instance
    instance.stop()


# ---------------------------------------------------------------------------
# Initialization tests
# ---------------------------------------------------------------------------

class TestInitialize:

    def test_wires_components(self, app):
        app.initialize()
        assert app.scheduler is not None
        assert app.engine is not None
        assert app.router is not None
        assert app.controller is not None
        assert app.tray is None

    def test_applies_current_profile(self, app):
        app.initialize()
        assert app.controller.profile.name == "Pomodoro"
        assert app.engine.remaining_seconds == 1500
        assert app.router.profile.name == "Pomodoro"

    def test_initialize_twice_is_harmless(self, app):
        app.initialize()
        engine = app.engine
        app.initialize()
        assert app.engine is engine

    def test_uses_settings_for_tuning(self, tmp_path):
        (tmp_path / "settings.json").write_text(
            json.dumps({"tickIntervalMs": 250, "autoSaveDelayMs": 1000}), encoding="utf-8"
        )
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=False))
        app.initialize()
        assert app.engine.tick_interval == 0.25
        assert app.scheduler.debounce_seconds == 1.0

    def test_tray_adds_tray_channel(self, tmp_path):
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=True))
        app.initialize()
        assert app.tray is not None
        assert any(isinstance(c, TrayChannel) for c in app.router.channels)

    def test_wires_fullscreen_detector(self, app):
        with patch("codebreak.ui.app.FullscreenDetector") as detector_cls:
            detector_cls.return_value.available = True
            app.initialize()
        assert app.router.fullscreen_check is detector_cls.return_value

    def test_fullscreen_detection_unavailable(self, app):
        with patch("codebreak.ui.app.FullscreenDetector") as detector_cls:
            detector_cls.return_value.available = False
            app.initialize()
        assert app.router.fullscreen_check is None

    def test_fullscreen_suppression_disabled_in_settings(self, tmp_path):
        (tmp_path / "settings.json").write_text(
            json.dumps({"suppressInFullscreen": False}), encoding="utf-8"
        )
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=False))
        with patch("codebreak.ui.app.FullscreenDetector") as detector_cls:
            detector_cls.return_value.available = True
            app.initialize()
        assert app.router.fullscreen_check is None
        detector_cls.assert_not_called()


class TestStartupOptions:

    def test_profile_option_selects_profile(self, tmp_path):
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=False, profile="Long Work"))
        app.initialize()
        assert app.registry.current_profile.name == "Long Work"
        assert app.engine.work_minutes == 60
        assert app.engine.pomodoro_mode is False

    def test_unknown_profile_keeps_saved_one(self, tmp_path):
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=False, profile="Missing"))
        app.initialize()
        assert app.registry.current_profile.name == "Pomodoro"

    def test_auto_start_runs_timer(self, tmp_path):
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=False, auto_start=True))
        app.initialize()
        try:
            assert app.engine.state is TimerState.RUNNING
        finally:
            app.stop()
        assert app.engine.state is TimerState.STOPPED


# ---------------------------------------------------------------------------
# Lifecycle tests
# ---------------------------------------------------------------------------

class TestLifecycle:

    def test_stop_flushes_unsaved_changes(self, app):
        app.initialize()
        app.registry.update_field("work_minutes", 35)
        app.stop()
        data = json.loads(app.store.profiles_path.read_text(encoding="utf-8"))
        assert data["profiles"][0]["workMinutes"] == 35

    @patch("codebreak.ui.app.webbrowser")
    @patch("codebreak.ui.web.start_dashboard")
    def test_headless_start_blocks_until_stop(self, mock_dashboard, mock_browser, app):
        runner = threading.Thread(target=app.start, daemon=True)
        runner.start()
        runner.join(0.2)
        assert runner.is_alive()

        mock_dashboard.assert_called_once_with(app, port=5556)
        mock_browser.open.assert_called_once_with("http://127.0.0.1:5556")

        app.stop()
        runner.join(2)
        assert not runner.is_alive()

    @patch("codebreak.ui.app.webbrowser")
    @patch("codebreak.ui.web.start_dashboard")
    def test_minimized_does_not_open_browser(self, mock_dashboard, mock_browser, tmp_path):
        app = CodeBreakApp(tmp_path, StartupOptions(use_tray=False, minimized=True))
        app.initialize()
        app._start_dashboard()
        mock_dashboard.assert_called_once()
        mock_browser.open.assert_not_called()

    def test_open_dashboard_when_not_running(self, app):
        with patch("codebreak.ui.app.webbrowser") as mock_browser:
            app.open_dashboard()
        mock_browser.open.assert_not_called()


# ---------------------------------------------------------------------------
# Notification callbacks
# ---------------------------------------------------------------------------

class TestNotificationCallbacks:

    def test_popup_on_macos_posts_dialog(self, app):
        app.dispatcher = MagicMock()
        with patch("codebreak.ui.app.sys") as mock_sys:
            mock_sys.platform = "darwin"
            app._show_popup("Rest", "Take a short break!")
        app.dispatcher.post.assert_called_once_with(app._osascript_display, "Rest", "Take a short break!")

    def test_popup_elsewhere_logs(self, app):
        app.dispatcher = MagicMock()
        with patch("codebreak.ui.app.sys") as mock_sys:
            mock_sys.platform = "linux"
            app._show_popup("Rest", "Take a short break!")
        app.dispatcher.post.assert_not_called()

    def test_completion_reaches_flash_channel(self, app):
        app.initialize()
        flash = MagicMock()
        app.router.channels[2].flash = flash
        app.router.dispatch(NotificationType.REST)
        flash.assert_called_once_with()
