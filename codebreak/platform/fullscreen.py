"""Fullscreen detection using ctypes with user32.dll.

Break reminders are held back while a fullscreen window (a presentation,
a game, a video call) owns the screen.  Only Windows is supported; on
other platforms the detector reports ``False`` so reminders always show.
"""

import ctypes
import logging
import sys
from typing import Any, Optional

logger = logging.getLogger(__name__)

# GetSystemMetrics indices for the primary screen size.
SM_CXSCREEN = 0
SM_CYSCREEN = 1


class FullscreenDetector:
    """Callable that tells whether the foreground window covers the screen."""

    def __init__(self, user32: Optional[Any] = None) -> None:
        if user32 is None and sys.platform == "win32":
            try:
                user32 = ctypes.windll.user32  # type: ignore[attr-defined]
            except (AttributeError, OSError) as exc:
                logger.warning("user32.dll unavailable: %s", exc)
        self._user32 = user32

    @property
    def available(self) -> bool:
        return self._user32 is not None

    def __call__(self) -> bool:
        if self._user32 is None:
            return False

        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return False
        # The desktop and shell windows span the screen without being "fullscreen".
        if hwnd in (self._user32.GetDesktopWindow(), self._user32.GetShellWindow()):
            return False

        rect = self._window_rect(hwnd)
        if rect is None:
            return False
        left, top, right, bottom = rect
        width = self._user32.GetSystemMetrics(SM_CXSCREEN)
        height = self._user32.GetSystemMetrics(SM_CYSCREEN)
        return left <= 0 and top <= 0 and right >= width and bottom >= height

    def _window_rect(self, hwnd: int) -> Optional[tuple[int, int, int, int]]:
        import ctypes.wintypes

        rect = ctypes.wintypes.RECT()
        if not self._user32.GetWindowRect(hwnd, ctypes.byref(rect)):
            logger.debug("GetWindowRect failed for window %s", hwnd)
            return None
        return rect.left, rect.top, rect.right, rect.bottom
