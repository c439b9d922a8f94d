"""Hands background-thread updates to a single UI consumer thread."""

import logging
import queue
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class UiDispatcher:
    """FIFO of callables executed on one thread.

    Ticker, auto-save and snooze threads call :meth:`post`; the UI thread
    either calls :meth:`run_pending` from its own loop or lets
    :meth:`start` run a dedicated consumer thread.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[Optional[tuple[Callable[..., Any], tuple]]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        self._queue.put((func, args))

    def run_pending(self) -> int:
        """Run everything queued so far; return how many callables ran."""
        count = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return count
            if item is None:
                continue
            self._invoke(item)
            count += 1

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True, name="codebreak-ui")
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        self._queue.put(None)
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._running

    def _run(self) -> None:
        while self._running:
            item = self._queue.get()
            if item is None:
                continue
            self._invoke(item)

    @staticmethod
    def _invoke(item: tuple[Callable[..., Any], tuple]) -> None:
        func, args = item
        try:
            func(*args)
        except Exception:
            logger.exception("UI callback %r failed", func)
