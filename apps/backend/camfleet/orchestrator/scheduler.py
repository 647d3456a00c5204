from __future__ import annotations

import threading
from collections.abc import Callable

from camfleet.util.logging import get_logger
from camfleet.util.time import monotonic

logger = get_logger(__name__)


class PeriodicTask:
    """Runs a callback at a fixed rate on its own thread.

    Deadlines advance from the schedule, not from when the callback
    finished, so slow ticks do not accumulate drift. Ticks missed while a
    callback overran are skipped rather than replayed back to back.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], object], *, run_immediately: bool = False) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.callback = callback
        self.run_immediately = run_immediately
        self.runs = 0
        self.skipped_ticks = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("periodic task %s did not stop within %.1fs", self.name, timeout)
        else:
            self._thread = None

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run_loop(self) -> None:
        next_run = monotonic() if self.run_immediately else monotonic() + self.interval
        while True:
            if self._stop_event.wait(max(0.0, next_run - monotonic())):
                return
            try:
                self.callback()
            except Exception:
                logger.exception("periodic task %s failed", self.name)
            self.runs += 1
            next_run += self.interval
            now = monotonic()
            if next_run <= now:
                missed = int((now - next_run) // self.interval) + 1
                self.skipped_ticks += missed
                next_run += missed * self.interval
