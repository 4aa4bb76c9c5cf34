"""Background pruning of in-memory security state."""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Protocol

logger = logging.getLogger(__name__)


class Sweepable(Protocol):
    def sweep(self) -> int: ...


class PeriodicSweeper:
    """Call ``sweep()`` on every target each ``interval_seconds``.

    The loop waits on a :class:`threading.Event`, so :meth:`stop` interrupts
    the wait immediately. Sweeps only remove entries and hold a target's lock
    briefly.
    """

    def __init__(self, interval_seconds: float, *targets: Sweepable) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._targets = list(targets)
        self._stop = Event()
        self._thread: Thread | None = None

    def run_once(self) -> int:
        removed = 0
        for target in self._targets:
            try:
                removed += target.sweep()
            except Exception:
                logger.exception("Sweep failed for %r", target)
        return removed

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._loop, name="replydesk-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


__all__ = ["PeriodicSweeper", "Sweepable"]
