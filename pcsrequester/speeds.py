"""Throughput measurement."""

from __future__ import annotations

import threading
import time
from typing import Callable


class Speeds:
    """Counts bytes and reports them per second since the last report."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._readed = 0
        self._start: float | None = None
        self._lock = threading.Lock()

    def _init(self) -> None:
        if self._start is None:
            self._start = self._clock()

    def add(self, count: int) -> None:
        with self._lock:
            self._init()
            self._readed += count

    def speeds_per_second(self) -> int:
        """Return bytes per second since the previous call, then restart counting."""
        with self._lock:
            self._init()
            now = self._clock()
            elapsed = now - self._start
            if elapsed == 0:
                return 0
            speeds = int(self._readed / elapsed)
            self._readed = 0
            self._start = now
            return speeds