"""Rate limit for connection resets."""

from __future__ import annotations

import threading
import time
from typing import Callable


class ResetController:
    """Allows at most ``max_reset_num`` resets within a sliding window."""

    def __init__(
        self,
        max_reset_num: int,
        lifetime: float = 9.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_reset_num = max_reset_num
        self._lifetime = lifetime
        self._clock = clock
        self._expiries: list[float] = []
        self._lock = threading.Lock()

    def _update(self) -> None:
        now = self._clock()
        self._expiries = [t for t in self._expiries if t > now]

    def add_reset_num(self) -> None:
        with self._lock:
            self._update()
            self._expiries.append(self._clock() + self._lifetime)

    def can_reset(self) -> bool:
        with self._lock:
            self._update()
            return len(self._expiries) < self.max_reset_num