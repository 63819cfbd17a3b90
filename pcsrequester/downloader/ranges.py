"""Byte ranges handled by download workers."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass
class Range:
    """An inclusive byte range."""

    begin: int = 0
    end: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def length(self) -> int:
        return self.end - self.begin + 1

    def add_begin(self, count: int) -> int:
        """Advance the start by ``count`` and return the new start."""
        with self._lock:
            self.begin += count
            return self.begin

    def __str__(self) -> str:
        return f"{{{self.begin}-{self.end}}}"


def ranges_length(ranges: Iterable[Range | None]) -> int:
    """Total length of the ranges, skipping missing entries."""
    return sum(r.length() for r in ranges if r is not None)