"""Readers that count the bytes read through them."""

from __future__ import annotations

import threading
from typing import Protocol


class _ReaderLen(Protocol):
    def read(self, size: int = -1) -> bytes: ...

    def __len__(self) -> int: ...


class CountingReader:
    """Wraps a reader with a length, counting how many bytes have been read."""

    def __init__(self, reader: _ReaderLen) -> None:
        self._reader = reader
        self._readed = 0
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        data = self._reader.read(size)
        with self._lock:
            self._readed += len(data)
        return data

    def __len__(self) -> int:
        return len(self._reader)

    def readed(self) -> int:
        return self._readed