"""Readers and writers that know their remaining length."""

from __future__ import annotations

import io
import os
import threading
from collections import deque
from typing import BinaryIO, Protocol


class _Reader(Protocol):
    def read(self, size: int = -1) -> bytes: ...


class _ReaderLen(_Reader, Protocol):
    def __len__(self) -> int: ...


class Buffer:
    """A fixed-length byte buffer that accepts positioned writes."""

    def __init__(self, buf: bytearray | bytes | int) -> None:
        if isinstance(buf, int):
            self.buf = bytearray(buf)
        else:
            self.buf = bytearray(buf)

    def write_at(self, data: bytes, offset: int) -> int:
        """Copy ``data`` into the buffer at ``offset``; return bytes copied."""
        if offset < 0 or offset > len(self.buf):
            raise IndexError(f"offset {offset} out of range for buffer of {len(self.buf)}")
        count = min(len(data), len(self.buf) - offset)
        self.buf[offset:offset + count] = data[:count]
        return count

    def __bytes__(self) -> bytes:
        return bytes(self.buf)

    def __str__(self) -> str:
        return self.buf.decode("utf-8", errors="replace")


class FileReader:
    """Reads a binary file, tracking how much of it has been consumed."""

    def __init__(self, file: BinaryIO) -> None:
        self._file = file
        self._readed = 0
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        with self._lock:
            data = self._file.read(size)
            self._readed += len(data)
            return data

    def read_at(self, size: int, offset: int) -> bytes:
        """Read ``size`` bytes at ``offset`` without counting them as read."""
        with self._lock:
            position = self._file.tell()
            try:
                self._file.seek(offset)
                return self._file.read(size)
            finally:
                self._file.seek(position)

    def __len__(self) -> int:
        try:
            size = os.fstat(self._file.fileno()).st_size
        except (OSError, AttributeError, io.UnsupportedOperation):
            return 0
        return size - self._readed


class RandomReader:
    """Yields cryptographically random bytes, nominally of a given size."""

    def __init__(self, size: int) -> None:
        self._size = size
        self._readed = 0
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        data = self.read_at(size, 0)
        with self._lock:
            self._readed += len(data)
        return data

    def read_at(self, size: int, offset: int) -> bytes:
        if size < 0:
            size = max(len(self), 0)
        return os.urandom(size)

    def __len__(self) -> int:
        return self._size - self._readed


class MultiReader:
    """Concatenates several readers; its length is the sum of theirs."""

    def __init__(self, *readers: _ReaderLen | None) -> None:
        self._all = [reader for reader in readers if reader is not None]
        self._pending: deque[_ReaderLen] = deque(self._all)

    def read(self, size: int = -1) -> bytes:
        chunks: list[bytes] = []
        remaining = size
        while self._pending and (size < 0 or remaining > 0):
            data = self._pending[0].read(remaining if size >= 0 else -1)
            if not data:
                self._pending.popleft()
                continue
            chunks.append(data)
            if size >= 0:
                remaining -= len(data)
        return b"".join(chunks)

    def __len__(self) -> int:
        return sum(len(reader) for reader in self._all)