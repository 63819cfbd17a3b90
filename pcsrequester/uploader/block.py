"""Splitting a file into blocks for upload."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Protocol

BUFIO_READ_SIZE = 64 * 1024


class _ReaderAt(Protocol):
    def read_at(self, size: int, offset: int) -> bytes: ...


@dataclass(frozen=True)
class ReadRange:
    """A half-open byte range [begin, end)."""

    begin: int = 0
    end: int = 0


@dataclass
class BlockState:
    """One block of a file, with the checksum of its upload once done."""

    id: int
    range: ReadRange
    checksum: str = ""


def split_block(file_size: int, block_size: int) -> list[BlockState]:
    """Cut ``file_size`` bytes into consecutive blocks of ``block_size``; the last may be shorter."""
    blocks_num = file_size // block_size
    if file_size % block_size:
        blocks_num += 1

    blocks = []
    begin = 0
    for block_id in range(blocks_num - 1):
        end = begin + block_size
        blocks.append(BlockState(block_id, ReadRange(begin, end)))
        begin = end
    blocks.append(BlockState(len(blocks), ReadRange(begin, file_size)))
    return blocks


class SplitUnit:
    """A seekable reader over one range of a positional reader."""

    def __init__(self, reader_at: _ReaderAt, read_range: ReadRange, readed: int = 0) -> None:
        self.reader_at = reader_at
        self.read_range = read_range
        self._readed = readed
        self._lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        with self._lock:
            position = self.read_range.begin + self._readed
            if position >= self.read_range.end:
                return b""
            left = self.left()
            if size < 0 or size > left:
                size = left
            data = self.reader_at.read_at(size, position)
            self._readed += len(data)
            return data

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        with self._lock:
            if whence == os.SEEK_SET:
                self._readed = offset
            elif whence == os.SEEK_CUR:
                self._readed += offset
            elif whence == os.SEEK_END:
                self._readed = len(self) + offset
            else:
                raise ValueError(f"unsupport whence: {whence}")
            self._readed = max(self._readed, 0)
            return self._readed

    def __len__(self) -> int:
        return self.read_range.end - self.read_range.begin

    def left(self) -> int:
        return len(self) - self._readed

    def readed(self) -> int:
        return self._readed


class BufferedSplitUnit(SplitUnit):
    """A split unit that reads ahead in chunks of BUFIO_READ_SIZE."""

    def __init__(self, reader_at: _ReaderAt, read_range: ReadRange, readed: int = 0) -> None:
        super().__init__(reader_at, read_range, readed)
        self._buffer = bytearray()
        self._buf_lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        with self._buf_lock:
            if size < 0:
                data = bytes(self._buffer) + super().read(-1)
                self._buffer.clear()
                return data
            if not self._buffer:
                if size >= BUFIO_READ_SIZE:
                    return super().read(size)
                self._buffer.extend(super().read(BUFIO_READ_SIZE))
            chunk = bytes(self._buffer[:size])
            del self._buffer[:size]
            return chunk

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        with self._buf_lock:
            self._buffer.clear()
            return super().seek(offset, whence)