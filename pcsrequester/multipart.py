"""Streaming multipart/form-data bodies."""

from __future__ import annotations

import io
import secrets
import threading
from typing import Protocol

from pcsrequester.rio import MultiReader


class _ReaderLen(Protocol):
    def read(self, size: int = -1) -> bytes: ...

    def __len__(self) -> int: ...


class MultipartStateError(Exception):
    """The reader was used before being closed, or closed twice."""


_SPECIAL = set('()<>@,;:"/[]?= ')


class MultipartReader:
    """Builds a multipart/form-data body from readers without buffering them."""

    def __init__(self, boundary: str | None = None) -> None:
        self.boundary = boundary if boundary is not None else secrets.token_hex(30)
        self._length = 0
        self._fields: list[tuple[bytes, _ReaderLen]] = []
        self._files: list[tuple[bytes, _ReaderLen]] = []
        self._closed = False
        self._reader: MultiReader | None = None
        self._lock = threading.Lock()

    def content_type(self) -> str:
        boundary = self.boundary
        if any(ch in _SPECIAL for ch in boundary):
            boundary = f'"{boundary}"'
        return f"multipart/form-data; boundary={boundary}"

    def add_form_field(self, fieldname: str, reader: _ReaderLen) -> None:
        form = (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{fieldname}"\r\n\r\n'
        ).encode()
        with self._lock:
            self._length += len(form) + len(reader)
            self._fields.append((form, reader))

    def add_form_file(self, fieldname: str, filename: str, reader: _ReaderLen) -> None:
        form = (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{fieldname}"; filename="{filename}"\r\n\r\n'
        ).encode()
        with self._lock:
            self._length += len(form) + len(reader)
            self._files.append((form, reader))

    def close_multipart(self) -> None:
        """Finish the body; fields come first, then files, then the closing line."""
        with self._lock:
            if self._closed:
                raise MultipartStateError("multipartreader already closed")
            closing = f"\r\n--{self.boundary}--\r\n".encode()
            self._length += len(closing)
            readers: list = []
            for form, reader in (*self._fields, *self._files):
                readers.append(io.BytesIO(form))
                readers.append(reader)
            readers.append(io.BytesIO(closing))
            self._reader = MultiReader(*readers)
            self._closed = True

    def read(self, size: int = -1) -> bytes:
        if not self._closed or self._reader is None:
            raise MultipartStateError("multipartreader not closed")
        return self._reader.read(size)

    def __len__(self) -> int:
        return self._length