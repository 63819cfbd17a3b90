"""Single-request uploads with progress reporting."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol

import requests

from pcsrequester.client import HTTPClient
from pcsrequester.uploader.readed import CountingReader

CheckFunc = Callable[[requests.Response | None, BaseException | None], None]


class _ReaderLen(Protocol):
    def read(self, size: int = -1) -> bytes: ...

    def __len__(self) -> int: ...


@dataclass(frozen=True)
class UploadStatus:
    """A snapshot of upload progress; ``time_elapsed`` is in seconds."""

    total_size: int
    uploaded: int
    speeds_per_second: int
    time_elapsed: float


def _trigger(fn: Callable[[], None] | None) -> None:
    if fn is not None:
        threading.Thread(target=fn, daemon=True).start()


def _truncate_ms(seconds: float) -> float:
    return math.floor(seconds * 1000) / 1000


class Uploader:
    """POSTs the contents of a reader to a URL in one request."""

    status_interval = 1.0

    def __init__(self, url: str, reader: _ReaderLen) -> None:
        self.url = url
        self.reader = CountingReader(reader)
        self.content_type = ""
        self.client: HTTPClient | None = None
        self.check_func: CheckFunc | None = None
        self.on_execute: Callable[[], None] | None = None
        self.on_finish: Callable[[], None] | None = None
        self.executed = False
        self._execute_time = 0.0
        self._finished = threading.Event()

    def _lazy_init(self) -> None:
        if self.client is None:
            self.client = HTTPClient()
        self.client.timeout = None
        self.client.response_header_timeout = None

    def _send(self) -> tuple[requests.Response | None, BaseException | None]:
        self._lazy_init()
        assert self.client is not None
        header = {"Content-Type": self.content_type} if self.content_type else {}
        try:
            return self.client.req("POST", self.url, self.reader, header), None
        except (requests.RequestException, OSError) as exc:
            return None, exc

    def execute(self) -> requests.Response | None:
        """Upload, then hand the response or error to ``check_func``; returns the response."""
        _trigger(self.on_execute)
        self._execute_time = time.monotonic()
        self.executed = True
        resp, err = self._send()
        self._finished.set()
        if self.check_func is not None:
            self.check_func(resp, err)
        _trigger(self.on_finish)
        return resp

    def status_updates(self) -> Iterator[UploadStatus]:
        """Yield progress every ``status_interval`` seconds until the upload ends."""
        interval = self.status_interval
        while not self._finished.is_set():
            if not self.executed:
                time.sleep(interval)
                continue
            old = self.reader.readed()
            time.sleep(interval)
            readed = self.reader.readed()
            yield UploadStatus(
                total_size=len(self.reader),
                uploaded=readed,
                speeds_per_second=int((readed - old) / interval),
                time_elapsed=_truncate_ms(time.monotonic() - self._execute_time),
            )