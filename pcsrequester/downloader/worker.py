"""A download worker fetching one byte range of a file."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

import requests

from pcsrequester.cachepool import require
from pcsrequester.client import HTTPClient
from pcsrequester.downloader.ranges import Range
from pcsrequester.downloader.status import DownloadStatus, StatusCode, WorkerStatus
from pcsrequester.downloader.utils import fix_cache_size
from pcsrequester.speeds import Speeds

_log = logging.getLogger(__name__)

_EOF = EOFError("EOF")
_UNEXPECTED_EOF = EOFError("unexpected EOF")

_NET_ERROR_CODES = {403, 406, 416}
_TOO_MANY_CODES = {429, 509}


class _WriterAt(Protocol):
    def write_at(self, data: bytes, offset: int) -> int: ...


def _content_length(resp: Any) -> int:
    value = resp.headers.get("Content-Length")
    if value is None:
        return -1
    try:
        return int(value)
    except ValueError:
        return -1


def _status_line(resp: Any) -> str:
    return f"{resp.status_code} {resp.reason or ''}".rstrip()


class Worker:
    """Downloads its byte range and writes it to a shared positional writer."""

    def __init__(self, worker_id: int, url: str, writer: _WriterAt | None = None) -> None:
        self.id = worker_id
        self.url = url
        self.writer = writer
        self.client: HTTPClient | None = None
        self.referer = ""
        self.accept_ranges = ""
        self.wrange = Range()
        self.write_lock: threading.Lock | None = None
        self.download_status: DownloadStatus | None = None
        self.first_resp: requests.Response | None = None
        self.status = WorkerStatus()
        self.err: BaseException | None = None
        self.paused = False
        self._cache_size = 0
        self._speeds = 0
        self._speeds_stat = Speeds()
        self._exec_lock = threading.Lock()
        self._pause_event = threading.Event()
        self._cancel_event: threading.Event | None = None
        self._reset_event: threading.Event | None = None
        self._close_body: Callable[[], None] | None = None

    @property
    def cache_size(self) -> int:
        return self._cache_size

    @cache_size.setter
    def cache_size(self, size: int) -> None:
        self._cache_size = fix_cache_size(size)

    def _lazy_init(self) -> None:
        if self.client is None:
            self.client = HTTPClient()
        if self.write_lock is None:
            self.write_lock = threading.Lock()
        if self.wrange.begin == 0 and self.wrange.end == 0:
            # No range given: download the whole body in one go.
            self.accept_ranges = ""
            self.wrange.end = -2

    def set_range(self, accept_ranges: str, wrange: Range) -> None:
        self.accept_ranges = accept_ranges
        self.wrange = Range(wrange.begin, wrange.end)

    def speeds_per_second(self) -> int:
        return self._speeds

    def _spawn(self) -> threading.Thread:
        thread = threading.Thread(target=self.execute, daemon=True)
        thread.start()
        return thread

    def pause(self) -> None:
        """Ask the running download to stop; ranged downloads only."""
        self._lazy_init()
        if not self.accept_ranges:
            _log.warning("worker unsupport pause")
            return
        if self.paused:
            return
        self._pause_event.set()
        self.paused = True

    def resume(self) -> threading.Thread:
        """Continue a paused download in a new thread, which is returned."""
        self.paused = False
        self._pause_event.clear()
        return self._spawn()

    def cancel(self) -> None:
        if self._cancel_event is None:
            raise RuntimeError("cancelFunc not set")
        self._cancel_event.set()
        if self._close_body is not None:
            self._close_body()

    def reset(self) -> threading.Thread | None:
        """Drop the current connection and start again in a new thread."""
        if self._reset_event is None:
            _log.debug("worker: resetFunc not set")
            return None
        self._reset_event.set()
        if self._close_body is not None:
            self._close_body()
        self.clean_status()
        return self._spawn()

    def canceled(self) -> bool:
        return self.status.status_code == StatusCode.CANCELED

    def completed(self) -> bool:
        return self.status.status_code in (StatusCode.SUCCESSED, StatusCode.CANCELED)

    def failed(self) -> bool:
        return self.status.status_code in (
            StatusCode.FAILED,
            StatusCode.INTERNAL_ERROR,
            StatusCode.TOO_MANY_CONNECTIONS,
            StatusCode.NET_ERROR,
        )

    def clean_status(self) -> None:
        self.status.status_code = StatusCode.INIT

    def _track_speeds(self, stop: threading.Event) -> None:
        while not stop.is_set():
            self._speeds = self._speeds_stat.speeds_per_second()
            stop.wait(1.0)
        self._speeds = 0

    def execute(self) -> None:
        """Download the range; the outcome is left in ``status`` and ``err``."""
        self._lazy_init()
        with self._exec_lock:
            self._run()

    def _run(self) -> None:
        single = not self.accept_ranges

        if self.paused:
            self.status.status_code = StatusCode.PAUSED
            return

        if not single:
            rlen = self.wrange.length()
            if rlen <= 0:
                if rlen < 0:
                    _log.debug("RangeLen is negative at begin: %s, %d", self.wrange, rlen)
                self.status.status_code = StatusCode.SUCCESSED
                return

        cancel_event = threading.Event()
        reset_event = threading.Event()
        self._cancel_event = cancel_event
        self._reset_event = reset_event

        header: dict[str, str] = {}
        if self.referer:
            header["Referer"] = self.referer
        if self.accept_ranges and self.wrange.length() >= 0:
            header["Range"] = f"{self.accept_ranges}={self.wrange.begin}-{self.wrange.end}"

        self.status.status_code = StatusCode.PENDING

        resp = self.first_resp
        if resp is None:
            assert self.client is not None
            try:
                resp = self.client.req("GET", self.url, None, header)
            except (requests.RequestException, OSError) as exc:
                self.err = exc
                self.status.status_code = StatusCode.NET_ERROR
                return
            self.err = None

        self._close_body = resp.close
        try:
            self._consume(resp, single, cancel_event, reset_event)
        finally:
            resp.close()
            self.first_resp = None

    def _consume(
        self,
        resp: requests.Response,
        single: bool,
        cancel_event: threading.Event,
        reset_event: threading.Event,
    ) -> None:
        content_length = _content_length(resp)
        range_length = self.wrange.length()
        if not single and content_length != range_length and self.first_resp is None:
            self.status.status_code = StatusCode.NET_ERROR
            self.err = RuntimeError(
                f"Content-Length is unexpected: {content_length}, need {range_length}"
            )
            return

        code = resp.status_code
        if code not in (200, 206):
            if code in _NET_ERROR_CODES:
                self.status.status_code = StatusCode.NET_ERROR
                self.err = RuntimeError(_status_line(resp))
            elif code in _TOO_MANY_CODES:
                self.status.status_code = StatusCode.TOO_MANY_CONNECTIONS
                self.err = RuntimeError(_status_line(resp))
            else:
                self.status.status_code = StatusCode.NET_ERROR
                self.err = RuntimeError(
                    f"unexpected http status code, {code}, {_status_line(resp)}"
                )
            return

        self._cache_size = fix_cache_size(self._cache_size)
        cache = require(self._cache_size)
        buf = cache.bytes()
        assert buf is not None
        stop_speeds = threading.Event()
        threading.Thread(target=self._track_speeds, args=(stop_speeds,), daemon=True).start()
        try:
            self._download(resp, single, buf, cancel_event, reset_event)
        finally:
            stop_speeds.set()
            cache.free()

    def _fill(self, resp: requests.Response, buf: bytearray, single: bool) -> tuple[int, BaseException | None]:
        n = 0
        read_err: BaseException | None = None
        limit = len(buf)
        while n < limit and read_err is None and (single or self.wrange.length() > n):
            try:
                data = resp.raw.read(limit - n, decode_content=True)
            except Exception as exc:
                read_err = exc
                break
            if not data:
                read_err = _EOF
                break
            count = len(data)
            buf[n:n + count] = data
            if self.download_status is not None:
                self.download_status.add_speeds_downloaded(count)
            self._speeds_stat.add(count)
            n += count
        return n, read_err

    def _download(
        self,
        resp: requests.Response,
        single: bool,
        buf: bytearray,
        cancel_event: threading.Event,
        reset_event: threading.Event,
    ) -> None:
        while True:
            if cancel_event.is_set():
                self.status.status_code = StatusCode.CANCELED
                return
            if reset_event.is_set():
                self.status.status_code = StatusCode.RESETED
                return
            if self._pause_event.is_set():
                self._pause_event.clear()
                self.status.status_code = StatusCode.PAUSED
                return

            self.status.status_code = StatusCode.DOWNLOADING
            n, read_err = self._fill(resp, buf, single)
            if n > 0 and read_err is _EOF:
                read_err = _UNEXPECTED_EOF

            if not single:
                range_length = self.wrange.length()
                if range_length <= 0:
                    self.status.status_code = StatusCode.CANCELED
                    self.err = RuntimeError("worker already complete")
                    return
                if n > range_length:
                    n = range_length
                    read_err = _EOF

            if self.writer is not None:
                self.status.status_code = StatusCode.WAIT_TO_WRITE
                assert self.write_lock is not None
                try:
                    with self.write_lock:
                        self.writer.write_at(bytes(buf[:n]), self.wrange.begin)
                except Exception as exc:
                    self.err = exc
                    self.status.status_code = StatusCode.INTERNAL_ERROR
                    return
                self.status.status_code = StatusCode.DOWNLOADING

            self.wrange.add_begin(n)
            if self.download_status is not None:
                self.download_status.add_downloaded(n)

            rlen = self.wrange.length()
            if read_err is None and (single or rlen > 0):
                continue
            if (single and read_err is _UNEXPECTED_EOF) or read_err is _EOF or rlen <= 0:
                # A negative length means the range was handed partly to another worker.
                if rlen < 0:
                    _log.debug("RangeLen is negative at end: %s, %d", self.wrange, rlen)
                self.status.status_code = StatusCode.SUCCESSED
                return
            self.status.status_code = StatusCode.FAILED
            self.err = read_err
            return


def sort_by_left_desc(workers: list[Worker]) -> None:
    """Sort workers in place, the one with the most left to download first."""
    workers.sort(key=lambda worker: worker.wrange.length(), reverse=True)