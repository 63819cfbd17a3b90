"""Multi-connection downloads with resume support."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from typing import IO, Any, Protocol
from urllib.parse import urlsplit, urlunsplit

import requests

from pcsrequester.client import HTTPClient
from pcsrequester.downloader.config import MIN_PARALLEL_SIZE, Config
from pcsrequester.downloader.loadbalance import (
    LoadBalancerResponse,
    LoadBalancerResponseList,
    server_equal,
)
from pcsrequester.downloader.monitor import Monitor
from pcsrequester.downloader.ranges import Range
from pcsrequester.downloader.state import InstanceState
from pcsrequester.downloader.status import DownloadStatus
from pcsrequester.downloader.worker import Worker

_log = logging.getLogger(__name__)

_CLIENT_TIMEOUT = 20 * 60.0
_LOAD_BALANCER_TIMEOUT = 5.0
_LOAD_BALANCER_PARALLEL = 10

Event = Callable[[], None]


class _WriterAt(Protocol):
    def write_at(self, data: bytes, offset: int) -> int: ...


class DownloadError(RuntimeError):
    """The server answered the first request with an error status."""

    def __init__(self, status: str) -> None:
        super().__init__(status)
        self.status = status


def _trigger(fn: Event | None) -> None:
    if fn is not None:
        threading.Thread(target=fn, daemon=True).start()


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


def _div(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _open_state_file(path: str) -> IO[bytes]:
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o777)
    return os.fdopen(fd, "r+b")


class Downloader:
    """Downloads one URL over several ranged connections into a positional writer."""

    status_interval = 1.0

    def __init__(
        self,
        url: str,
        writer: _WriterAt | None = None,
        config: Config | None = None,
    ) -> None:
        self.url = url
        self.writer = writer
        self.config = config
        self.client: HTTPClient | None = None
        self.monitor: Monitor | None = None
        self.instance_state: InstanceState | None = None
        self.try_http = False
        self.status_code_body_check: Callable[[Any], None] | None = None
        self.on_execute: Event | None = None
        self.on_success: Event | None = None
        self.on_finish: Event | None = None
        self.on_pause: Event | None = None
        self.on_resume: Event | None = None
        self.on_cancel: Event | None = None
        self.executed = False
        self._execute_time = 0.0
        self._load_balancers: list[str] = []
        self._cancel_event: threading.Event | None = None
        self._finished = threading.Event()

    def _lazy_init(self) -> None:
        if self.config is None:
            self.config = Config()
        if self.client is None:
            self.client = HTTPClient()
            self.client.timeout = _CLIENT_TIMEOUT
        if self.monitor is None:
            self.monitor = Monitor()

    def add_load_balance_server(self, *urls: str) -> None:
        """Add mirrors that may serve the same file."""
        self._load_balancers.extend(urls)

    def _balancer_entry(self, request: Any) -> LoadBalancerResponse | None:
        if request is None:
            return None
        url = request.url
        if self.try_http:
            url = urlunsplit(urlsplit(url)._replace(scheme="http"))
        referer = request.headers.get("Referer", "") or ""
        _log.debug("download task: URL: %s, Referer: %s", url, referer)
        return LoadBalancerResponse(url, referer)

    def _probe(self, resp: requests.Response, url: str) -> list[LoadBalancerResponse]:
        assert self.client is not None
        try:
            sub_resp = self.client.req("GET", url, None, None)
        except (requests.RequestException, OSError) as err:
            _log.debug("loadBalanser Error: %s", err)
            return []
        sub_resp.close()
        if not server_equal(resp, sub_resp):
            _log.debug("loadBalanser not equal to main server: %s", url)
            return []
        entries: list[LoadBalancerResponse] = []
        if sub_resp.request is not None:
            entries.append(LoadBalancerResponse(str(sub_resp.request.url)))
        entry = self._balancer_entry(sub_resp.request)
        if entry is not None:
            entries.append(entry)
        return entries

    def _collect_load_balancers(self, resp: requests.Response) -> list[LoadBalancerResponse]:
        assert self.client is not None
        responses: list[LoadBalancerResponse] = []
        first = self._balancer_entry(resp.request)
        if first is not None:
            responses.append(first)
        if not self._load_balancers:
            return responses
        saved_timeout = self.client.timeout
        self.client.timeout = _LOAD_BALANCER_TIMEOUT
        try:
            with ThreadPoolExecutor(max_workers=_LOAD_BALANCER_PARALLEL) as pool:
                for entries in pool.map(lambda u: self._probe(resp, u), self._load_balancers):
                    responses.extend(entries)
        finally:
            self.client.timeout = saved_timeout
        return responses

    def _check_status(self, resp: requests.Response) -> None:
        if resp.status_code // 100 not in (4, 5):
            return
        try:
            if self.status_code_body_check is not None:
                self.status_code_body_check(resp.raw)
        finally:
            resp.close()
        raise DownloadError(_status_line(resp))

    def _init_instance_state(self) -> None:
        assert self.config is not None
        if self.instance_state is not None:
            raise RuntimeError("already initInstanceState")
        save_file = None
        if not self.config.is_test and self.config.instance_state_path:
            save_file = _open_state_file(self.config.instance_state_path)
        self.instance_state = InstanceState(save_file)

    def _remove_instance_state(self) -> None:
        assert self.config is not None and self.instance_state is not None
        self.instance_state.close()
        if not self.config.is_test and self.config.instance_state_path:
            os.remove(self.config.instance_state_path)

    def execute(self) -> None:
        """Run the download to its end; raises on failure."""
        try:
            self._execute()
        finally:
            self._finished.set()

    def _execute(self) -> None:
        self._lazy_init()
        assert self.client is not None and self.config is not None and self.monitor is not None
        cfg = self.config

        resp = self.client.req("GET", self.url, None, None)
        self._check_status(resp)

        content_length = _content_length(resp)
        accept_ranges = "" if content_length < 0 else "bytes"
        status = DownloadStatus(total_size=content_length)

        try:
            balancers = LoadBalancerResponseList(self._collect_load_balancers(resp))
            self._init_instance_state()
        except BaseException:
            resp.close()
            raise
        assert self.instance_state is not None

        info = self.instance_state.get()
        ranges: list[Range | None] = []
        if info is not None:
            if info.dl_status is not None:
                status = info.dl_status
            ranges = list(info.ranges or [])
            resp.close()

        is_range = bool(ranges)
        if not accept_ranges:
            cfg.parallel = 1
        elif is_range:
            cfg.parallel = len(ranges)
        else:
            cfg.parallel = cfg.max_parallel
            per_block = _div(status.total_size, MIN_PARALLEL_SIZE)
            if cfg.parallel > per_block:
                cfg.parallel = per_block + 1
        cfg.parallel = max(cfg.parallel, 1)

        cfg.actual_cache_size = cfg.cache_size
        block_size = _div(status.total_size, cfg.parallel)
        if cfg.actual_cache_size > block_size:
            cfg.actual_cache_size = block_size

        _log.debug(
            "download task CREATED: parallel: %d, cache size: %d",
            cfg.parallel,
            cfg.actual_cache_size,
        )

        monitor = self.monitor
        monitor.workers = []
        write_lock = threading.Lock()
        begin = 0
        for i in range(cfg.parallel):
            balancer = balancers.sequential_get()
            if balancer is None:
                continue
            worker = Worker(i, balancer.url, self.writer)
            worker.client = self.client
            worker.cache_size = cfg.actual_cache_size
            worker.write_lock = write_lock
            worker.referer = balancer.referer
            if i == 0 and info is None:
                worker.first_resp = resp
            if is_range:
                wrange = ranges[i]
                worker.set_range(accept_ranges, wrange if wrange is not None else Range())
            else:
                end = (i + 1) * block_size
                worker.set_range(accept_ranges, Range(begin, end))
                begin = end + 1
                if i == cfg.parallel - 1:
                    worker.wrange.end = status.total_size - 1
            monitor.append(worker)

        monitor.status = status
        monitor.is_reload_worker = accept_ranges != ""
        monitor.instance_state = self.instance_state
        self._cancel_event = threading.Event()

        self._execute_time = time.monotonic()
        self.executed = True
        _trigger(self.on_execute)
        monitor.execute(self._cancel_event)

        err = monitor.err
        if err is None:
            _trigger(self.on_success)
            self._remove_instance_state()
        else:
            self.instance_state.close()
        _trigger(self.on_finish)
        if err is not None:
            raise err

    def status_updates(self) -> Iterator[DownloadStatus]:
        """Yield the download status every ``status_interval`` seconds until it completes."""
        monitor = self.monitor
        if monitor is None:
            _log.debug("status_updates: monitor is nil")
            return
        status = monitor.status
        if status is None:
            _log.debug("status_updates: monitor.status is nil")
            return
        while not monitor.completed.is_set() and not self._finished.is_set():
            if self.executed:
                status.time_elapsed = time.monotonic() - self._execute_time
                yield status
            time.sleep(self.status_interval)

    def pause(self) -> None:
        if self.monitor is None:
            return
        _trigger(self.on_pause)
        self.monitor.pause()

    def resume(self) -> None:
        if self.monitor is None:
            return
        _trigger(self.on_resume)
        self.monitor.resume()

    def cancel(self) -> None:
        if self.monitor is None:
            return
        _trigger(self.on_cancel)
        if self._cancel_event is not None:
            self._cancel_event.set()

    def print_all_workers(self) -> None:
        if self.monitor is None:
            return
        print(self.monitor.show_workers())