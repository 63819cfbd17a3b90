"""Download status codes and transfer statistics."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable

UNKNOWN_STATUS_TEXT = "未知状态码"


class StatusCode(IntEnum):
    """State of a download worker."""

    INIT = 0
    SUCCESSED = 1
    PENDING = 2
    DOWNLOADING = 3
    WAIT_TO_WRITE = 4
    INTERNAL_ERROR = 5
    TOO_MANY_CONNECTIONS = 6
    NET_ERROR = 7
    FAILED = 8
    PAUSED = 9
    RESETED = 10
    CANCELED = 11

    def text(self) -> str:
        return _STATUS_TEXT[self]


_STATUS_TEXT = {
    StatusCode.INIT: "初始化",
    StatusCode.SUCCESSED: "成功",
    StatusCode.PENDING: "等待响应",
    StatusCode.DOWNLOADING: "下载中",
    StatusCode.WAIT_TO_WRITE: "等待写入数据",
    StatusCode.INTERNAL_ERROR: "内部错误",
    StatusCode.TOO_MANY_CONNECTIONS: "连接数太多",
    StatusCode.NET_ERROR: "网络错误",
    StatusCode.FAILED: "下载失败",
    StatusCode.PAUSED: "已暂停",
    StatusCode.RESETED: "已重设连接",
    StatusCode.CANCELED: "已取消",
}


def get_status_text(code: int) -> str:
    """Human-readable text for a status code; unknown codes get a generic text."""
    try:
        return StatusCode(code).text()
    except ValueError:
        return UNKNOWN_STATUS_TEXT


@dataclass
class WorkerStatus:
    """The current status code of a worker."""

    status_code: StatusCode = StatusCode.INIT

    def status_text(self) -> str:
        return get_status_text(self.status_code)


class DownloadStatus:
    """Totals and speeds of a whole download."""

    def __init__(
        self,
        total_size: int = 0,
        downloaded: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._total_size = total_size
        self._downloaded = downloaded
        self._speeds_per_second = 0
        self._max_speeds = 0
        self._speeds_downloaded = downloaded
        self._old_downloaded = downloaded
        self._time_elapsed = 0.0
        self._now = clock()

    def add(self, count: int) -> None:
        self.add_downloaded(count)

    def add_downloaded(self, count: int) -> None:
        with self._lock:
            self._downloaded += count

    def add_speeds_downloaded(self, count: int) -> None:
        """Count bytes towards the speed statistics and refresh them."""
        with self._lock:
            self._speeds_downloaded += count
        self.update_speeds()

    def update_speeds(self) -> None:
        """Recompute the speed if at least half a second has passed since the last update."""
        with self._lock:
            now = self._clock()
            seconds = now - self._now
            if seconds < 0.5:
                return
            speeds = int((self._speeds_downloaded - self._old_downloaded) / seconds)
            self._speeds_per_second = speeds
            if speeds > self._max_speeds:
                self._max_speeds = speeds
            self._now = now
            self._old_downloaded = self._speeds_downloaded

    def reset_max_speeds(self) -> None:
        with self._lock:
            self._max_speeds = 0

    @property
    def total_size(self) -> int:
        return self._total_size

    @total_size.setter
    def total_size(self, value: int) -> None:
        with self._lock:
            self._total_size = value

    @property
    def downloaded(self) -> int:
        return self._downloaded

    @property
    def speeds_downloaded(self) -> int:
        return self._speeds_downloaded

    @property
    def speeds_per_second(self) -> int:
        return self._speeds_per_second

    @property
    def max_speeds(self) -> int:
        return self._max_speeds

    @property
    def time_elapsed(self) -> float:
        """Seconds spent downloading so far."""
        return self._time_elapsed

    @time_elapsed.setter
    def time_elapsed(self, value: float) -> None:
        self._time_elapsed = value