"""Persisted progress of a download, for resuming."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import IO

from pcsrequester.downloader.ranges import Range, ranges_length
from pcsrequester.downloader.status import DownloadStatus

_log = logging.getLogger(__name__)

_MAX_STATE_SIZE = 0xFFFFFFFF


@dataclass
class InstanceInfo:
    """Download status and the byte ranges still to fetch."""

    dl_status: DownloadStatus | None = None
    ranges: list[Range | None] | None = None


class InstanceState:
    """Reads and writes resume information as JSON in an open binary file."""

    def __init__(self, save_file: IO[bytes] | None) -> None:
        self._file = save_file
        self._total_size = 0
        self._ranges: list[tuple[int, int] | None] | None = None
        self._lock = threading.Lock()

    def _contents(self) -> bytes:
        assert self._file is not None
        self._file.seek(0, os.SEEK_END)
        if self._file.tell() > _MAX_STATE_SIZE:
            raise ValueError("savePath too large")
        self._file.seek(0)
        return self._file.read()

    def _load(self, data: dict) -> None:
        if data.get("total_size") is not None:
            self._total_size = int(data["total_size"])
        if "ranges" in data:
            raw = data["ranges"]
            if raw is None:
                self._ranges = None
            else:
                self._ranges = [
                    None if item is None else (int(item.get("begin", 0)), int(item.get("end", 0)))
                    for item in raw
                ]

    def _convert(self) -> InstanceInfo:
        ranges = [Range(begin, end) for begin, end in (r for r in self._ranges or [] if r is not None)]
        downloaded = self._total_size - ranges_length(ranges)
        return InstanceInfo(DownloadStatus(total_size=self._total_size, downloaded=downloaded), ranges)

    def _render(self, info: InstanceInfo | None) -> None:
        if info is None:
            return
        if info.dl_status is not None:
            self._total_size = info.dl_status.total_size
        if info.ranges is not None:
            self._ranges = [(r.begin, r.end) for r in info.ranges if r is not None]

    def get(self) -> InstanceInfo | None:
        """Load saved progress; None if there is no file, it is empty or unreadable."""
        if self._file is None:
            return None
        with self._lock:
            contents = self._contents()
            if not contents:
                return None
            try:
                data = json.loads(contents)
            except ValueError as err:
                _log.debug("unmarshal json error: %s", err)
                return None
            if not isinstance(data, dict):
                _log.debug("unmarshal json error: not an object")
                return None
            self._load(data)
            return self._convert()

    def put(self, info: InstanceInfo | None) -> None:
        """Merge ``info`` into the saved progress and rewrite the file."""
        if self._file is None:
            return
        with self._lock:
            self._render(info)
            ranges = None
            if self._ranges is not None:
                ranges = [None if r is None else {"begin": r[0], "end": r[1]} for r in self._ranges]
            data = json.dumps(
                {"total_size": self._total_size, "ranges": ranges},
                separators=(",", ":"),
            ).encode()
            try:
                self._file.seek(0)
                self._file.truncate(len(data))
                self._file.write(data)
                self._file.flush()
            except OSError as err:
                _log.debug("write json error: %s", err)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()