"""Choosing among equivalent download servers."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pcsrequester.downloader.utils import random_number


@dataclass(frozen=True)
class LoadBalancerResponse:
    """A download URL and the referer to send with it."""

    url: str
    referer: str = ""


class LoadBalancerResponseList:
    """Hands out servers in turn or at random."""

    def __init__(self, responses: Sequence[LoadBalancerResponse]) -> None:
        self._responses = list(responses)
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._responses)

    def sequential_get(self) -> LoadBalancerResponse | None:
        """The next server in order, wrapping round; None if there are none."""
        with self._lock:
            if not self._responses:
                return None
            if self._cursor >= len(self._responses):
                self._cursor = 0
            response = self._responses[self._cursor]
            self._cursor += 1
            return response

    def random_get(self) -> LoadBalancerResponse:
        return self._responses[random_number(0, len(self._responses))]


def _content_length(resp: Any) -> int:
    value = resp.headers.get("Content-Length")
    if value is None:
        return -1
    try:
        return int(value)
    except ValueError:
        return -1


def server_equal(resp: Any, sub_resp: Any) -> bool:
    """Whether two responses appear to serve the same file."""
    if resp is None or sub_resp is None:
        return False
    if _content_length(resp) != _content_length(sub_resp):
        return False
    for name in ("Content-MD5", "Content-Type", "x-bs-meta-crc32"):
        if resp.headers.get(name, "") != sub_resp.headers.get(name, ""):
            return False
    return True