"""Helpers for downloads."""

from __future__ import annotations

import random
import re
from email.message import Message
from email.utils import collapse_rfc2231_value
from urllib.parse import unquote_plus

from pcsrequester.client import HTTPClient

CONTENT_RANGE_RE = re.compile(r"^.*? \d*?-\d*?/(\d*?)$")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

_rng = random.Random()


def random_number(min_value: int, max_value: int) -> int:
    """A random integer in [min, max); the bounds may be given in either order."""
    if min_value > max_value:
        min_value, max_value = max_value, min_value
    return _rng.randrange(min_value, max_value)


def _path_base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped.rsplit("/", 1)[-1]


def _query_unescape(value: str) -> str:
    if _BAD_ESCAPE.search(value):
        raise ValueError(f"invalid URL escape in {value!r}")
    return unquote_plus(value)


def get_file_name(uri: str, client: HTTPClient | None = None) -> str:
    """Name of the file at ``uri``, from Content-Disposition or else the URI path."""
    if client is None:
        client = HTTPClient()
    with client.req("HEAD", uri) as resp:
        disposition = resp.headers.get("Content-Disposition", "")
    if not disposition.strip():
        return _path_base(uri)

    message = Message()
    message["Content-Disposition"] = disposition
    raw = message.get_param("filename", header="content-disposition")
    value = collapse_rfc2231_value(raw) if raw else ""
    filename = _query_unescape(value)
    return filename or _path_base(uri)


def parse_content_range(content_range: str) -> int:
    """Total size from a Content-Range value, or -1 if absent."""
    match = CONTENT_RANGE_RE.search(content_range)
    if match is None or not match.group(1):
        return -1
    return int(match.group(1))


def fix_cache_size(size: int) -> int:
    """The cache size raised to at least 1024 bytes."""
    return max(size, 1024)