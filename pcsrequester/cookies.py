"""Cookie header parsing."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str


def parse_cookie_str(cookie_str: str) -> list[Cookie]:
    """Parse "a=1; b=2" into cookies; pieces without "=" are skipped."""
    cookies = []
    for raw in cookie_str.split(";"):
        name, sep, value = raw.partition("=")
        if not sep:
            continue
        cookies.append(Cookie(name.strip(), value.strip()))
    return cookies