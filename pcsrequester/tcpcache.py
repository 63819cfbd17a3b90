"""Cache of resolved TCP addresses."""

from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, TextIO

from tabulate import tabulate


@dataclass(frozen=True)
class TCPAddr:
    """A resolved IP address and port."""

    ip: str
    port: int = 0
    zone: str = ""

    def __str__(self) -> str:
        host = f"{self.ip}%{self.zone}" if self.zone else self.ip
        if ":" in host:
            return f"[{host}]:{self.port}"
        return f"{host}:{self.port}"


@dataclass
class _Item:
    addr: TCPAddr
    expire_at: float


class TCPAddrCache:
    """Maps "host:port" strings to resolved addresses, expiring them after a lifetime."""

    def __init__(self, lifetime: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._lifetime = lifetime
        self._clock = clock
        self._items: dict[str, _Item] = {}
        self._lock = threading.Lock()
        self._gc_started = False

    @property
    def lifetime(self) -> float:
        return self._lifetime

    def set(self, address: str, addr: TCPAddr) -> None:
        with self._lock:
            self._items[address] = _Item(addr, self._clock() + self._lifetime)

    def get(self, address: str) -> TCPAddr | None:
        with self._lock:
            item = self._items.get(address)
            return item.addr if item is not None else None

    def set_life_time(self, lifetime: float) -> None:
        """Change the lifetime; every cached entry restarts its expiry with it."""
        with self._lock:
            self._lifetime = lifetime
            expire_at = self._clock() + lifetime
            for item in self._items.values():
                item.expire_at = expire_at

    def gc(self) -> None:
        """Start a background thread that drops expired entries; runs once."""
        with self._lock:
            if self._gc_started:
                return
            self._gc_started = True
        threading.Thread(target=self._collect_forever, daemon=True).start()

    def _collect_forever(self) -> None:
        while True:
            time.sleep(self._lifetime)
            with self._lock:
                now = self._clock()
                expired = [a for a, item in self._items.items() if now >= item.expire_at]
                for address in expired:
                    del self._items[address]

    def delete(self, address: str) -> None:
        with self._lock:
            self._items.pop(address, None)

    def delete_all(self) -> None:
        with self._lock:
            self._items.clear()

    def print_all(self, file: TextIO | None = None) -> None:
        """Write every cached address as a table."""
        with self._lock:
            rows = [[address, str(item.addr)] for address, item in self._items.items()]
        out = file if file is not None else sys.stdout
        print(tabulate(rows, headers=["address", "tcpaddr"]), file=out)


TCP_ADDR_CACHE = TCPAddrCache()