"""Download settings."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

from pcsrequester.downloader.utils import fix_cache_size

CACHE_SIZE = 8192
MIN_PARALLEL_SIZE = 128 * 1024


@dataclass
class Config:
    """How a download is split and buffered."""

    max_parallel: int = 5
    cache_size: int = CACHE_SIZE
    instance_state_path: str = ""
    is_test: bool = False
    actual_cache_size: int = field(default=0, repr=False)
    parallel: int = field(default=0, repr=False)

    def fix(self) -> None:
        """Bring the settings into their valid ranges."""
        self.cache_size = fix_cache_size(self.cache_size)
        if self.max_parallel < 1:
            self.max_parallel = 1

    def copy(self) -> Config:
        return dataclasses.replace(self)