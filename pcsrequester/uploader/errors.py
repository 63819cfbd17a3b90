"""Errors raised by uploads."""

from __future__ import annotations


class MultiError(Exception):
    """A part upload failure; ``terminated`` means the whole upload must stop."""

    def __init__(self, err: BaseException, terminated: bool = False) -> None:
        super().__init__(err)
        self.err = err
        self.terminated = terminated

    def __str__(self) -> str:
        return str(self.err)