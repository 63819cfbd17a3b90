"""Resume information for multi-part uploads."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pcsrequester.uploader.block import (
    BlockState,
    BufferedSplitUnit,
    ReadRange,
    SplitUnit,
    _ReaderAt,
)


@dataclass
class UploadWorker:
    """One block being uploaded."""

    id: int
    part_offset: int
    split_unit: SplitUnit
    checksum: str = ""


@dataclass
class InstanceState:
    """The blocks of an upload and the checksums of those already sent."""

    block_list: list[BlockState] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "block_list": [
                {
                    "id": block.id,
                    "range": {"begin": block.range.begin, "end": block.range.end},
                    "checksum": block.checksum,
                }
                for block in self.block_list
            ]
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstanceState:
        blocks = []
        for item in data.get("block_list") or []:
            rng = item.get("range") or {}
            blocks.append(
                BlockState(
                    int(item.get("id", 0)),
                    ReadRange(int(rng.get("begin", 0)), int(rng.get("end", 0))),
                    item.get("checksum", "") or "",
                )
            )
        return cls(blocks)


def worker_list_to_instance_state(workers: Iterable[UploadWorker]) -> InstanceState:
    return InstanceState(
        [BlockState(w.id, w.split_unit.read_range, w.checksum) for w in workers]
    )


def instance_state_to_worker_list(state: InstanceState, file: _ReaderAt) -> list[UploadWorker]:
    """Workers for each block; blocks with a checksum count as fully read."""
    workers = []
    for block in state.block_list:
        if block.checksum == "":
            unit: SplitUnit = BufferedSplitUnit(file, block.range)
        else:
            unit = SplitUnit(file, block.range, readed=block.range.end - block.range.begin)
        workers.append(UploadWorker(block.id, block.range.begin, unit, block.checksum))
    return workers


def checksum_list(workers: Iterable[UploadWorker]) -> list[str]:
    return [w.checksum for w in workers]


def readed_total(workers: Iterable[UploadWorker]) -> int:
    return sum(w.split_unit.readed() for w in workers)