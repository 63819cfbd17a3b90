import io
import os

import pytest

from pcsrequester.rio import FileReader
from pcsrequester.uploader.block import (
    BUFIO_READ_SIZE,
    BufferedSplitUnit,
    ReadRange,
    SplitUnit,
    split_block,
)

DATA = bytes(range(256)) * 4


def reader():
    return FileReader(io.BytesIO(DATA))


@pytest.mark.parametrize("size, block", [(10, 3), (12, 4), (1, 5), (1000, 7)])
def test_split_block_covers_file(size, block):
    blocks = split_block(size, block)
    assert [b.id for b in blocks] == list(range(len(blocks)))
    assert blocks[0].range.begin == 0
    assert blocks[-1].range.end == size
    for prev, nxt in zip(blocks, blocks[1:]):
        assert prev.range.end == nxt.range.begin
    assert all(0 < b.range.end - b.range.begin <= block for b in blocks)
    assert all(b.checksum == "" for b in blocks)


def test_split_block_empty_file():
    blocks = split_block(0, 4)
    assert len(blocks) == 1
    assert blocks[0].range == ReadRange(0, 0)


def test_split_unit_reads_its_range():
    unit = SplitUnit(reader(), ReadRange(100, 300))
    assert len(unit) == 200
    data = unit.read()
    assert data == DATA[100:300]
    assert unit.readed() == len(unit)
    assert unit.left() == 0
    assert unit.read(10) == b""


def test_split_unit_chunked_reads():
    unit = SplitUnit(reader(), ReadRange(10, 50))
    chunks = []
    while True:
        chunk = unit.read(7)
        if not chunk:
            break
        chunks.append(chunk)
    assert b"".join(chunks) == DATA[10:50]
    assert all(len(c) <= 7 for c in chunks)


def test_seek():
    unit = SplitUnit(reader(), ReadRange(0, 64))
    unit.read(20)
    assert unit.seek(0, os.SEEK_SET) == 0
    assert unit.read(5) == DATA[0:5]
    assert unit.seek(0, os.SEEK_END) == len(unit)
    assert unit.read() == b""
    assert unit.seek(-1000, os.SEEK_CUR) == 0


def test_seek_bad_whence():
    unit = SplitUnit(reader(), ReadRange(0, 8))
    with pytest.raises(ValueError):
        unit.seek(0, 42)


def test_buffered_reads_same_data():
    unit = BufferedSplitUnit(reader(), ReadRange(5, 900))
    out = b""
    while True:
        chunk = unit.read(33)
        if not chunk:
            break
        out += chunk
    assert out == DATA[5:900]


def test_buffered_reads_ahead():
    unit = BufferedSplitUnit(reader(), ReadRange(0, 500))
    assert unit.read(1) == DATA[:1]
    assert unit.readed() == min(len(unit), BUFIO_READ_SIZE)


def test_buffered_seek_restarts():
    unit = BufferedSplitUnit(reader(), ReadRange(0, 100))
    first = unit.read(10)
    unit.seek(0)
    assert unit.read(10) == first