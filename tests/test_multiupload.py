import hashlib
import threading
import time
from collections import Counter

import pytest

from pcsrequester.rio import FileReader
from pcsrequester.uploader.block import BlockState, ReadRange
from pcsrequester.uploader.errors import MultiError
from pcsrequester.uploader.multiupload import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_PARALLEL,
    MultiUpload,
    MultiUploader,
)
from pcsrequester.uploader.state import InstanceState


def _md5(data):
    return hashlib.md5(data).hexdigest()


class RecordingUpload(MultiUpload):
    def __init__(self, fail_once=(), terminate=False, precreate_error=None, block=False, delay=0.0):
        self.lock = threading.Lock()
        self.parts = {}
        self.attempts = Counter()
        self.fail_once = set(fail_once)
        self.terminate = terminate
        self.precreate_error = precreate_error
        self.block = block
        self.delay = delay
        self.started = threading.Event()
        self.cancel_seen = False
        self.active = 0
        self.max_active = 0
        self.super_checksums = None

    def precreate(self):
        if self.precreate_error is not None:
            raise self.precreate_error

    def tmp_file(self, cancel_event, partseq, part_offset, reader):
        with self.lock:
            self.attempts[partseq] += 1
            attempt = self.attempts[partseq]
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.started.set()
            if self.block:
                self.cancel_seen = cancel_event.wait(5)
                raise RuntimeError("interrupted")
            if self.delay:
                time.sleep(self.delay)
            data = reader.read(-1)
            if self.terminate:
                raise MultiError(ValueError("boom"), terminated=True)
            if partseq in self.fail_once and attempt == 1:
                raise RuntimeError("transient")
            with self.lock:
                self.parts[partseq] = (part_offset, data)
            return _md5(data)
        finally:
            with self.lock:
                self.active -= 1

    def create_super_file(self, *args):
        self.super_checksums = list(args)


@pytest.fixture
def source(tmp_path):
    data = bytes(range(10))
    path = tmp_path / "data.bin"
    path.write_bytes(data)
    with path.open("rb") as handle:
        yield data, FileReader(handle)


def _uploader(upload, reader, block_size=4):
    uploader = MultiUploader(upload, reader)
    uploader.block_size = block_size
    events = {"success": 0, "finish": 0, "cancel": 0, "errors": []}
    uploader.on_success = lambda: events.__setitem__("success", events["success"] + 1)
    uploader.on_finish = lambda: events.__setitem__("finish", events["finish"] + 1)
    uploader.on_cancel = lambda: events.__setitem__("cancel", events["cancel"] + 1)
    uploader.on_error = events["errors"].append
    return uploader, events


def test_uploads_all_blocks_in_order(source):
    data, reader = source
    upload = RecordingUpload()
    uploader, events = _uploader(upload, reader)
    uploader.execute()

    assert uploader.err is None
    assert events["success"] == 1
    assert events["finish"] == 1
    assert events["errors"] == []
    joined = b"".join(part for _, part in sorted(upload.parts.values()))
    assert joined == data
    assert upload.super_checksums == [_md5(part) for _, part in sorted(upload.parts.values())]


def test_instance_state_after_upload_covers_file(source):
    data, reader = source
    upload = RecordingUpload()
    uploader, _ = _uploader(upload, reader)
    uploader.execute()

    blocks = uploader.instance_state().block_list
    assert blocks[0].range.begin == 0
    assert blocks[-1].range.end == len(data)
    for previous, current in zip(blocks, blocks[1:]):
        assert previous.range.end == current.range.begin
    assert [block.checksum for block in blocks] == upload.super_checksums


def test_state_round_trips_through_dict(source):
    _, reader = source
    uploader, _ = _uploader(RecordingUpload(), reader)
    uploader.execute()
    state = uploader.instance_state()
    assert InstanceState.from_dict(state.to_dict()) == state


def test_failed_part_is_retried(source):
    data, reader = source
    upload = RecordingUpload(fail_once={1})
    uploader, events = _uploader(upload, reader)
    uploader.execute()

    assert upload.attempts[1] == 2
    assert events["success"] == 1
    assert b"".join(part for _, part in sorted(upload.parts.values())) == data


def test_terminated_error_stops_upload(source):
    _, reader = source
    upload = RecordingUpload(terminate=True)
    uploader, events = _uploader(upload, reader)
    uploader.execute()

    assert len(events["errors"]) == 1
    assert isinstance(events["errors"][0], ValueError)
    assert str(events["errors"][0]) == "boom"
    assert upload.super_checksums is None
    assert events["success"] == 0
    assert events["finish"] == 1


def test_precreate_error_is_reported(source):
    _, reader = source
    failure = RuntimeError("precreate failed")
    upload = RecordingUpload(precreate_error=failure)
    uploader, events = _uploader(upload, reader)
    uploader.execute()

    assert events["errors"] == [failure]
    assert uploader.err is failure
    assert sum(upload.attempts.values()) == 0


def test_resume_skips_finished_blocks(source):
    data, reader = source
    upload = RecordingUpload()
    uploader, _ = _uploader(upload, reader)
    uploader.resume_state = InstanceState(
        [
            BlockState(0, ReadRange(0, 4), "done"),
            BlockState(1, ReadRange(4, len(data))),
        ]
    )
    uploader.execute()

    assert set(upload.attempts) == {1}
    assert upload.super_checksums == ["done", _md5(data[4:])]


def test_cancel_reports_cancellation(source):
    _, reader = source
    upload = RecordingUpload(block=True)
    uploader, events = _uploader(upload, reader)
    runner = threading.Thread(target=uploader.execute, daemon=True)
    runner.start()
    assert upload.started.wait(5)
    uploader.cancel()
    runner.join(10)

    assert not runner.is_alive()
    assert upload.cancel_seen is True
    assert events["cancel"] == 1
    assert events["errors"] == []
    assert upload.super_checksums is None


def test_parallel_limit_is_respected(source):
    data, reader = source
    upload = RecordingUpload(delay=0.05)
    uploader, _ = _uploader(upload, reader, block_size=2)
    uploader.parallel = 2
    uploader.execute()

    assert upload.max_active <= 2
    assert len(upload.super_checksums) == len(upload.parts)
    assert b"".join(part for _, part in sorted(upload.parts.values())) == data


def test_defaults_applied_on_execute(source):
    _, reader = source
    uploader = MultiUploader(RecordingUpload(), reader)
    uploader.execute()
    assert uploader.parallel == DEFAULT_PARALLEL
    assert uploader.block_size == DEFAULT_BLOCK_SIZE
    assert len(uploader.workers) == 1


def test_missing_file_raises():
    uploader = MultiUploader(RecordingUpload(), None)
    with pytest.raises(ValueError):
        uploader.execute()


def test_status_updates_empty_after_finish(source):
    _, reader = source
    uploader, _ = _uploader(RecordingUpload(), reader)
    uploader.execute()
    assert list(uploader.status_updates()) == []
    assert list(uploader.instance_state_updates()) == []