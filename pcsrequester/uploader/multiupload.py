"""Resumable uploads sent as several parts in parallel."""

from __future__ import annotations

import logging
import math
import queue
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import CancelledError
from typing import Protocol

from pcsrequester.uploader.block import split_block
from pcsrequester.uploader.errors import MultiError
from pcsrequester.uploader.state import (
    InstanceState,
    UploadWorker,
    checksum_list,
    instance_state_to_worker_list,
    readed_total,
    worker_list_to_instance_state,
)
from pcsrequester.uploader.uploader import UploadStatus

_log = logging.getLogger(__name__)

GB = 1 << 30
DEFAULT_PARALLEL = 10
DEFAULT_BLOCK_SIZE = 1 * GB

_WAIT_STEP = 0.05


class _ReaderAtLen(Protocol):
    def read_at(self, size: int, offset: int) -> bytes: ...

    def __len__(self) -> int: ...


class MultiUpload(ABC):
    """The remote side of a multi-part upload."""

    @abstractmethod
    def precreate(self) -> None:
        """Prepare the upload; raise to abort it."""

    @abstractmethod
    def tmp_file(self, cancel_event: threading.Event, partseq: int, part_offset: int, reader) -> str:
        """Upload one part read from ``reader`` and return its checksum.

        Raise MultiError with ``terminated`` set to stop the whole upload; any
        other error makes the part be retried.
        """

    @abstractmethod
    def create_super_file(self, *args: str) -> None:
        """Join the uploaded parts, given their checksums in block order."""


def _trigger(fn: Callable[[], None] | None) -> None:
    if fn is not None:
        threading.Thread(target=fn, daemon=True).start()


def _truncate_ms(seconds: float) -> float:
    return math.floor(seconds * 1000) / 1000


class MultiUploader:
    """Splits a file into blocks and uploads them concurrently."""

    status_interval = 1.0

    def __init__(self, multi_upload: MultiUpload, file: _ReaderAtLen) -> None:
        self.multi_upload = multi_upload
        self.file = file
        self.block_size = 0
        self.parallel = 0
        self.resume_state: InstanceState | None = None
        self.workers: list[UploadWorker] = []
        self.err: BaseException | None = None
        self.on_execute: Callable[[], None] | None = None
        self.on_success: Callable[[], None] | None = None
        self.on_finish: Callable[[], None] | None = None
        self.on_cancel: Callable[[], None] | None = None
        self.on_error: Callable[[BaseException], None] | None = None
        self.executed = False
        self._execute_time = 0.0
        self._finished = threading.Event()
        self._canceled = threading.Event()
        self._updates: queue.Queue[None] = queue.Queue(maxsize=1)

    def _lazy_init(self) -> None:
        if self.parallel <= 0:
            self.parallel = DEFAULT_PARALLEL
        if self.block_size <= 0:
            self.block_size = DEFAULT_BLOCK_SIZE

    def _check(self) -> None:
        if self.file is None:
            raise ValueError("file is nil")
        if self.multi_upload is None:
            raise ValueError("multiUpload is nil")

    def execute(self) -> None:
        """Upload every unfinished block; the outcome goes to the event callbacks and ``err``."""
        self._check()
        self._lazy_init()
        if self.resume_state is not None:
            self.workers = instance_state_to_worker_list(self.resume_state, self.file)
            _log.info("upload task CREATED from instance state")
        else:
            blocks = split_block(len(self.file), self.block_size)
            self.workers = instance_state_to_worker_list(InstanceState(blocks), self.file)
            _log.info(
                "upload task CREATED: block size: %d, num: %d", self.block_size, len(self.workers)
            )

        self.executed = True
        self._execute_time = time.monotonic()
        _trigger(self.on_execute)

        try:
            self._upload()
        except Exception as exc:
            self.err = exc
        else:
            self.err = None

        self._finished.set()
        if self.err is not None:
            if isinstance(self.err, CancelledError):
                if self.on_cancel is not None:
                    self.on_cancel()
            elif self.on_error is not None:
                self.on_error(self.err)
        elif self.on_success is not None:
            self.on_success()
        if self.on_finish is not None:
            self.on_finish()

    def _upload(self) -> None:
        self.multi_upload.precreate()

        pending = deque(worker for worker in self.workers if not worker.checksum)
        cond = threading.Condition()
        active = 0
        failures: list[BaseException] = []

        def run(worker: UploadWorker) -> None:
            nonlocal active
            retry = False
            try:
                outcome = self._upload_part(worker)
                if outcome is None:
                    return
                checksum, err = outcome
                if err is not None:
                    if isinstance(err, MultiError) and err.terminated:
                        failures.append(err.err)
                        self._canceled.set()
                        return
                    _log.warning("upload err: %s, id: %d", err, worker.id)
                    worker.split_unit.seek(0)
                    retry = True
                    return
                worker.checksum = checksum
                self._notify_update()
            finally:
                with cond:
                    if retry:
                        pending.append(worker)
                    active -= 1
                    cond.notify_all()

        while True:
            with cond:
                while not self._canceled.is_set() and (
                    (not pending and active > 0) or (pending and active >= self.parallel)
                ):
                    cond.wait(_WAIT_STEP)
                if self._canceled.is_set() or (not pending and active == 0):
                    break
                worker = pending.popleft()
                active += 1
            threading.Thread(target=run, args=(worker,), daemon=True).start()

        with cond:
            while active > 0:
                cond.wait(_WAIT_STEP)

        if self._canceled.is_set():
            if failures:
                raise failures[0]
            raise CancelledError()

        self.multi_upload.create_super_file(*checksum_list(self.workers))

    def _upload_part(self, worker: UploadWorker) -> tuple[str, BaseException | None] | None:
        """Upload one part; None if the upload was canceled meanwhile."""
        cancel_event = threading.Event()
        done = threading.Event()
        result: dict[str, object] = {}

        def call() -> None:
            try:
                result["checksum"] = self.multi_upload.tmp_file(
                    cancel_event, worker.id, worker.part_offset, worker.split_unit
                )
            except Exception as exc:
                result["err"] = exc
            finally:
                done.set()

        threading.Thread(target=call, daemon=True).start()
        while not done.wait(_WAIT_STEP):
            if self._canceled.is_set():
                cancel_event.set()
                return None
        cancel_event.set()
        err = result.get("err")
        checksum = result.get("checksum") or ""
        return str(checksum), err if isinstance(err, BaseException) else None

    def _notify_update(self) -> None:
        try:
            self._updates.put_nowait(None)
        except queue.Full:
            pass

    def instance_state(self) -> InstanceState:
        """Resume information for the current workers."""
        return worker_list_to_instance_state(self.workers)

    def cancel(self) -> None:
        self._canceled.set()

    def status_updates(self) -> Iterator[UploadStatus]:
        """Yield progress every ``status_interval`` seconds until the upload ends."""
        interval = self.status_interval
        while not self._finished.is_set():
            if not self.executed:
                time.sleep(interval)
                continue
            old = readed_total(self.workers)
            time.sleep(interval)
            readed = readed_total(self.workers)
            yield UploadStatus(
                total_size=len(self.file),
                uploaded=readed,
                speeds_per_second=int((readed - old) / interval),
                time_elapsed=_truncate_ms(time.monotonic() - self._execute_time),
            )

    def instance_state_updates(self) -> Iterator[InstanceState]:
        """Yield fresh resume information each time a part finishes, until the upload ends."""
        while not self._finished.is_set():
            try:
                self._updates.get(timeout=0.1)
            except queue.Empty:
                continue
            yield self.instance_state()