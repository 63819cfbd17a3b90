"""Supervision of the workers that make up one download."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from tabulate import tabulate

from pcsrequester.downloader.config import MIN_PARALLEL_SIZE
from pcsrequester.downloader.ranges import Range
from pcsrequester.downloader.reset import ResetController
from pcsrequester.downloader.state import InstanceInfo, InstanceState
from pcsrequester.downloader.status import DownloadStatus, StatusCode
from pcsrequester.downloader.worker import Worker, sort_by_left_desc

_log = logging.getLogger(__name__)

_MAX_RESETS = 80

_DUPLICABLE = frozenset({StatusCode.DOWNLOADING, StatusCode.FAILED, StatusCode.NET_ERROR})
_RELOAD_IGNORED = frozenset(
    {StatusCode.PENDING, StatusCode.RESETED, StatusCode.WAIT_TO_WRITE, StatusCode.PAUSED}
)
_RESETTABLE = frozenset({StatusCode.NET_ERROR, StatusCode.FAILED})


class NoWorkersError(RuntimeError):
    """The monitor was started without any workers."""

    def __init__(self) -> None:
        super().__init__("no workers")


class Monitor:
    """Runs workers, restarts failed ones and rebalances slow ranges."""

    poll_interval = 1.0

    def __init__(self) -> None:
        self.workers: list[Worker] = []
        self.status: DownloadStatus | None = DownloadStatus()
        self.instance_state: InstanceState | None = None
        self.completed = threading.Event()
        self.err: BaseException | None = None
        self.reset_controller = ResetController(_MAX_RESETS)
        self.is_reload_worker = False

    def append(self, worker: Worker | None) -> None:
        if worker is not None:
            self.workers.append(worker)

    def speeds_per_second_func(self) -> Callable[[], int] | None:
        """A function giving bytes per second downloaded since its previous call."""
        status = self.status
        if status is None:
            return None
        old = status.downloaded
        last = time.monotonic()

        def speeds() -> int:
            nonlocal old, last
            now = time.monotonic()
            downloaded = status.downloaded
            elapsed = now - last
            delta = downloaded - old
            old, last = downloaded, now
            if elapsed <= 0:
                return 0
            return int(delta / elapsed)

        return speeds

    def available_worker(self) -> Worker | None:
        """The first worker that has finished and can take over work."""
        return next((worker for worker in self.workers if worker.completed()), None)

    def all_workers_range(self) -> list[Range]:
        return [worker.wrange for worker in self.workers]

    def num_left_workers(self) -> int:
        return sum(1 for worker in self.workers if not worker.completed())

    def left_workers_all_failed(self) -> bool:
        """Whether every unfinished worker has failed; False if none are unfinished."""
        left = [worker for worker in self.workers if not worker.completed()]
        return bool(left) and all(worker.failed() for worker in left)

    def all_completed(self) -> threading.Event:
        """An event set once every worker has finished or one hit an internal error."""
        done = threading.Event()
        workers = list(self.workers)

        def watch() -> None:
            while True:
                complete = 0
                for worker in workers:
                    code = worker.status.status_code
                    if code == StatusCode.INTERNAL_ERROR:
                        self.err = RuntimeError(f"ERROR: fatal internal error: {worker.err}")
                        done.set()
                        self.completed.set()
                        return
                    if code in (StatusCode.SUCCESSED, StatusCode.CANCELED):
                        complete += 1
                if complete >= len(workers):
                    done.set()
                    self.completed.set()
                    return
                time.sleep(self.poll_interval)

        threading.Thread(target=watch, daemon=True).start()
        return done

    def reset_failed_and_net_error_workers(self) -> None:
        """Restart workers that failed or hit a network error, within the reset limit."""
        for worker in list(self.workers):
            if not self.reset_controller.can_reset():
                continue
            if worker.status.status_code not in _RESETTABLE:
                continue
            _log.debug(
                "monitor: reset %s worker, id: %d", worker.status.status_code.name, worker.id
            )
            worker.reset()
            self.reset_controller.add_reset_num()

    def pause(self) -> None:
        for worker in self.workers:
            worker.pause()

    def resume(self) -> None:
        for worker in self.workers:
            worker.resume()

    def execute(self, cancel_event: threading.Event) -> None:
        """Run all workers until they complete or ``cancel_event`` is set."""
        if not self.workers:
            self.err = NoWorkersError()
            self.completed.set()
            return
        if self.status is None:
            self.status = DownloadStatus()

        for worker in self.workers:
            worker.download_status = self.status
            threading.Thread(target=worker.execute, daemon=True).start()

        done = self.all_completed()
        while True:
            if cancel_event.is_set():
                self._cancel_all()
                return
            if done.is_set():
                return
            time.sleep(self.poll_interval)
            self._supervise()

    def _cancel_all(self) -> None:
        for worker in self.workers:
            try:
                worker.cancel()
            except RuntimeError as err:
                _log.debug("cancel failed, worker id: %d, err: %s", worker.id, err)

    def _supervise(self) -> None:
        assert self.status is not None
        self.reset_failed_and_net_error_workers()
        self.status.update_speeds()

        if self.instance_state is not None:
            self.instance_state.put(InstanceInfo(self.status, self.all_workers_range()))

        if not self.is_reload_worker:
            return

        all_failed = self.left_workers_all_failed()
        slow = self.status.speeds_per_second < self.status.max_speeds // 5
        if not (slow or all_failed):
            return
        if all_failed:
            _log.debug("monitor: All workers failed")
        self.status.reset_max_speeds()

        sort_by_left_desc(self.workers)
        for worker in list(self.workers):
            self._duplicate(worker)
        for worker in list(self.workers):
            self._reload(worker)

    def _duplicate(self, worker: Worker) -> None:
        """Hand the second half of ``worker``'s range to an idle worker."""
        if not self.reset_controller.can_reset():
            return
        if worker.status.status_code not in _DUPLICABLE:
            return
        idle = self.available_worker()
        if idle is None or idle is worker:
            return

        wrange = worker.wrange
        end = wrange.end
        middle = (wrange.begin + end) // 2
        if end - middle < MIN_PARALLEL_SIZE // 5:
            return

        self.reset_controller.add_reset_num()
        idle.wrange.begin = middle + 1
        idle.wrange.end = end
        idle.clean_status()
        wrange.end = middle
        _log.debug("worker duplicated: %d <- %d", idle.id, worker.id)
        threading.Thread(target=idle.execute, daemon=True).start()

    def _reload(self, worker: Worker) -> None:
        """Restart a worker that is stalled at zero speed."""
        if not self.reset_controller.can_reset():
            return
        if worker.completed():
            return
        if worker.speeds_per_second() != 0:
            return
        if worker.status.status_code in _RELOAD_IGNORED:
            return
        self.reset_controller.add_reset_num()
        _log.debug("worker reload, worker id: %d", worker.id)
        worker.reset()

    def show_workers(self) -> str:
        """A table of every worker's state."""
        rows = [
            [
                str(worker.id),
                worker.status.status_text(),
                str(worker.wrange),
                str(worker.wrange.length()),
                str(worker.speeds_per_second()),
                "" if worker.err is None else str(worker.err),
            ]
            for worker in self.workers
        ]
        table = tabulate(
            rows,
            headers=["#", "status", "range", "left", "speeds", "error"],
            disable_numparse=True,
        )
        return "\n" + table