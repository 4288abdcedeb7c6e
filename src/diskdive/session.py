"""Control loop glue between the navigator and background work."""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Callable, Optional, Union

from diskdive.cache import SizeCache
from diskdive.config import ExplorerConfig
from diskdive.deleter import DeletionExecutor
from diskdive.errors import ScanError
from diskdive.models import DeletionReport, NavigatorState, ScanResult
from diskdive.navigator import (
    Action,
    CancelDeletion,
    CancelScan,
    Effect,
    Navigator,
    Quit,
    StartDeletion,
    StartScan,
)
from diskdive.safety import PathSafety
from diskdive.scanner import DirectoryScanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanProgress:
    path: str
    request_id: int
    completed: int
    total: int


@dataclass(frozen=True)
class ScanFinished:
    path: str
    request_id: int
    result: ScanResult


@dataclass(frozen=True)
class ScanFailed:
    path: str
    request_id: int
    error: Exception


@dataclass(frozen=True)
class DeletionFinished:
    report: DeletionReport


@dataclass(frozen=True)
class DeletionFailed:
    error: Exception


Event = Union[ScanProgress, ScanFinished, ScanFailed, DeletionFinished, DeletionFailed]


class ExplorerSession:
    """
    Runs scans and deletions in the background for one explorer.

    Every background job reports through a single queue. The owner of the
    session (the terminal app, or a test) calls process_events() from its
    own thread to fold completed work into the navigator, so navigator state
    is only ever touched by one thread. `wakeup` is called from worker
    threads whenever an event is queued.
    """

    def __init__(
        self,
        root: str,
        config: Optional[ExplorerConfig] = None,
        wakeup: Optional[Callable[[], None]] = None,
        scanner: Optional[DirectoryScanner] = None,
    ):
        self.config = config or ExplorerConfig()
        self.root = os.path.abspath(root)
        self.cache = SizeCache()
        self.safety = PathSafety(self.root, self.config)
        self.scanner = scanner or DirectoryScanner(self.config, cache=self.cache, safety=self.safety)
        self.deleter = DeletionExecutor(self.config, self.safety, cache=self.cache)
        self.navigator = Navigator(self.root, self.safety, self.cache, self.config)

        self._wakeup = wakeup
        self._events: Queue[Event] = Queue()
        self._pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="diskdive")
        self._lock = threading.Lock()
        self._scan_cancels: dict[int, threading.Event] = {}
        self._deletion_cancel: Optional[threading.Event] = None
        self._in_flight = 0
        self.closed = False

    @property
    def state(self) -> NavigatorState:
        return self.navigator.state

    @property
    def quitting(self) -> bool:
        return self.navigator.quitting

    @property
    def busy(self) -> bool:
        """Whether background work is running or waiting to be applied."""
        with self._lock:
            return self._in_flight > 0 or not self._events.empty()

    def start(self) -> None:
        """Kick off the initial scan of the root."""
        self._apply(self.navigator.start())

    def dispatch(self, action: Action) -> None:
        """Apply a user action."""
        self._apply(self.navigator.handle_action(action))

    def handle_key(self, key: str) -> None:
        """Apply a raw key name."""
        self._apply(self.navigator.handle_key(key))

    def process_events(self, timeout: Optional[float] = 0) -> int:
        """
        Fold completed background work into the navigator.

        Waits up to `timeout` seconds for the first event (None waits
        forever, 0 does not wait), then drains whatever else is queued.

        Returns:
            Number of events applied
        """
        try:
            if timeout == 0:
                event = self._events.get_nowait()
            else:
                event = self._events.get(timeout=timeout)
        except Empty:
            return 0

        processed = 0
        while True:
            self._apply(self._handle_event(event))
            processed += 1
            try:
                event = self._events.get_nowait()
            except Empty:
                return processed

    def wait_idle(self, timeout: float = 10.0) -> bool:
        """
        Process events until no background work is left.

        Returns:
            True if idle, False if the timeout expired first
        """
        deadline = time.monotonic() + timeout
        while self.busy:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self.process_events(timeout=min(remaining, 0.05))
        return True

    def close(self, wait: bool = True) -> None:
        """Cancel everything in flight and stop the worker pool."""
        if self.closed:
            return
        self.closed = True
        with self._lock:
            for cancel in self._scan_cancels.values():
                cancel.set()
            if self._deletion_cancel is not None:
                self._deletion_cancel.set()
        self._pool.shutdown(wait=wait, cancel_futures=True)

    # ------------------------------------------------------------------

    def _handle_event(self, event: Event) -> list[Effect]:
        if isinstance(event, ScanProgress):
            self.navigator.on_scan_progress(event.path, event.request_id, event.completed, event.total)
            return []
        if isinstance(event, ScanFinished):
            return self.navigator.on_scan_finished(event.path, event.request_id, event.result)
        if isinstance(event, ScanFailed):
            return self.navigator.on_scan_failed(event.path, event.request_id, event.error)
        if isinstance(event, DeletionFinished):
            return self.navigator.on_deletion_finished(event.report)
        if isinstance(event, DeletionFailed):
            return self.navigator.on_deletion_failed(event.error)
        raise TypeError(f"Unknown event: {event!r}")

    def _apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, StartScan):
                self._start_scan(effect)
            elif isinstance(effect, CancelScan):
                with self._lock:
                    cancel = self._scan_cancels.get(effect.request_id)
                if cancel is not None:
                    logger.debug("Cancelling scan request %d", effect.request_id)
                    cancel.set()
            elif isinstance(effect, StartDeletion):
                self._start_deletion(effect)
            elif isinstance(effect, CancelDeletion):
                with self._lock:
                    if self._deletion_cancel is not None:
                        self._deletion_cancel.set()
            elif isinstance(effect, Quit):
                with self._lock:
                    for cancel in self._scan_cancels.values():
                        cancel.set()
            else:
                raise TypeError(f"Unknown effect: {effect!r}")

    def _post(self, event: Event) -> None:
        self._events.put(event)
        if self._wakeup is not None:
            self._wakeup()

    def _submit(self, job: Callable[[], None]) -> None:
        if self.closed:
            return
        with self._lock:
            self._in_flight += 1
        try:
            self._pool.submit(job)
        except RuntimeError:
            # Pool already shut down
            with self._lock:
                self._in_flight -= 1

    def _start_scan(self, effect: StartScan) -> None:
        cancel = threading.Event()
        with self._lock:
            self._scan_cancels[effect.request_id] = cancel

        def progress(completed: int, total: int) -> None:
            self._post(ScanProgress(effect.path, effect.request_id, completed, total))

        def job() -> None:
            try:
                result = self.scanner.scan(effect.path, cancel=cancel, progress_callback=progress)
            except ScanError as e:
                self._post(ScanFailed(effect.path, effect.request_id, e))
            except Exception as e:
                logger.exception("Scan of %s crashed", effect.path)
                self._post(ScanFailed(effect.path, effect.request_id, e))
            else:
                self._post(ScanFinished(effect.path, effect.request_id, result))
            finally:
                with self._lock:
                    self._scan_cancels.pop(effect.request_id, None)
                    self._in_flight -= 1

        logger.debug("Starting scan request %d for %s", effect.request_id, effect.path)
        self._submit(job)

    def _start_deletion(self, effect: StartDeletion) -> None:
        cancel = threading.Event()
        with self._lock:
            self._deletion_cancel = cancel

        def job() -> None:
            try:
                report = self.deleter.delete(effect.paths, cancel=cancel)
            except Exception as e:
                logger.exception("Deletion crashed")
                self._post(DeletionFailed(e))
            else:
                self._post(DeletionFinished(report))
            finally:
                with self._lock:
                    if self._deletion_cancel is cancel:
                        self._deletion_cancel = None
                    self._in_flight -= 1

        self._submit(job)
