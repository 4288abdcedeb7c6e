"""Directory size scanning for diskdive."""

import errno
import heapq
import logging
import os
import stat
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional

from diskdive.cache import SizeCache
from diskdive.config import ExplorerConfig
from diskdive.errors import ScanCancelled, ScanError, classify_os_error
from diskdive.models import Entry, LargeFileRecord, ScanResult, sort_entries
from diskdive.safety import PathSafety, is_cleanable_name

logger = logging.getLogger(__name__)

Identity = tuple[int, int]
ProgressCallback = Callable[[int, int], None]


class LargeFileTracker:
    """
    Bounded collection of the largest files seen.

    Kept as a min-heap of (size, path) so the smallest retained file is
    evicted in O(log n) once the collection is full. Safe to share between
    scan workers.
    """

    def __init__(self, limit: int, threshold: int):
        self.limit = limit
        self.threshold = threshold
        self._heap: list[tuple[int, str]] = []
        self._lock = threading.Lock()

    def offer(self, path: str, size_bytes: int) -> None:
        """Record a file if it is above the threshold and large enough to keep."""
        if self.limit <= 0 or size_bytes <= self.threshold:
            return
        item = (size_bytes, path)
        with self._lock:
            if len(self._heap) < self.limit:
                heapq.heappush(self._heap, item)
            elif item > self._heap[0]:
                heapq.heapreplace(self._heap, item)

    def records(self) -> list[LargeFileRecord]:
        """Retained files, largest first."""
        with self._lock:
            items = list(self._heap)
        items.sort(key=lambda item: (-item[0], item[1]))
        return [LargeFileRecord(path=path, size_bytes=size) for size, path in items]

    def __len__(self) -> int:
        return len(self._heap)


@dataclass
class _Totals:
    size: int = 0
    files: int = 0
    dirs: int = 0
    errors: int = 0
    crossed_mount: bool = False

    def add(self, other: "_Totals") -> None:
        self.size += other.size
        self.files += other.files
        self.dirs += other.dirs
        self.errors += other.errors
        self.crossed_mount = self.crossed_mount or other.crossed_mount


def _identity(st: os.stat_result) -> Identity:
    return st.st_dev, st.st_ino


def _is_symlink_loop(path: str, chain: set[Identity]) -> bool:
    """Whether a symlink resolves to a directory on the current ancestor chain."""
    try:
        target = os.stat(path)
    except OSError as e:
        # A link that resolves through itself
        return e.errno == errno.ELOOP
    return stat.S_ISDIR(target.st_mode) and _identity(target) in chain


class _TreeWalker:
    """Recursive size walk of one subtree.

    Never follows symlinks and never leaves the filesystem it started on.
    `chain` holds the identities of the directories on the current path from
    the filesystem root, so a directory reachable from itself is reported
    once and not re-entered.
    """

    def __init__(
        self,
        root_dev: int,
        chain: set[Identity],
        cancel: Optional[threading.Event] = None,
        cache: Optional[SizeCache] = None,
        tracker: Optional[LargeFileTracker] = None,
        scan_path: str = "",
    ):
        self.root_dev = root_dev
        self.chain = chain
        self.cancel = cancel
        self.cache = cache
        self.tracker = tracker
        self.scan_path = scan_path

    def walk(self, path: str, ident: Identity) -> _Totals:
        totals = _Totals()
        self._walk(path, ident, totals)
        return totals

    def _walk(self, path: str, ident: Identity, totals: _Totals) -> None:
        self.chain.add(ident)
        totals.dirs += 1
        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    if self.cancel is not None and self.cancel.is_set():
                        raise ScanCancelled(self.scan_path or path)
                    self._visit(entry, totals)
        except FileNotFoundError:
            pass
        except OSError as e:
            totals.errors += 1
            logger.debug("Cannot list %s: %s", path, e)
        finally:
            self.chain.discard(ident)

    def _visit(self, entry: os.DirEntry, totals: _Totals) -> None:
        try:
            st = entry.stat(follow_symlinks=False)
        except FileNotFoundError:
            return
        except OSError as e:
            totals.errors += 1
            logger.debug("Cannot stat %s: %s", entry.path, e)
            return

        if stat.S_ISLNK(st.st_mode):
            totals.size += st.st_size
            if _is_symlink_loop(entry.path, self.chain):
                totals.errors += 1
                logger.debug("Symlink loop at %s", entry.path)
            return

        if stat.S_ISDIR(st.st_mode):
            if st.st_dev != self.root_dev:
                totals.crossed_mount = True
                return
            ident = _identity(st)
            if ident in self.chain:
                totals.errors += 1
                logger.debug("Directory loop at %s", entry.path)
                return
            if self.cache is not None:
                size, found = self.cache.get(entry.path)
                if found:
                    totals.size += size
                    return
            self._walk(entry.path, ident, totals)
            return

        if stat.S_ISREG(st.st_mode):
            totals.size += st.st_size
            totals.files += 1
            if self.tracker is not None:
                self.tracker.offer(entry.path, st.st_size)


def _ancestor_identities(path: str) -> set[Identity]:
    identities = set()
    current = path
    while True:
        parent = os.path.dirname(current)
        if parent == current:
            return identities
        try:
            identities.add(_identity(os.stat(parent)))
        except OSError:
            pass
        current = parent


def measure_path(path: str) -> tuple[int, bool]:
    """
    Measure everything that deleting a path would free.

    Args:
        path: File, symlink or directory

    Returns:
        Tuple of (total_bytes, crosses_mount)

    Raises:
        OSError: If the path itself cannot be stat'ed
    """
    st = os.lstat(path)
    if not stat.S_ISDIR(st.st_mode):
        return st.st_size, False
    walker = _TreeWalker(root_dev=st.st_dev, chain=set())
    totals = walker.walk(path, _identity(st))
    return totals.size, totals.crossed_mount


class DirectoryScanner:
    """Measures the immediate children of a directory."""

    def __init__(
        self,
        config: Optional[ExplorerConfig] = None,
        cache: Optional[SizeCache] = None,
        safety: Optional[PathSafety] = None,
    ):
        self.config = config or ExplorerConfig()
        self.cache = cache
        self.safety = safety

    def scan(
        self,
        path: str,
        cancel: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ScanResult:
        """
        Scan one directory.

        Files are sized directly; each child directory is measured by a
        worker thread, reusing cached sizes where the cache has them.
        Per-child problems are counted in error_count and never abort the
        scan.

        Args:
            path: Directory to scan
            cancel: Event checked between children at every depth
            progress_callback: Optional callback(completed, total) per child

        Returns:
            ScanResult with entries sorted largest first

        Raises:
            ScanError: If path itself cannot be listed
            ScanCancelled: If cancel was set before the scan finished
        """
        scan_path = os.path.abspath(path)
        cancel = cancel or threading.Event()
        logger.debug("Scanning %s", scan_path)

        try:
            root_st = os.stat(scan_path)
            if not stat.S_ISDIR(root_st.st_mode):
                raise ScanError(scan_path, "not a directory")
            with os.scandir(scan_path) as it:
                children = list(it)
        except OSError as e:
            raise ScanError(scan_path, e.strerror or str(e), classify_os_error(e)) from e

        root_dev = root_st.st_dev
        chain = _ancestor_identities(scan_path) | {_identity(root_st)}
        tracker = LargeFileTracker(self.config.large_file_limit, self.config.large_file_threshold)
        totals = _Totals(dirs=1)
        entries: dict[str, Entry] = {}
        pending_dirs: list[tuple[Entry, Identity]] = []

        for child in children:
            if cancel.is_set():
                raise ScanCancelled(scan_path)
            try:
                st = child.stat(follow_symlinks=False)
            except FileNotFoundError:
                continue
            except OSError as e:
                totals.errors += 1
                logger.debug("Cannot stat %s: %s", child.path, e)
                continue

            entry = self._make_entry(child, st)
            entries[entry.path] = entry

            if stat.S_ISLNK(st.st_mode):
                entry.size_bytes = st.st_size
                entry.size_known = True
                if _is_symlink_loop(child.path, chain):
                    totals.errors += 1
                    logger.debug("Symlink loop at %s", child.path)
            elif stat.S_ISDIR(st.st_mode):
                if st.st_dev != root_dev:
                    entry.size_known = True
                    continue
                cached_size, found = (
                    self.cache.get(child.path) if self.cache is not None else (0, False)
                )
                if found:
                    entry.size_bytes = cached_size
                    entry.size_known = True
                else:
                    pending_dirs.append((entry, _identity(st)))
            else:
                entry.size_bytes = st.st_size if stat.S_ISREG(st.st_mode) else 0
                entry.size_known = True
                if stat.S_ISREG(st.st_mode):
                    totals.files += 1
                    tracker.offer(child.path, st.st_size)

        total_children = len(entries)
        completed = total_children - len(pending_dirs)
        if progress_callback:
            progress_callback(completed, total_children)

        if pending_dirs:
            executor = ThreadPoolExecutor(max_workers=self.config.max_workers)
            try:
                futures = {
                    executor.submit(
                        self._measure_dir, entry.path, ident, root_dev, chain, cancel, tracker, scan_path
                    ): entry
                    for entry, ident in pending_dirs
                }
                for future in as_completed(futures):
                    entry = futures[future]
                    child_totals = future.result()
                    entry.size_bytes = child_totals.size
                    entry.size_known = True
                    totals.add(child_totals)
                    if self.cache is not None:
                        self.cache.put(entry.path, child_totals.size)
                    completed += 1
                    if progress_callback:
                        progress_callback(completed, total_children)
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        ordered = sort_entries(entries[key] for key in sorted(entries))
        total_bytes = sum(e.size_bytes for e in ordered)
        if self.cache is not None:
            self.cache.put(scan_path, total_bytes)

        logger.debug(
            "Scanned %s: %d entries, %d bytes, %d errors",
            scan_path,
            len(ordered),
            total_bytes,
            totals.errors,
        )
        return ScanResult(
            path=scan_path,
            entries=ordered,
            large_files=tracker.records(),
            total_bytes=total_bytes,
            error_count=totals.errors,
            file_count=totals.files,
            dir_count=totals.dirs,
        )

    def _measure_dir(
        self,
        path: str,
        ident: Identity,
        root_dev: int,
        chain: set[Identity],
        cancel: threading.Event,
        tracker: LargeFileTracker,
        scan_path: str,
    ) -> _Totals:
        walker = _TreeWalker(
            root_dev=root_dev,
            chain=set(chain),
            cancel=cancel,
            cache=self.cache,
            tracker=tracker,
            scan_path=scan_path,
        )
        return walker.walk(path, ident)

    def _make_entry(self, child: os.DirEntry, st: os.stat_result) -> Entry:
        is_dir = stat.S_ISDIR(st.st_mode)
        return Entry(
            name=child.name,
            path=child.path,
            is_dir=is_dir,
            is_symlink=stat.S_ISLNK(st.st_mode),
            protected=self.safety.is_protected(child.path) if self.safety else False,
            cleanable=is_dir and is_cleanable_name(child.name),
        )
