"""Deletion execution with safety checks for diskdive."""

import logging
import os
import stat
import threading
from typing import Iterable, Optional

from diskdive.cache import SizeCache
from diskdive.config import ExplorerConfig
from diskdive.errors import ErrorKind, MountBoundaryError, classify_os_error
from diskdive.models import DeletionOutcome, DeletionReport, DeletionStatus
from diskdive.safety import PathSafety
from diskdive.scanner import measure_path

logger = logging.getLogger(__name__)


def remove_tree(path: str) -> None:
    """
    Remove a file, symlink or directory tree without leaving its filesystem.

    Symlinks are unlinked, never followed.

    Raises:
        MountBoundaryError: If a descendant directory lives on another device
        OSError: On the first entry that cannot be removed
    """
    st = os.lstat(path)
    if not stat.S_ISDIR(st.st_mode):
        os.unlink(path)
        return
    _remove_dir(path, st.st_dev)


def _remove_dir(path: str, root_dev: int) -> None:
    with os.scandir(path) as entries:
        children = list(entries)
    for child in children:
        st = child.stat(follow_symlinks=False)
        if stat.S_ISDIR(st.st_mode):
            if st.st_dev != root_dev:
                raise MountBoundaryError(child.path)
            _remove_dir(child.path, root_dev)
        else:
            os.unlink(child.path)
    os.rmdir(path)


def _remaining_size(path: str, fallback: int) -> int:
    try:
        size, _ = measure_path(path)
    except FileNotFoundError:
        return 0
    except OSError:
        return fallback
    return size


class DeletionExecutor:
    """Removes confirmed paths one at a time behind the PathSafety gate."""

    def __init__(
        self,
        config: ExplorerConfig,
        safety: PathSafety,
        cache: Optional[SizeCache] = None,
    ):
        self.config = config
        self.safety = safety
        self.cache = cache

    def delete(
        self,
        paths: Iterable[str],
        cancel: Optional[threading.Event] = None,
    ) -> DeletionReport:
        """
        Delete each path, reporting a separate outcome per path.

        Args:
            paths: Absolute paths confirmed by the user
            cancel: Checked between paths; paths not yet started are SKIPPED

        Returns:
            DeletionReport with one outcome per path, in path order
        """
        outcomes = []
        for path in sorted(set(paths)):
            if cancel is not None and cancel.is_set():
                outcomes.append(
                    DeletionOutcome(path=path, status=DeletionStatus.SKIPPED, error="Cancelled")
                )
                continue
            outcomes.append(self.delete_path(path))

        report = DeletionReport(outcomes=outcomes, dry_run=self.config.dry_run)
        logger.info(
            "Deletion finished: %d removed, %d failed, %d bytes freed%s",
            len(report.removed_paths),
            report.failure_count,
            report.total_freed_bytes,
            " (dry run)" if report.dry_run else "",
        )
        return report

    def delete_path(self, path: str) -> DeletionOutcome:
        """
        Delete a single path.

        Args:
            path: Path to delete

        Returns:
            DeletionOutcome describing what happened
        """
        # Re-checked here because the filesystem may have changed since selection
        if self.safety.is_protected(path):
            logger.warning("Refusing to delete protected path %s", path)
            return DeletionOutcome(
                path=path,
                status=DeletionStatus.SKIPPED_PROTECTED,
                error="Protected path",
                kind=ErrorKind.PROTECTED_PATH,
            )

        try:
            size, crosses_mount = measure_path(path)
        except FileNotFoundError:
            # Already gone
            self._invalidate(path)
            return DeletionOutcome(path=path, status=DeletionStatus.REMOVED, bytes_freed=0)
        except OSError as e:
            logger.warning("Cannot inspect %s: %s", path, e)
            return DeletionOutcome(
                path=path,
                status=DeletionStatus.FAILED,
                error=f"OS error: {e}",
                kind=classify_os_error(e),
            )

        if crosses_mount:
            logger.warning("Not deleting %s: contains a mount point", path)
            return DeletionOutcome(
                path=path,
                status=DeletionStatus.FAILED,
                error="Contains another filesystem (mount point)",
                kind=ErrorKind.MOUNT_BOUNDARY,
            )

        if self.config.dry_run:
            return DeletionOutcome(path=path, status=DeletionStatus.REMOVED, bytes_freed=size)

        try:
            remove_tree(path)
        except (OSError, MountBoundaryError) as e:
            freed = max(size - _remaining_size(path, size), 0)
            if freed:
                self._invalidate(path)
            if freed:
                status, kind = DeletionStatus.PARTIAL, ErrorKind.PARTIAL_DELETION
            elif isinstance(e, MountBoundaryError):
                status, kind = DeletionStatus.FAILED, e.kind
            else:
                status, kind = DeletionStatus.FAILED, classify_os_error(e)
            error = f"Permission denied: {e}" if isinstance(e, PermissionError) else str(e)
            logger.warning("Deleting %s %s: %s", path, status.value, error)
            return DeletionOutcome(
                path=path, status=status, bytes_freed=freed, error=error, kind=kind
            )

        self._invalidate(path)
        logger.info("Deleted %s (%d bytes)", path, size)
        return DeletionOutcome(path=path, status=DeletionStatus.REMOVED, bytes_freed=size)

    def _invalidate(self, path: str) -> None:
        if self.cache is None:
            return
        self.cache.invalidate_subtree(path)
        self.cache.invalidate(path)
