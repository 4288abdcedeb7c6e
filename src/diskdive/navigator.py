"""Navigation state machine for the disk-usage explorer.

The navigator never touches threads or the terminal. It consumes actions
(decoded key presses) and completion events for background work, mutates
its NavigatorState, and returns effects describing the background work the
session should start or cancel.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Union

from diskdive.cache import SizeCache
from diskdive.config import ExplorerConfig
from diskdive.errors import ScanCancelled
from diskdive.models import (
    DeletionReport,
    DeletionStatus,
    Entry,
    LargeFileRecord,
    Mode,
    NavigatorState,
    ScanResult,
    format_size,
    sort_entries,
)
from diskdive.safety import PathSafety, is_within

logger = logging.getLogger(__name__)


class Action(Enum):
    """Everything a user can ask the explorer to do."""

    CURSOR_UP = auto()
    CURSOR_DOWN = auto()
    PAGE_UP = auto()
    PAGE_DOWN = auto()
    HOME = auto()
    END = auto()
    ENTER = auto()
    PARENT = auto()
    TOGGLE_SELECT = auto()
    SELECT_ALL = auto()
    CLEAR_SELECTION = auto()
    DELETE = auto()
    CONFIRM = auto()
    CANCEL = auto()
    REFRESH = auto()
    TOGGLE_LARGE_FILES = auto()
    QUIT = auto()


# Terminal key names (as reported by textual) to actions
KEY_BINDINGS: dict[str, Action] = {
    "up": Action.CURSOR_UP,
    "k": Action.CURSOR_UP,
    "down": Action.CURSOR_DOWN,
    "j": Action.CURSOR_DOWN,
    "pageup": Action.PAGE_UP,
    "pagedown": Action.PAGE_DOWN,
    "home": Action.HOME,
    "end": Action.END,
    "enter": Action.ENTER,
    "right": Action.ENTER,
    "l": Action.ENTER,
    "left": Action.PARENT,
    "h": Action.PARENT,
    "backspace": Action.PARENT,
    "space": Action.TOGGLE_SELECT,
    "a": Action.SELECT_ALL,
    "c": Action.CLEAR_SELECTION,
    "d": Action.DELETE,
    "delete": Action.DELETE,
    "y": Action.CONFIRM,
    "n": Action.CANCEL,
    "escape": Action.CANCEL,
    "r": Action.REFRESH,
    "f": Action.TOGGLE_LARGE_FILES,
    "q": Action.QUIT,
    "ctrl+c": Action.QUIT,
}

# Keys shown in the footer, per mode
KEY_HELP = {
    Mode.BROWSING: "↑↓ move  → open  ← back  space select  a all  d del  f files  r refresh  q quit",
    Mode.LOADING: "← back  r refresh  q quit",
    Mode.CONFIRMING_DELETION: "y confirm  n/esc cancel",
    Mode.DELETING: "esc stop after current item",
    Mode.ERROR: "← back  r retry  q quit",
}

# Modes that only the deletion flow itself may leave
DELETION_MODES = (Mode.CONFIRMING_DELETION, Mode.DELETING)


def action_for_key(key: str) -> Optional[Action]:
    """Decode a terminal key name."""
    return KEY_BINDINGS.get(key)


@dataclass(frozen=True)
class StartScan:
    path: str
    request_id: int


@dataclass(frozen=True)
class CancelScan:
    request_id: int


@dataclass(frozen=True)
class StartDeletion:
    paths: frozenset[str]


@dataclass(frozen=True)
class CancelDeletion:
    pass


@dataclass(frozen=True)
class Quit:
    pass


Effect = Union[StartScan, CancelScan, StartDeletion, CancelDeletion, Quit]


class Navigator:
    """Explorer state machine: Loading, Browsing, ConfirmingDeletion, Deleting, Error."""

    def __init__(
        self,
        root: str,
        safety: PathSafety,
        cache: SizeCache,
        config: Optional[ExplorerConfig] = None,
    ):
        self.config = config or ExplorerConfig()
        self.root = os.path.abspath(root)
        self.safety = safety
        self.cache = cache
        self.state = NavigatorState(
            root=self.root,
            current_path=self.root,
            dry_run=self.config.dry_run,
        )
        self.page_size = 10
        self.quitting = False
        self._listings: dict[str, ScanResult] = {}
        self._cursor_memory: dict[str, str] = {}
        self._next_request_id = 1
        self._active_scan: Optional[int] = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def start(self) -> list[Effect]:
        """Begin by scanning the root."""
        self.state.mode = Mode.LOADING
        return self._begin_scan(self.root)

    def handle_key(self, key: str) -> list[Effect]:
        """Handle a raw key name; unknown keys are ignored."""
        action = action_for_key(key)
        if action is None:
            return []
        return self.handle_action(action)

    def handle_action(self, action: Action) -> list[Effect]:
        """Apply one user action and return the effects it requires."""
        mode = self.state.mode

        if action is Action.QUIT:
            return self._quit()

        if mode is Mode.DELETING:
            if action is Action.CANCEL:
                self.state.message = "Stopping after the current item..."
                return [CancelDeletion()]
            return []

        if mode is Mode.CONFIRMING_DELETION:
            if action is Action.CONFIRM:
                return self._confirm_deletion()
            if action is Action.CANCEL:
                self.state.pending_deletion = set()
                self.state.mode = Mode.BROWSING
                self.state.message = "Deletion cancelled"
            return []

        if mode is Mode.ERROR and action not in (
            Action.PARENT,
            Action.REFRESH,
            Action.TOGGLE_LARGE_FILES,
            Action.CANCEL,
        ):
            return []

        if action is Action.CURSOR_UP:
            self._move_cursor(-1)
        elif action is Action.CURSOR_DOWN:
            self._move_cursor(1)
        elif action is Action.PAGE_UP:
            self._move_cursor(-self.page_size)
        elif action is Action.PAGE_DOWN:
            self._move_cursor(self.page_size)
        elif action is Action.HOME:
            self._set_cursor(0)
        elif action is Action.END:
            self._set_cursor(len(self.state.entries) - 1)
        elif action is Action.ENTER:
            return self._enter()
        elif action is Action.PARENT:
            return self._parent()
        elif action is Action.TOGGLE_SELECT:
            self._toggle_select()
        elif action is Action.SELECT_ALL:
            self._select_all()
        elif action is Action.CLEAR_SELECTION:
            self.state.multi_selected = set()
            self.state.message = "Selection cleared"
        elif action is Action.DELETE:
            self._request_deletion()
        elif action is Action.CONFIRM:
            pass
        elif action is Action.CANCEL:
            self.state.message = None
        elif action is Action.REFRESH:
            return self._refresh()
        elif action is Action.TOGGLE_LARGE_FILES:
            self.state.show_large_files = not self.state.show_large_files
        else:
            raise ValueError(f"Unhandled action: {action}")
        return []

    def on_scan_progress(self, path: str, request_id: int, completed: int, total: int) -> None:
        """Record progress of the scan in flight."""
        if self._is_current_scan(path, request_id):
            self.state.progress = (completed, total)

    def on_scan_finished(self, path: str, request_id: int, result: ScanResult) -> list[Effect]:
        """Apply a completed scan unless the user has moved on."""
        if not self._is_current_scan(path, request_id):
            logger.debug("Discarding stale scan of %s (request %d)", path, request_id)
            return []

        self._active_scan = None
        self._store_listing(result)
        self._show(path, result)
        return []

    def on_scan_failed(self, path: str, request_id: int, error: Exception) -> list[Effect]:
        """Put the current node into Error unless the failure is stale or a cancel."""
        if not self._is_current_scan(path, request_id) or isinstance(error, ScanCancelled):
            logger.debug("Ignoring failed scan of %s: %s", path, error)
            return []

        self._active_scan = None
        self.state.scanning = False
        self.state.entries = []
        self.state.cursor_index = 0
        self.state.error = str(error)
        # A pending or running deletion keeps the screen; the error shows once it ends
        if self.state.mode not in DELETION_MODES:
            self.state.mode = Mode.ERROR
        return []

    def on_deletion_finished(self, report: DeletionReport) -> list[Effect]:
        """Fold a deletion report back into the listings and the selection."""
        self.state.pending_deletion = set()
        self.state.mode = Mode.ERROR if self.state.error else Mode.BROWSING

        if report.dry_run:
            self.state.message = (
                f"Dry run: would free {format_size(report.total_freed_bytes)} "
                f"from {len(report.outcomes)} item(s)"
            )
            return []

        for outcome in report.outcomes:
            if outcome.status is DeletionStatus.REMOVED:
                self._forget_path(outcome.path, outcome.bytes_freed)
            elif outcome.status is DeletionStatus.PARTIAL:
                self._apply_size_delta(outcome.path, -outcome.bytes_freed)
                self._drop_listings(outcome.path)

        effects: list[Effect] = []
        current = self.state.current_path
        vanished = [p for p in report.removed_paths if is_within(current, p)]
        shrunk = [p for p in report.partial_paths if is_within(current, p)]
        if vanished:
            effects = self._navigate_to(os.path.dirname(min(vanished, key=len)))
        elif shrunk:
            # Whatever survived below the current directory is unknown until rescanned
            effects = self._navigate_to(current)
        else:
            listing = self._listings.get(current)
            if listing is not None:
                self._show(current, listing, keep_cursor=True)

        self.state.message = self._deletion_message(report)
        return effects

    def on_deletion_failed(self, error: Exception) -> list[Effect]:
        """The deletion job itself crashed; nothing is known to be removed."""
        self.state.pending_deletion = set()
        self.state.mode = Mode.ERROR if self.state.error else Mode.BROWSING
        self.state.message = f"Deletion failed: {error}"
        return []

    def advance_spinner(self) -> None:
        self.state.tick += 1

    # ------------------------------------------------------------------
    # Cursor and selection
    # ------------------------------------------------------------------

    def _set_cursor(self, index: int) -> None:
        last = len(self.state.entries) - 1
        self.state.cursor_index = max(0, min(index, last))

    def _move_cursor(self, delta: int) -> None:
        self._set_cursor(self.state.cursor_index + delta)

    def _toggle_select(self) -> None:
        entry = self.state.current_entry
        if entry is None:
            return
        if entry.protected:
            self.state.message = f"{entry.name} is protected and cannot be selected"
            return
        if entry.path in self.state.multi_selected:
            self.state.multi_selected.discard(entry.path)
        else:
            self.state.multi_selected.add(entry.path)

    def _select_all(self) -> None:
        deletable = {e.path for e in self.state.entries if not e.protected}
        if deletable and deletable <= self.state.multi_selected:
            self.state.multi_selected -= deletable
        else:
            self.state.multi_selected |= deletable

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _enter(self) -> list[Effect]:
        entry = self.state.current_entry
        if entry is None:
            return []
        if not entry.is_dir or entry.is_symlink:
            self.state.message = f"{entry.name} is not a directory"
            return []
        return self._navigate_to(entry.path)

    def _parent(self) -> list[Effect]:
        current = self.state.current_path
        if current == self.root:
            self.state.message = "Already at the top"
            return []
        parent = os.path.dirname(current)
        effects = self._navigate_to(parent)
        # Land on the directory just left
        if self.state.mode is Mode.BROWSING and not self.state.scanning:
            self._select_path(current)
        else:
            self._cursor_memory[parent] = current
        return effects

    def _navigate_to(self, path: str) -> list[Effect]:
        self._remember_cursor()
        effects = self._cancel_active_scan()
        self.state.current_path = path
        self.state.error = None
        self.state.message = None

        listing = self._listings.get(path)
        if listing is not None:
            self._show(path, listing)
            return effects

        size, found = self.cache.get(path)
        self.state.entries = []
        self.state.cursor_index = 0
        self.state.large_files = []
        self.state.error_count = 0
        self.state.total_bytes = size if found else 0
        self.state.mode = Mode.BROWSING if found else Mode.LOADING
        return effects + self._begin_scan(path)

    def _refresh(self) -> list[Effect]:
        current = self.state.current_path
        self.cache.invalidate_subtree(current)
        self.cache.invalidate(current)
        self._drop_listings(current)
        effects = self._cancel_active_scan()
        self.state.mode = Mode.LOADING
        self.state.error = None
        self.state.message = None
        return effects + self._begin_scan(current)

    def _quit(self) -> list[Effect]:
        self.quitting = True
        return self._cancel_active_scan() + [Quit()]

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def _request_deletion(self) -> None:
        if self.state.mode is not Mode.BROWSING:
            return
        if self.state.multi_selected:
            targets = set(self.state.multi_selected)
        else:
            entry = self.state.current_entry
            targets = {entry.path} if entry is not None else set()

        deletable = {p for p in targets if not self.safety.is_protected(p)}
        if not deletable:
            self.state.message = (
                "Protected paths cannot be deleted" if targets else "Nothing selected"
            )
            return

        if len(deletable) < len(targets):
            self.state.message = f"{len(targets) - len(deletable)} protected item(s) left out"
        self.state.pending_deletion = deletable
        self.state.mode = Mode.CONFIRMING_DELETION

    def _confirm_deletion(self) -> list[Effect]:
        paths = frozenset(self.state.pending_deletion)
        self.state.mode = Mode.DELETING
        self.state.message = f"Deleting {len(paths)} item(s)..."
        return [StartDeletion(paths=paths)]

    def _forget_path(self, path: str, freed: int) -> None:
        self._apply_size_delta(path, -freed)
        parent = os.path.dirname(path)
        listing = self._listings.get(parent)
        if listing is not None:
            listing.entries = [e for e in listing.entries if e.path != path]
            listing.total_bytes = sum(e.size_bytes for e in listing.entries)
        self._drop_listings(path)
        self.state.multi_selected = {
            p for p in self.state.multi_selected if not is_within(p, path)
        }

    def _deletion_message(self, report: DeletionReport) -> str:
        parts = [f"Freed {format_size(report.total_freed_bytes)}"]
        removed = len(report.removed_paths)
        parts.append(f"{removed} removed")
        skipped = [o for o in report.outcomes if o.status is DeletionStatus.SKIPPED_PROTECTED]
        if skipped:
            parts.append(f"{len(skipped)} protected")
        cancelled = [o for o in report.outcomes if o.status is DeletionStatus.SKIPPED]
        if cancelled:
            parts.append(f"{len(cancelled)} not started")
        for outcome in report.outcomes:
            if outcome.status is DeletionStatus.FAILED:
                parts.append(f"failed {os.path.basename(outcome.path)}: {outcome.error}")
            elif outcome.status is DeletionStatus.PARTIAL:
                parts.append(
                    f"partly removed {os.path.basename(outcome.path)} "
                    f"({format_size(outcome.bytes_freed)} freed): {outcome.error}"
                )
        return ", ".join(parts)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def _store_listing(self, result: ScanResult) -> None:
        path = result.path
        parent_listing = self._listings.get(os.path.dirname(path))
        if path != self.root and parent_listing is not None:
            entry = self._find_entry(parent_listing, path)
            if entry is not None and entry.size_bytes != result.total_bytes:
                self._apply_size_delta(path, result.total_bytes - entry.size_bytes)
        self._listings[path] = result

    def _apply_size_delta(self, path: str, delta: int) -> None:
        """Adjust every memoized ancestor listing for a size change at path."""
        if not delta:
            return
        child = path
        while child != self.root:
            parent = os.path.dirname(child)
            if parent == child:
                break
            listing = self._listings.get(parent)
            if listing is not None:
                entry = self._find_entry(listing, child)
                if entry is not None:
                    entry.size_bytes = max(entry.size_bytes + delta, 0)
                    entry.size_known = True
                    listing.entries = sort_entries(listing.entries)
                listing.total_bytes = max(listing.total_bytes + delta, 0)
            child = parent

    def _drop_listings(self, path: str) -> None:
        for key in [k for k in self._listings if is_within(k, path)]:
            del self._listings[key]
        for key in [k for k in self._cursor_memory if is_within(k, path)]:
            del self._cursor_memory[key]

    @staticmethod
    def _find_entry(listing: ScanResult, path: str) -> Optional[Entry]:
        for entry in listing.entries:
            if entry.path == path:
                return entry
        return None

    def _show(self, path: str, listing: ScanResult, keep_cursor: bool = False) -> None:
        state = self.state
        state.current_path = path
        state.entries = list(listing.entries)
        state.total_bytes = listing.total_bytes
        state.error_count = listing.error_count
        state.large_files = self._large_files_for(path, listing)
        state.scanning = False
        state.progress = (0, 0)
        state.error = None
        if state.mode not in DELETION_MODES:
            state.mode = Mode.BROWSING

        if keep_cursor:
            self._set_cursor(state.cursor_index)
            return

        state.cursor_index = 0
        remembered = self._cursor_memory.get(path)
        if remembered is not None:
            self._select_path(remembered)

    def _select_path(self, path: str) -> None:
        for index, entry in enumerate(self.state.entries):
            if entry.path == path:
                self.state.cursor_index = index
                return

    def _remember_cursor(self) -> None:
        entry = self.state.current_entry
        if entry is not None:
            self._cursor_memory[self.state.current_path] = entry.path

    def _large_files_for(self, path: str, listing: ScanResult) -> list[LargeFileRecord]:
        # Subtrees sized from the cache contribute no large files to a scan,
        # so borrow what ancestor scans saw beneath this directory.
        found = {record.path: record for record in listing.large_files}
        for key, ancestor in self._listings.items():
            if key != path and is_within(path, key):
                for record in ancestor.large_files:
                    if is_within(record.path, path):
                        found.setdefault(record.path, record)
        records = sorted(found.values(), key=lambda r: (-r.size_bytes, r.path))
        return records[: self.config.large_file_limit]

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def _begin_scan(self, path: str) -> list[Effect]:
        request_id = self._next_request_id
        self._next_request_id += 1
        self._active_scan = request_id
        self.state.scanning = True
        self.state.progress = (0, 0)
        return [StartScan(path=path, request_id=request_id)]

    def _cancel_active_scan(self) -> list[Effect]:
        if self._active_scan is None:
            return []
        request_id = self._active_scan
        self._active_scan = None
        self.state.scanning = False
        return [CancelScan(request_id=request_id)]

    def _is_current_scan(self, path: str, request_id: int) -> bool:
        return request_id == self._active_scan and path == self.state.current_path
