"""Data models for diskdive."""

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from diskdive.errors import ErrorKind


def format_size(size_bytes: int) -> str:
    """Format bytes to a human-readable string (binary units, base 1024)."""
    size = float(size_bytes)
    if size < 1024:
        return f"{int(size_bytes)} B"
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        # Compare what will be printed, so 1023.96 KB rolls over to 1.0 MB
        if round(size, 1) < 1024:
            return f"{size:.1f} {unit}"
    return f"{size / 1024:.1f} TB"


class Entry(BaseModel):
    """One direct child of the directory being displayed."""

    name: str = Field(..., description="Base name shown in the listing")
    path: str = Field(..., description="Absolute path, unique key")
    is_dir: bool = Field(False, description="Whether the entry is a directory")
    size_bytes: int = Field(0, description="Aggregate size in bytes")
    size_known: bool = Field(False, description="Whether size_bytes comes from a completed scan")
    is_symlink: bool = Field(False, description="Entry is a symbolic link (never followed)")
    protected: bool = Field(False, description="Shown read-only, never deletable")
    cleanable: bool = Field(False, description="Name matches a regenerable build/cache artifact")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)


def sort_entries(entries: Iterable[Entry]) -> list[Entry]:
    """Sort by size descending, ties broken by name ascending."""
    return sorted(entries, key=lambda e: (-e.size_bytes, e.name))


class LargeFileRecord(BaseModel):
    """A single large file found while scanning."""

    path: str = Field(..., description="Absolute path of the file")
    size_bytes: int = Field(..., description="File size in bytes")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_size(self.size_bytes)


class ScanResult(BaseModel):
    """Result of scanning one directory's immediate children."""

    path: str = Field(..., description="Directory that was scanned")
    entries: list[Entry] = Field(default_factory=list, description="Children, largest first")
    large_files: list[LargeFileRecord] = Field(
        default_factory=list,
        description="Largest files seen anywhere below path, largest first",
    )
    total_bytes: int = Field(0, description="Sum of all entry sizes")
    error_count: int = Field(0, description="Children or branches that could not be read")
    file_count: int = Field(0, description="Regular files counted")
    dir_count: int = Field(0, description="Directories walked")
    scanned_at: datetime = Field(default_factory=datetime.now)

    @property
    def total_human(self) -> str:
        """Human-readable total size."""
        return format_size(self.total_bytes)


class CacheEntry(BaseModel):
    """Memoized aggregate size of one directory."""

    path: str = Field(..., description="Absolute path")
    size_bytes: int = Field(..., description="Aggregate size in bytes")
    computed_at: datetime = Field(default_factory=datetime.now)


class DeletionStatus(str, Enum):
    """Outcome of deleting one selected path."""

    REMOVED = "removed"
    SKIPPED_PROTECTED = "skipped_protected"
    SKIPPED = "skipped"  # Cancelled before it was started
    FAILED = "failed"  # Nothing was freed
    PARTIAL = "partial"  # Some descendants removed before an error


class DeletionOutcome(BaseModel):
    """Result of deleting a single top-level path."""

    path: str = Field(..., description="Path that was selected for deletion")
    status: DeletionStatus = Field(..., description="What happened to it")
    bytes_freed: int = Field(0, description="Bytes freed (may be nonzero for PARTIAL)")
    error: Optional[str] = Field(None, description="Error message if not removed")
    kind: Optional[ErrorKind] = Field(None, description="Error category if not removed")


class DeletionReport(BaseModel):
    """Results of one confirmed deletion request."""

    outcomes: list[DeletionOutcome] = Field(default_factory=list)
    dry_run: bool = Field(False, description="Whether this was a dry run")

    @property
    def total_freed_bytes(self) -> int:
        """Total bytes freed across all paths."""
        return sum(o.bytes_freed for o in self.outcomes)

    @property
    def removed_paths(self) -> list[str]:
        """Paths that no longer exist."""
        return [o.path for o in self.outcomes if o.status == DeletionStatus.REMOVED]

    @property
    def partial_paths(self) -> list[str]:
        """Paths that were only partly removed."""
        return [o.path for o in self.outcomes if o.status == DeletionStatus.PARTIAL]

    @property
    def failure_count(self) -> int:
        """Number of paths that failed fully or partly."""
        return sum(
            1 for o in self.outcomes if o.status in (DeletionStatus.FAILED, DeletionStatus.PARTIAL)
        )

    def outcome_for(self, path: str) -> Optional[DeletionOutcome]:
        """Find the outcome for a path."""
        for outcome in self.outcomes:
            if outcome.path == path:
                return outcome
        return None


class Mode(str, Enum):
    """Navigator states."""

    LOADING = "loading"
    BROWSING = "browsing"
    CONFIRMING_DELETION = "confirming_deletion"
    DELETING = "deleting"
    ERROR = "error"


class NavigatorState(BaseModel):
    """Everything the renderer needs to draw a frame."""

    root: str = Field(..., description="Explorer root, never left")
    current_path: str = Field(..., description="Directory being displayed")
    mode: Mode = Field(Mode.LOADING)
    entries: list[Entry] = Field(default_factory=list)
    cursor_index: int = Field(0)
    multi_selected: set[str] = Field(default_factory=set)
    pending_deletion: set[str] = Field(default_factory=set)
    scanning: bool = Field(False)
    progress: tuple[int, int] = Field((0, 0), description="(completed, total) children")
    total_bytes: int = Field(0)
    error_count: int = Field(0)
    large_files: list[LargeFileRecord] = Field(default_factory=list)
    show_large_files: bool = Field(False)
    message: Optional[str] = Field(None, description="One-line status shown above the footer")
    error: Optional[str] = Field(None, description="Terminal error for the current node")
    dry_run: bool = Field(False)
    tick: int = Field(0, description="Spinner frame counter")

    @property
    def current_entry(self) -> Optional[Entry]:
        """Entry under the cursor."""
        if 0 <= self.cursor_index < len(self.entries):
            return self.entries[self.cursor_index]
        return None

    @property
    def selected_bytes(self) -> int:
        """Known size of multi-selected entries in the current listing."""
        return sum(e.size_bytes for e in self.entries if e.path in self.multi_selected)
