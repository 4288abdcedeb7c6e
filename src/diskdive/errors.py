"""Error types for diskdive."""

import errno
from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of filesystem trouble the explorer distinguishes."""

    PERMISSION_DENIED = "permission_denied"
    SYMLINK_LOOP = "symlink_loop"
    MOUNT_BOUNDARY = "mount_boundary"
    NOT_FOUND = "not_found"
    PROTECTED_PATH = "protected_path"
    PARTIAL_DELETION = "partial_deletion"
    IO_ERROR = "io_error"


class DiskDiveError(Exception):
    """Base class for diskdive errors."""


class ConfigError(DiskDiveError):
    """Configuration file could not be read or validated."""


class ScanError(DiskDiveError):
    """The scanned directory itself could not be listed."""

    def __init__(self, path: str, message: str, kind: ErrorKind = ErrorKind.IO_ERROR):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.kind = kind


class ScanCancelled(ScanError):
    """A scan observed its cancel signal and stopped early."""

    def __init__(self, path: str):
        super().__init__(path, "scan cancelled")


class MountBoundaryError(DiskDiveError):
    """Recursive removal reached a different filesystem."""

    def __init__(self, path: str):
        super().__init__(f"{path}: refusing to cross filesystem boundary")
        self.path = path
        self.kind = ErrorKind.MOUNT_BOUNDARY


def classify_os_error(error: OSError) -> ErrorKind:
    """Map an OSError onto an ErrorKind."""
    if isinstance(error, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(error, FileNotFoundError):
        return ErrorKind.NOT_FOUND
    if error.errno == errno.ELOOP:
        return ErrorKind.SYMLINK_LOOP
    return ErrorKind.IO_ERROR
