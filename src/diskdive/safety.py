"""Protected-path policy for diskdive."""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Union

from diskdive.config import ExplorerConfig, expand_path

logger = logging.getLogger(__name__)

# Subtrees that must never be deleted from
SYSTEM_PROTECTED_PATHS = [
    "/System",
    "/Library",
    "/bin",
    "/sbin",
    "/usr",
    "/etc",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "/lib",
    "/lib32",
    "/lib64",
    "/var/db",
    "/var/lib",
    "/private/var/db",
    "/private/etc",
]

# Path components that mark trash internals, OS bookkeeping and
# security-software data
PROTECTED_NAME_PATTERNS = [
    ".Trash",
    ".Trashes",
    "$Recycle.Bin",
    "System Volume Information",
    ".Spotlight-V100",
    ".fseventsd",
    ".DocumentRevisions-V100",
    ".TemporaryItems",
    "com.apple.TCC",
    "Windows Defender",
    "ClamAV",
    "clamav",
    "*.keychain-db",
]

# Regenerable artifact directories worth pointing out in the listing
CLEANABLE_NAMES = frozenset(
    {
        "node_modules",
        "vendor",
        ".venv",
        "venv",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".tox",
        "target",
        "build",
        "dist",
        ".gradle",
        ".next",
    }
)

PathLike = Union[str, Path]


def canonical_path(path: PathLike) -> str:
    """Absolute path with every symlink resolved."""
    return os.path.realpath(os.path.abspath(os.fspath(path)))


def is_within(path: str, prefix: str) -> bool:
    """Whether path equals prefix or lies beneath it (lexical)."""
    if prefix == os.sep:
        return path.startswith(os.sep)
    return path == prefix or path.startswith(prefix.rstrip(os.sep) + os.sep)


def is_cleanable_name(name: str) -> bool:
    """Whether a directory name is a well known regenerable artifact."""
    return name in CLEANABLE_NAMES


class PathSafety:
    """
    Decides which paths may be deleted.

    A path is protected when it resolves outside the explorer root, is the
    root itself, sits inside an operating-system subtree or a configured
    prefix, or has a component matching a protected pattern. The check never
    raises: anything that cannot be resolved is treated as protected.
    """

    def __init__(
        self,
        root: PathLike,
        config: Optional[ExplorerConfig] = None,
        system_paths: Optional[Iterable[str]] = None,
    ):
        config = config or ExplorerConfig()
        self.root = canonical_path(root)
        self.home = canonical_path(Path.home())

        prefixes = list(SYSTEM_PROTECTED_PATHS if system_paths is None else system_paths)
        prefixes.extend(str(expand_path(p)) for p in config.protected_paths)
        # Compare both the lexical and the resolved form (/etc -> /private/etc on macOS)
        self.protected_prefixes: list[str] = []
        for prefix in prefixes:
            for form in (os.path.abspath(prefix), canonical_path(prefix)):
                if form not in self.protected_prefixes:
                    self.protected_prefixes.append(form)

        self.name_patterns = PROTECTED_NAME_PATTERNS + list(config.protected_patterns)

    def is_protected(self, path: PathLike) -> bool:
        """
        Check if a path must not be deleted.

        Args:
            path: Path to check

        Returns:
            True if protected, False if deletion is allowed
        """
        try:
            resolved = canonical_path(path)
        except (OSError, ValueError, TypeError) as e:
            logger.debug("Cannot resolve %r, treating as protected: %s", path, e)
            return True

        if resolved in (os.sep, self.root, self.home):
            return True

        if not is_within(resolved, self.root):
            return True

        for prefix in self.protected_prefixes:
            if is_within(resolved, prefix):
                return True

        # Only components below the root count; the root itself was chosen by the user
        relative = resolved[len(self.root):].strip(os.sep)
        for part in relative.split(os.sep):
            if part and self._matches_pattern(part):
                return True

        return False

    def _matches_pattern(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.name_patterns)
