"""Configuration for diskdive."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from diskdive.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".diskdive"
CONFIG_FILE_NAME = "config.json"

MIB = 1024**2


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


def default_config_file() -> Path:
    """Location of the user's config file."""
    return expand_path(f"~/{CONFIG_DIR_NAME}") / CONFIG_FILE_NAME


class ExplorerConfig(BaseModel):
    """Settings shared by the scanner, safety gate, deleter and renderer."""

    default_root: str = Field("~", description="Root used when no path is given")
    large_file_threshold: int = Field(
        100 * MIB,
        ge=0,
        description="Files strictly larger than this are tracked as large files",
    )
    large_file_limit: int = Field(
        20,
        ge=0,
        description="Maximum number of large files retained per scan",
    )
    max_workers: int = Field(
        8,
        ge=1,
        description="Concurrent child scans per directory",
    )
    protected_paths: list[str] = Field(
        default_factory=list,
        description="Extra path prefixes that may never be deleted (supports ~)",
    )
    protected_patterns: list[str] = Field(
        default_factory=list,
        description="Extra glob patterns matched against path components",
    )
    dry_run: bool = Field(False, description="Simulate deletion without touching disk")
    bar_width: int = Field(20, ge=4, description="Maximum width of size bars")

    def resolved_default_root(self) -> Path:
        """Default root with ~ and variables expanded."""
        return expand_path(self.default_root)


def load_config(path: Optional[Path] = None) -> ExplorerConfig:
    """
    Load configuration from disk.

    A missing file yields the defaults. A file that exists but cannot be
    parsed raises ConfigError, since it may carry protection rules.

    Args:
        path: Config file to read (default: ~/.diskdive/config.json)

    Returns:
        Parsed ExplorerConfig
    """
    config_file = path or default_config_file()
    if not config_file.exists():
        logger.debug("No config file at %s, using defaults", config_file)
        return ExplorerConfig()

    try:
        with open(config_file) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"Cannot read {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_file}: expected a JSON object")

    try:
        return ExplorerConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {config_file}: {e}") from e


def save_config(config: ExplorerConfig, path: Optional[Path] = None) -> None:
    """Write configuration to disk, creating the config directory if needed."""
    config_file = path or default_config_file()
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            json.dump(config.model_dump(), f, indent=2)
    except OSError as e:
        raise ConfigError(f"Cannot write {config_file}: {e}") from e
