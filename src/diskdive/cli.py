"""CLI interface for diskdive."""

from pathlib import Path
from typing import Optional

import typer

from diskdive import __version__
from diskdive.config import MIB, ExplorerConfig, load_config, save_config
from diskdive.display import (
    console,
    show_large_files,
    show_protections,
    show_scan_result,
    show_scanning_progress,
)
from diskdive.errors import ConfigError, ScanError
from diskdive.logs import setup_logging
from diskdive.safety import PathSafety
from diskdive.scanner import DirectoryScanner

# Create Typer app
app = typer.Typer(
    name="diskdive",
    help="Interactive disk usage explorer - find what fills your disk and remove it safely",
    add_completion=False,
)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Config file (default: ~/.diskdive/config.json)",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"diskdive version {__version__}")
        raise typer.Exit()


def _load_config_or_exit(config_file: Optional[Path]) -> ExplorerConfig:
    try:
        return load_config(config_file)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


def _resolve_root(path: Optional[Path], config: ExplorerConfig) -> Path:
    """Expand and validate the start directory, exiting with 1 if unusable."""
    root = (path or config.resolved_default_root()).expanduser()
    if not root.exists():
        console.print(f"[red]Path does not exist: {root}[/red]")
        raise typer.Exit(1)
    if not root.is_dir():
        console.print(f"[red]Not a directory: {root}[/red]")
        raise typer.Exit(1)
    return root.resolve()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """diskdive - interactive disk usage explorer."""
    # If no command specified, explore the default root
    if ctx.invoked_subcommand is None:
        ctx.invoke(
            explore,
            path=None,
            dry_run=False,
            config_file=None,
            log_file=None,
            verbose=False,
        )


@app.command()
def explore(
    path: Optional[Path] = typer.Argument(None, help="Directory to explore (default from config)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Simulate deletion without removing anything"),
    config_file: Optional[Path] = CONFIG_OPTION,
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Append debug logs to this file"),
    verbose: bool = typer.Option(False, "--verbose", help="Log at debug level"),
) -> None:
    """Browse directory sizes interactively and delete what you don't need (default)."""
    config = _load_config_or_exit(config_file)
    if dry_run:
        config = config.model_copy(update={"dry_run": True})
    root = _resolve_root(path, config)

    # The explorer owns the terminal; logs only go to a file
    setup_logging(verbose=verbose, log_file=log_file, console=False)

    from diskdive.tui import run_explorer

    run_explorer(str(root), config=config)


@app.command()
def scan(
    path: Path = typer.Argument(..., help="Directory to scan"),
    top: int = typer.Option(20, "--top", "-n", help="Number of entries to show"),
    threshold_mb: Optional[int] = typer.Option(
        None, "--threshold-mb", help="Report files larger than this many MB"
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", help="Log at debug level"),
) -> None:
    """Scan a directory once and print its children ranked by size."""
    config = _load_config_or_exit(config_file)
    if threshold_mb is not None:
        config = config.model_copy(update={"large_file_threshold": threshold_mb * MIB})
    root = _resolve_root(path, config)
    setup_logging(verbose=verbose)

    scanner = DirectoryScanner(config, safety=PathSafety(root, config))

    with show_scanning_progress() as progress:
        task = progress.add_task(f"Scanning {root}...", total=None)

        def update_progress(completed: int, total: int) -> None:
            progress.update(task, completed=completed, total=total)

        try:
            result = scanner.scan(str(root), progress_callback=update_progress)
        except ScanError as e:
            console.print(f"[red]Scan failed: {e}[/red]")
            raise typer.Exit(1)

    show_scan_result(result, top=top)
    console.print()
    show_large_files(result.large_files, config.large_file_threshold)


@app.command()
def protect(
    path: Path = typer.Argument(..., help="Path that must never be deleted"),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Add a path to the protection list."""
    config = _load_config_or_exit(config_file)
    expanded = path.expanduser()
    if not expanded.exists():
        console.print(f"[red]Path does not exist: {path}[/red]")
        raise typer.Exit(1)

    resolved = str(expanded.resolve())
    if resolved in config.protected_paths:
        console.print(f"[yellow]Already protected: {resolved}[/yellow]")
        return

    config.protected_paths.append(resolved)
    try:
        save_config(config, config_file)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Protected:[/green] {resolved}")


@app.command()
def unprotect(
    path: Path = typer.Argument(..., help="Path to remove from the protection list"),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Remove a path from the protection list."""
    config = _load_config_or_exit(config_file)
    candidates = {str(path), str(path.expanduser()), str(path.expanduser().resolve())}
    remaining = [p for p in config.protected_paths if p not in candidates]
    if len(remaining) == len(config.protected_paths):
        console.print(f"[yellow]Not protected: {path}[/yellow]")
        raise typer.Exit(1)

    config.protected_paths = remaining
    try:
        save_config(config, config_file)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Unprotected:[/green] {path}")


@app.command()
def protections(config_file: Optional[Path] = CONFIG_OPTION) -> None:
    """List user-configured protected paths and patterns."""
    config = _load_config_or_exit(config_file)
    show_protections(config.protected_paths, config.protected_patterns)


if __name__ == "__main__":
    app()
