"""Rich terminal display for diskdive's non-interactive commands."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from diskdive.models import Entry, LargeFileRecord, ScanResult, format_size
from diskdive.render import size_bar

console = Console()


def entry_label(entry: Entry) -> str:
    """Name with a trailing marker for directories and symlinks."""
    if entry.is_symlink:
        return f"{entry.name}@"
    if entry.is_dir:
        return f"{entry.name}/"
    return entry.name


def entry_flags(entry: Entry) -> str:
    """Styled flags column."""
    if entry.protected:
        return "[dim]protected[/dim]"
    if entry.cleanable:
        return "[green]cleanable[/green]"
    return ""


def show_scan_result(result: ScanResult, top: int = 20) -> None:
    """Display a ranked listing of one directory."""
    largest = max((e.size_bytes for e in result.entries), default=0)

    table = Table(title=escape(result.path), show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("%", justify="right")
    table.add_column("")
    table.add_column("Flags")

    for entry in result.entries[:top]:
        percent = entry.size_bytes / result.total_bytes * 100 if result.total_bytes else 0
        table.add_row(
            f"[bold]{escape(entry_label(entry))}[/bold]" if entry.is_dir else escape(entry_label(entry)),
            entry.size_human,
            f"{percent:.1f}%",
            f"[cyan]{size_bar(entry.size_bytes, largest, 20)}[/cyan]",
            entry_flags(entry),
        )

    console.print(table)
    if len(result.entries) > top:
        console.print(f"[dim]...and {len(result.entries) - top} more[/dim]")

    summary = (
        f"[bold]Total:[/bold] {result.total_human}\n"
        f"  Files: {result.file_count}  Directories: {result.dir_count}"
    )
    if result.error_count:
        summary += f"\n  [yellow]Unreadable: {result.error_count}[/yellow]"
    console.print(Panel(summary, title="Summary", border_style="blue"))


def show_large_files(records: list[LargeFileRecord], threshold: int) -> None:
    """Display the largest files found during a scan."""
    if not records:
        console.print(f"[dim]No files larger than {format_size(threshold)}[/dim]")
        return

    table = Table(title="Largest Files", show_header=True, header_style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Path")
    for record in records:
        table.add_row(record.size_human, escape(record.path))
    console.print(table)


def show_protections(paths: list[str], patterns: list[str]) -> None:
    """Display user-configured protections."""
    if not paths and not patterns:
        console.print("[dim]No protected paths configured[/dim]")
        return

    if paths:
        console.print("[bold]Protected paths:[/bold]")
        for path in paths:
            console.print(f"  • {escape(path)}")
    if patterns:
        console.print("[bold]Protected patterns:[/bold]")
        for pattern in patterns:
            console.print(f"  • {escape(pattern)}")


def show_scanning_progress() -> Progress:
    """Create progress bar for scanning."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
