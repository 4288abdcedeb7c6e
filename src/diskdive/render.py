"""Frame rendering for the disk-usage explorer.

`Renderer.render` is a pure function of NavigatorState and the terminal
size. It returns rich markup; every piece of filesystem text is escaped.
"""

import os
from typing import Optional

from rich.cells import cell_len, set_cell_size
from rich.markup import escape

from diskdive.config import ExplorerConfig
from diskdive.models import Entry, Mode, NavigatorState, format_size
from diskdive.navigator import KEY_HELP

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
ELLIPSIS = "..."

HEADER_LINES = 3
FOOTER_LINES = 3
MAX_PROMPT_PATHS = 8


def truncate_text(text: str, max_width: int) -> str:
    """Cut text to max_width display cells, ending in '...' when cut."""
    if cell_len(text) <= max_width:
        return text
    if max_width <= len(ELLIPSIS):
        return ELLIPSIS[:max(max_width, 0)]
    kept = ""
    width = 0
    for char in text:
        char_width = cell_len(char)
        if width + char_width + len(ELLIPSIS) > max_width:
            break
        kept += char
        width += char_width
    return kept + ELLIPSIS


def truncate_path(path: str, max_width: int) -> str:
    """Keep the tail of a path, prefixing '...' when it does not fit."""
    if cell_len(path) <= max_width:
        return path
    if max_width <= len(ELLIPSIS):
        return ELLIPSIS[:max(max_width, 0)]
    kept = ""
    width = 0
    for char in reversed(path):
        char_width = cell_len(char)
        if width + char_width + len(ELLIPSIS) > max_width:
            break
        kept = char + kept
        width += char_width
    return ELLIPSIS + kept


def size_bar(size_bytes: int, largest: int, width: int) -> str:
    """Proportional bar; the largest known entry fills the full width."""
    if width <= 0:
        return ""
    filled = 0
    if largest > 0 and size_bytes > 0:
        filled = max(1, round(width * size_bytes / largest))
    filled = min(filled, width)
    return "█" * filled + "░" * (width - filled)


def _bar_color(fraction: float) -> str:
    if fraction >= 0.5:
        return "red"
    elif fraction >= 0.2:
        return "yellow"
    return "green"


def visible_window(cursor: int, count: int, rows: int) -> tuple[int, int]:
    """First and one-past-last row index to draw so the cursor is visible."""
    if rows <= 0 or count <= 0:
        return 0, 0
    start = 0
    if cursor >= rows:
        start = cursor - rows + 1
    start = max(0, min(start, max(count - rows, 0)))
    return start, min(start + rows, count)


class Renderer:
    """Draws NavigatorState as a full-screen text frame."""

    def __init__(self, config: Optional[ExplorerConfig] = None):
        self.config = config or ExplorerConfig()

    def render(self, state: NavigatorState, width: int = 80, height: int = 24) -> str:
        """
        Render one frame.

        Args:
            state: Navigator state to draw
            width: Terminal columns
            height: Terminal rows

        Returns:
            Frame as rich markup, one line per terminal row at most
        """
        width = max(width, 20)
        height = max(height, HEADER_LINES + FOOTER_LINES + 1)
        body_rows = height - HEADER_LINES - FOOTER_LINES

        lines = self._header(state, width)

        if state.mode is Mode.CONFIRMING_DELETION:
            body = self._confirmation(state, width, body_rows)
        elif state.mode is Mode.ERROR:
            body = self._error(state, width)
        elif not state.entries and state.scanning:
            body = [self._progress_line(state, width)]
        elif not state.entries:
            body = ["[dim]Empty directory[/dim]"]
        elif state.show_large_files:
            entry_rows = max(body_rows // 2, 1)
            body = self._entry_rows(state, width, entry_rows)
            body.extend(self._large_files(state, width, body_rows - len(body)))
        else:
            body = self._entry_rows(state, width, body_rows)

        body = body[:body_rows]
        body.extend([""] * (body_rows - len(body)))
        lines.extend(body)
        lines.extend(self._footer(state, width))
        return "\n".join(lines)

    # ------------------------------------------------------------------

    def _header(self, state: NavigatorState, width: int) -> list[str]:
        title = "diskdive "
        path = truncate_path(state.current_path, width - len(title))
        summary = [f"Total {format_size(state.total_bytes)}", f"{len(state.entries)} items"]
        if state.error_count:
            summary.append(f"[yellow]{state.error_count} unreadable[/yellow]")
        if state.multi_selected:
            summary.append(
                f"[cyan]{len(state.multi_selected)} selected"
                f" ({format_size(state.selected_bytes)} here)[/cyan]"
            )
        if state.scanning and state.entries:
            summary.append(f"[blue]{self._spinner(state)} scanning[/blue]")
        if state.dry_run:
            summary.append("[yellow]DRY RUN[/yellow]")
        return [
            f"[bold]{title}[/bold]{escape(path)}",
            " · ".join(summary),
            "─" * width,
        ]

    def _footer(self, state: NavigatorState, width: int) -> list[str]:
        message = ""
        if state.mode is Mode.DELETING:
            message = f"{self._spinner(state)} {state.message or 'Deleting...'}"
        elif state.message:
            message = state.message
        return [
            "─" * width,
            escape(truncate_text(message, width)),
            f"[dim]{escape(truncate_text(KEY_HELP[state.mode], width))}[/dim]",
        ]

    def _spinner(self, state: NavigatorState) -> str:
        return SPINNER_FRAMES[state.tick % len(SPINNER_FRAMES)]

    def _progress_line(self, state: NavigatorState, width: int) -> str:
        completed, total = state.progress
        counter = f" {completed}/{total}" if total else ""
        name = os.path.basename(state.current_path) or state.current_path
        text = truncate_text(f"Scanning {name}...{counter}", width - 2)
        return f"[blue]{self._spinner(state)}[/blue] {escape(text)}"

    def _error(self, state: NavigatorState, width: int) -> list[str]:
        return [
            f"[red]{escape(truncate_text('Cannot read this directory', width))}[/red]",
            escape(truncate_text(state.error or "", width)),
            "",
            "[dim]Go back with ← or retry with r[/dim]",
        ]

    def _entry_rows(self, state: NavigatorState, width: int, rows: int) -> list[str]:
        largest = max((e.size_bytes for e in state.entries), default=0)
        bar_width = min(self.config.bar_width, max(width - 50, 4))
        # cursor(1) mark(1) space flag(1) space name space size(10) space pct(6) space bar
        fixed = 1 + 1 + 1 + 1 + 1 + 1 + 10 + 1 + 6 + 1 + bar_width
        name_width = max(width - fixed, 8)

        start, end = visible_window(state.cursor_index, len(state.entries), rows)
        return [
            self._entry_row(state, index, entry, largest, name_width, bar_width)
            for index, entry in enumerate(state.entries[start:end], start)
        ]

    def _entry_row(
        self,
        state: NavigatorState,
        index: int,
        entry: Entry,
        largest: int,
        name_width: int,
        bar_width: int,
    ) -> str:
        at_cursor = index == state.cursor_index
        cursor = "▶" if at_cursor else " "
        mark = "✓" if entry.path in state.multi_selected else " "
        if entry.protected:
            flag = "[dim]P[/dim]"
        elif entry.cleanable:
            flag = "[green]*[/green]"
        else:
            flag = " "

        label = entry.name
        if entry.is_symlink:
            label += "@"
        elif entry.is_dir:
            label += "/"
        name = escape(set_cell_size(truncate_text(label, name_width), name_width))
        if entry.is_dir and not entry.is_symlink:
            name = f"[bold]{name}[/bold]"

        if entry.size_known:
            size = f"{entry.size_human:>10}"
            fraction = entry.size_bytes / state.total_bytes if state.total_bytes else 0.0
            pct = f"{fraction * 100:5.1f}%"
            color = _bar_color(entry.size_bytes / largest if largest else 0.0)
            bar = f"[{color}]{size_bar(entry.size_bytes, largest, bar_width)}[/{color}]"
        else:
            size = f"{'...':>10}"
            pct = " " * 6
            bar = "[dim]" + "░" * bar_width + "[/dim]"

        row = f"{cursor}{mark} {flag} {name} {size} {pct} {bar}"
        if at_cursor:
            return f"[reverse]{row}[/reverse]"
        return row

    def _large_files(self, state: NavigatorState, width: int, rows: int) -> list[str]:
        if rows <= 0:
            return []
        lines = ["", "[bold]Largest files[/bold]"]
        if not state.large_files:
            threshold = format_size(self.config.large_file_threshold)
            lines.append(f"[dim]No files larger than {threshold}[/dim]")
            return lines
        for record in state.large_files[: max(rows - 2, 0)]:
            path = record.path
            if path.startswith(state.current_path + os.sep):
                path = path[len(state.current_path) + 1:]
            shown = truncate_path(path, width - 12)
            lines.append(f"{record.size_human:>10}  {escape(shown)}")
        return lines

    def _confirmation(self, state: NavigatorState, width: int, rows: int) -> list[str]:
        pending = sorted(state.pending_deletion)
        known = {e.path: e for e in state.entries}
        total = sum(known[p].size_bytes for p in pending if p in known)
        verb = "Simulate deleting" if state.dry_run else "Permanently delete"
        lines = [f"[bold red]{verb} {len(pending)} item(s)?[/bold red]", ""]
        shown = pending[: min(MAX_PROMPT_PATHS, max(rows - 4, 1))]
        for path in shown:
            lines.append(f"  {escape(truncate_path(path, width - 2))}")
        if len(pending) > len(shown):
            lines.append(f"  [dim]...and {len(pending) - len(shown)} more[/dim]")
        lines.append("")
        lines.append(f"Size in this directory: [bold]{format_size(total)}[/bold]   [bold]y[/bold]es / [bold]n[/bold]o")
        return lines
