"""Custom widgets for the diskdive TUI."""

from rich.text import Text
from textual import events
from textual.widgets import Static

from diskdive.render import FOOTER_LINES, HEADER_LINES, Renderer
from diskdive.session import ExplorerSession


class ExplorerView(Static):
    """Full-screen explorer frame drawn from the navigator state."""

    def __init__(self, session: ExplorerSession, renderer: Renderer, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = session
        self.renderer = renderer

    @property
    def list_rows(self) -> int:
        """Rows available for the entry list."""
        return max(self.size.height - HEADER_LINES - FOOTER_LINES, 1)

    def on_resize(self, event: events.Resize) -> None:
        """Recompute paging and bar widths; a resize never rescans."""
        self.session.navigator.page_size = max(self.list_rows - 1, 1)
        self.refresh()

    def render(self) -> Text:
        """Render the current frame."""
        frame = self.renderer.render(
            self.session.state,
            width=self.size.width or 80,
            height=self.size.height or 24,
        )
        return Text.from_markup(frame)
