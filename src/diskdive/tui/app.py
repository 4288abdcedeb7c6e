"""Main TUI application for diskdive."""

from typing import Optional

from textual import events
from textual.app import App, ComposeResult
from textual.message import Message

from diskdive.config import ExplorerConfig
from diskdive.models import Mode
from diskdive.navigator import action_for_key
from diskdive.render import Renderer
from diskdive.session import ExplorerSession
from diskdive.tui.widgets import ExplorerView

SPINNER_INTERVAL = 0.1


class BackgroundWakeup(Message):
    """Posted from worker threads when a scan or deletion reports back."""


class ExplorerApp(App):
    """Interactive disk-usage explorer."""

    TITLE = "diskdive"
    SUB_TITLE = "Interactive disk usage explorer"

    CSS = """
    ExplorerView {
        height: 1fr;
        width: 1fr;
    }
    """

    def __init__(self, root: str, config: Optional[ExplorerConfig] = None):
        super().__init__()
        self.config = config or ExplorerConfig()
        # post_message is thread-safe, so workers can wake the app directly
        self.session = ExplorerSession(root, self.config, wakeup=self._wake)
        self.renderer = Renderer(self.config)

    def compose(self) -> ComposeResult:
        yield ExplorerView(self.session, self.renderer, id="explorer")

    def on_mount(self) -> None:
        """Called when the app is mounted."""
        self.session.start()
        self.set_interval(SPINNER_INTERVAL, self._tick)
        self._redraw()

    def on_unmount(self) -> None:
        """Stop background work without waiting on it."""
        self.session.close(wait=False)

    def on_key(self, event: events.Key) -> None:
        """Translate key presses into navigator actions."""
        action = action_for_key(event.key)
        if action is None:
            return
        event.stop()
        event.prevent_default()
        self.session.dispatch(action)
        if self.session.quitting:
            self.exit()
            return
        self._redraw()

    def on_background_wakeup(self, message: BackgroundWakeup) -> None:
        """Apply finished background work."""
        if self.session.process_events():
            self._redraw()

    def _wake(self) -> None:
        self.post_message(BackgroundWakeup())

    def _tick(self) -> None:
        state = self.session.state
        if state.scanning or state.mode is Mode.DELETING:
            self.session.navigator.advance_spinner()
            self._redraw()

    def _redraw(self) -> None:
        self.query_one("#explorer", ExplorerView).refresh()


def run_explorer(root: str, config: Optional[ExplorerConfig] = None) -> None:
    """Run the interactive explorer.

    Args:
        root: Directory to start in; never navigated above
        config: Explorer configuration
    """
    app = ExplorerApp(root, config=config)
    app.run()
