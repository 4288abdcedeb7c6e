"""Terminal interface for diskdive."""

from diskdive.tui.app import ExplorerApp, run_explorer

__all__ = ["ExplorerApp", "run_explorer"]
