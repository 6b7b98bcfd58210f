"""Console output for davsync commands and notifications."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console

from .models import SyncStatus

STATUS_STYLES: dict[SyncStatus, tuple[str, str]] = {
    SyncStatus.DISCONNECTED: ("red", "WebDAV: disconnected"),
    SyncStatus.PAUSED: ("yellow", "WebDAV: paused"),
    SyncStatus.RUNNING: ("green", "WebDAV: syncing"),
}


class OutputFormatter:
    """Formats user-facing messages.

    Info and success messages are suppressed in quiet mode; warnings and
    errors are always shown and go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def print(self, message: Any = "") -> None:
        if not self.quiet:
            self.console.print(message)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message, highlight=False)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {message}", highlight=False)

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {message}", highlight=False)

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data, default=str))

    def status(self, status: SyncStatus) -> None:
        """Render the persistent status indicator."""
        if self.json_output:
            self.output_json({"status": status.value})
            return
        style, label = STATUS_STYLES[status]
        self.console.print(f"[{style}]●[/{style}] {label}", highlight=False)
