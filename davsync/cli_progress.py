"""CLI progress display for bulk sync.

This module provides a Rich-based progress display that works with
the SyncProgressTracker from the sync engine.
"""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker


def _format_size(size_bytes: int) -> str:
    """Format bytes to human-readable size.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 MB")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


class BulkProgressDisplay:
    """Rich-based progress display for a bulk sync.

    The bar counts files; the trailing column shows the file being
    uploaded and how many bytes of it have been sent.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display."""
        self._console = console
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display.

        Returns:
            A configured SyncProgressTracker
        """
        return SyncProgressTracker(callback=self._handle_event)

    @staticmethod
    def _format_file_info(info: SyncProgressInfo) -> str:
        if info.current_file is None:
            return ""
        name = info.current_file.name
        if info.bytes_total:
            loaded = _format_size(info.bytes_loaded)
            total = _format_size(info.bytes_total)
            return f"{name} ({loaded}/{total})"
        return name

    def _handle_event(self, info: SyncProgressInfo) -> None:
        """Handle a progress event from the tracker.

        Args:
            info: Progress information
        """
        if self._progress is None or self._task is None:
            return

        if info.event == SyncProgressEvent.BATCH_START:
            self._progress.update(
                self._task,
                description="Syncing",
                total=info.files_total,
                completed=0,
                file_info="",
            )

        elif info.event == SyncProgressEvent.FILE_PROGRESS:
            self._progress.update(self._task, file_info=self._format_file_info(info))

        elif info.event == SyncProgressEvent.FILE_COMPLETE:
            self._progress.update(
                self._task,
                completed=info.files_done,
                file_info=self._format_file_info(info),
            )

        elif info.event == SyncProgressEvent.BATCH_COMPLETE:
            self._progress.update(self._task, completed=info.files_done, file_info="")

    def __enter__(self) -> "BulkProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[file_info]}"),
            TimeElapsedColumn(),
            console=self._console,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            "Collecting files...", total=None, file_info=""
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            if self._task is not None:
                self._progress.update(self._task, description="Sync finished")
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
