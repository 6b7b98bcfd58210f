"""Progress events emitted by bulk sync.

The engine only emits :class:`SyncProgressInfo` events through a
:class:`SyncProgressTracker`; rendering is left to the caller (see
``davsync.cli_progress``).
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional


class SyncProgressEvent(str, Enum):
    """Kinds of progress events."""

    BATCH_START = "batch_start"
    """File list collected, total known"""

    FILE_PROGRESS = "file_progress"
    """Bytes transferred for the current file"""

    FILE_COMPLETE = "file_complete"
    """A file finished (successfully or not)"""

    BATCH_COMPLETE = "batch_complete"
    """Batch finished or stopped early"""


@dataclass
class SyncProgressInfo:
    """Snapshot of bulk sync progress."""

    event: SyncProgressEvent
    files_total: int = 0
    files_done: int = 0
    files_processed: int = 0
    """Files synced successfully so far"""

    current_file: Optional[Path] = None
    ok: bool = True
    bytes_loaded: int = 0
    bytes_total: int = 0


ProgressHandler = Callable[[SyncProgressInfo], None]


class SyncProgressTracker:
    """Keeps counters for one batch and forwards events to a callback."""

    def __init__(self, callback: Optional[ProgressHandler] = None):
        self.callback = callback
        self.files_total = 0
        self.files_done = 0
        self.files_processed = 0

    def _emit(self, info: SyncProgressInfo) -> None:
        if self.callback is not None:
            self.callback(info)

    def _info(self, event: SyncProgressEvent, **kwargs) -> SyncProgressInfo:
        return SyncProgressInfo(
            event=event,
            files_total=self.files_total,
            files_done=self.files_done,
            files_processed=self.files_processed,
            **kwargs,
        )

    def start(self, total: int) -> None:
        self.files_total = total
        self.files_done = 0
        self.files_processed = 0
        self._emit(self._info(SyncProgressEvent.BATCH_START))

    def file_progress(self, path: Path, loaded: int, total: int) -> None:
        self._emit(
            self._info(
                SyncProgressEvent.FILE_PROGRESS,
                current_file=path,
                bytes_loaded=loaded,
                bytes_total=total,
            )
        )

    def file_complete(self, path: Path, ok: bool) -> None:
        self.files_done += 1
        if ok:
            self.files_processed += 1
        self._emit(self._info(SyncProgressEvent.FILE_COMPLETE, current_file=path, ok=ok))

    def finish(self) -> None:
        self._emit(self._info(SyncProgressEvent.BATCH_COMPLETE))
