"""Sync engine for davsync - mirror a local tree onto a WebDAV server."""

from .bulk import BulkSyncCoordinator
from .context import SyncContext
from .events import EventSyncController, WatchSource
from .operations import SyncOperations
from .paths import is_hidden, map_remote_path
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .scanner import DirectoryScanner, LocalEntry, exclude_hidden, walk_entries
from .state import RunStateStore, SyncStateController

__all__ = [
    "BulkSyncCoordinator",
    "DirectoryScanner",
    "EventSyncController",
    "LocalEntry",
    "RunStateStore",
    "SyncContext",
    "SyncOperations",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "SyncProgressTracker",
    "SyncStateController",
    "WatchSource",
    "exclude_hidden",
    "is_hidden",
    "map_remote_path",
    "walk_entries",
]
