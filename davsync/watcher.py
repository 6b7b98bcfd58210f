"""Watchdog-based watch source delivering events on the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .models import FileEventKind
from .sync.events import WatchCallback
from .sync.scanner import only_files, walk_entries

logger = logging.getLogger(__name__)


class _ForwardingHandler(FileSystemEventHandler):
    """Hands watchdog events from the observer thread to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, callback: WatchCallback):
        self.loop = loop
        self.callback = callback

    def _forward(self, kind: FileEventKind, path, is_directory: bool) -> None:
        self.loop.call_soon_threadsafe(
            self.callback, kind, os.fsdecode(path), is_directory
        )

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(FileEventKind.CREATED, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(FileEventKind.CHANGED, event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(FileEventKind.DELETED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        # A rename is a delete of the old path plus a create of the new one
        self._forward(FileEventKind.DELETED, event.src_path, event.is_directory)
        dest_path = os.fsdecode(event.dest_path)
        if not event.is_directory:
            self._forward(FileEventKind.CREATED, dest_path, False)
            return
        for path in only_files(walk_entries(Path(dest_path))):
            self._forward(FileEventKind.CREATED, str(path), False)


class FileWatcher:
    """Recursive watch over one directory tree.

    Examples:
        >>> watcher = FileWatcher()
        >>> watcher.start("/home/user/project", controller.on_watch_event)
        >>> watcher.stop()
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Initialize watcher.

        Args:
            loop: Event loop receiving the events (defaults to the running loop)
        """
        self._loop = loop
        self._observer: Optional[Observer] = None
        self.root: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self, root: str, callback: WatchCallback) -> None:
        self.stop()
        loop = self._loop or asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_ForwardingHandler(loop, callback), root, recursive=True)
        observer.start()
        self._observer = observer
        self.root = root
        logger.info(f"Watching {root}")

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.debug(f"Stopped watching {self.root}")
        self.root = None
