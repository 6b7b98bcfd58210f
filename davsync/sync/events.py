"""Event-driven sync: one SyncOperation per local file-system notification."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Callable, Optional, Protocol, Union

from ..models import FileEventKind, SyncAction, SyncResult
from .context import SyncContext
from .operations import SyncOperations
from .paths import PathLike, is_hidden, map_remote_path

logger = logging.getLogger(__name__)

WatchCallback = Callable[[FileEventKind, str, bool], None]


class WatchSource(Protocol):
    """Something that delivers file-system notifications for a directory tree."""

    def start(self, root: str, callback: WatchCallback) -> None: ...

    def stop(self) -> None: ...


class EventSyncController:
    """Dispatches a SyncOperation for each relevant file-system event.

    Dispatches run as independent asyncio tasks. Without
    ``serialize_per_path`` nothing orders them: two quick edits of the same
    file race, and whichever upload finishes last wins. With
    ``serialize_per_path`` operations on the same remote path run one
    after another in dispatch order.
    """

    def __init__(
        self,
        context: SyncContext,
        operations: SyncOperations,
        serialize_per_path: bool = False,
    ):
        self.context = context
        self.operations = operations
        self.serialize_per_path = serialize_per_path
        self._source: Optional[WatchSource] = None
        self._tasks: set[asyncio.Task] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: defaultdict[str, int] = defaultdict(int)

    @property
    def subscribed(self) -> bool:
        return self._source is not None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def subscribe(self, source: WatchSource) -> None:
        """Start receiving events for the configured local base path."""
        self.unsubscribe()
        root = self.context.path_config.local_base_path
        source.start(root, self.on_watch_event)
        self._source = source
        logger.debug(f"Subscribed to file events under {root}")

    def unsubscribe(self) -> None:
        if self._source is not None:
            self._source.stop()
            self._source = None

    def on_watch_event(
        self,
        kind: Union[FileEventKind, str],
        local_path: str,
        is_directory: bool = False,
    ) -> Optional[asyncio.Task]:
        """Callback for watch sources.

        Directory creation and modification are ignored; a deleted
        directory is removed remotely like a file.
        """
        kind = FileEventKind(kind)
        if is_directory and kind is not FileEventKind.DELETED:
            return None
        return self.handle_event(kind, local_path)

    def should_dispatch(self, local_path: PathLike) -> bool:
        path_config = self.context.path_config
        if not path_config.is_complete():
            return False
        if is_hidden(local_path, path_config):
            return False
        if self.context.paused:
            logger.debug(f"Sync paused, ignoring event for {local_path}")
            return False
        if not self.context.connected:
            logger.debug(f"Not connected, ignoring event for {local_path}")
            return False
        return True

    def handle_event(
        self, kind: Union[FileEventKind, str], local_path: PathLike
    ) -> Optional[asyncio.Task]:
        """Dispatch a SyncOperation for an event.

        Must be called from the event loop thread.

        Returns:
            The dispatched task, or None when the event was short-circuited
        """
        kind = FileEventKind(kind)
        if not self.should_dispatch(local_path):
            return None

        task = asyncio.get_running_loop().create_task(
            self._dispatch(local_path, kind.action)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _dispatch(self, local_path: PathLike, action: SyncAction) -> SyncResult:
        if not self.serialize_per_path:
            return await self.operations.execute(
                self.context.client,
                self.context.path_config,
                local_path,
                action,
                notify=True,
            )

        remote_path = map_remote_path(local_path, self.context.path_config)
        lock = self._locks.setdefault(remote_path, asyncio.Lock())
        self._waiting[remote_path] += 1
        try:
            async with lock:
                return await self.operations.execute(
                    self.context.client,
                    self.context.path_config,
                    local_path,
                    action,
                    notify=True,
                )
        finally:
            self._waiting[remote_path] -= 1
            if self._waiting[remote_path] == 0:
                del self._waiting[remote_path]
                self._locks.pop(remote_path, None)

    async def drain(self) -> None:
        """Wait until every dispatched operation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
