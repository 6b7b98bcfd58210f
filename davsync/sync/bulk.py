"""Bulk sync of a whole local tree or subtree."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..exceptions import DavSyncConfigError, DavSyncConnectionError
from ..models import BatchSummary, SyncAction
from ..output import OutputFormatter
from .context import SyncContext
from .operations import SyncOperations
from .paths import PathLike, is_hidden, is_inside
from .progress import SyncProgressTracker
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)


class BulkSyncCoordinator:
    """Uploads every non-hidden file below a directory, one file at a time.

    The file list is collected completely before the first upload so the
    total is known. Before each file the cancellation event and the
    connection are checked; a failing file is counted and skipped.
    """

    def __init__(
        self,
        context: SyncContext,
        operations: SyncOperations,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize bulk sync coordinator.

        Args:
            context: Shared sync context
            operations: Sync operations used for each file
            output: Output formatter for the terminal report
        """
        self.context = context
        self.operations = operations
        self.output = output or OutputFormatter()

    def collect_files(self, root: Path) -> list[Path]:
        """Enumerate all non-hidden files below ``root``."""
        return DirectoryScanner(root, self.context.path_config).scan()

    def _require_connection(self) -> None:
        if not self.context.connected:
            raise DavSyncConnectionError("Not connected to the WebDAV server")

    async def sync_subtree(
        self,
        root: PathLike,
        cancel: Optional[asyncio.Event] = None,
        tracker: Optional[SyncProgressTracker] = None,
    ) -> BatchSummary:
        """Sync every file below ``root``.

        Args:
            root: Local directory
            cancel: Optional event; once set, no further file is started
            tracker: Optional progress tracker

        Returns:
            BatchSummary with processed/total counts
        """
        root = Path(root)
        tracker = tracker or SyncProgressTracker()

        files = await asyncio.to_thread(self.collect_files, root)
        summary = BatchSummary(total=len(files))
        tracker.start(summary.total)
        logger.info(f"Starting sync of {summary.total} file(s) under {root}")

        for file_path in files:
            if cancel is not None and cancel.is_set():
                summary.cancelled = True
                logger.info("Sync cancelled")
                break

            client = self.context.client
            if client is None:
                summary.disconnected = True
                logger.warning("Connection lost, stopping sync")
                break

            result = await self.operations.execute(
                client,
                self.context.path_config,
                file_path,
                SyncAction.MODIFY,
                notify=False,
                progress_callback=lambda loaded, total, path=file_path: (
                    tracker.file_progress(path, loaded, total)
                ),
            )
            if result.ok:
                summary.processed += 1
            else:
                summary.failed.append(file_path)
            tracker.file_complete(file_path, result.ok)

        tracker.finish()
        message = summary.to_text_summary()
        logger.info(message)
        if summary.failed or summary.stopped_early:
            self.output.warning(message)
        else:
            self.output.success(message)
        return summary

    async def sync_all(
        self,
        cancel: Optional[asyncio.Event] = None,
        tracker: Optional[SyncProgressTracker] = None,
    ) -> BatchSummary:
        """Sync the whole local base path.

        Raises:
            DavSyncConfigError: If no local base path is configured or it is
                not an existing directory
            DavSyncConnectionError: If not connected
        """
        local_base = self.context.path_config.local_base_path
        if not local_base:
            raise DavSyncConfigError("Please open a workspace folder to sync")
        if not Path(local_base).is_dir():
            raise DavSyncConfigError(
                f"Local directory {local_base} does not exist or is not a directory"
            )
        self._require_connection()
        return await self.sync_subtree(Path(local_base), cancel=cancel, tracker=tracker)

    async def sync_path(
        self,
        local_path: PathLike,
        cancel: Optional[asyncio.Event] = None,
        tracker: Optional[SyncProgressTracker] = None,
    ) -> BatchSummary:
        """Sync a single file, or a directory as a subtree.

        A single file is synced with user notification; a directory is
        reported once it is done.

        Raises:
            DavSyncConfigError: If the path is outside the local base path
            DavSyncConnectionError: If not connected
            FileNotFoundError: If the path does not exist
        """
        local_path = Path(local_path)
        self._require_connection()

        if not is_inside(local_path, self.context.path_config):
            raise DavSyncConfigError(
                f"{local_path} is outside the synced directory "
                f"{self.context.path_config.local_base_path}"
            )

        if local_path.is_dir():
            summary = await self.sync_subtree(local_path, cancel=cancel, tracker=tracker)
            if not summary.stopped_early:
                self.output.success(f"Directory synced: {local_path}")
            return summary

        if not local_path.exists():
            raise FileNotFoundError(f"No such file or directory: {local_path}")

        if is_hidden(local_path, self.context.path_config):
            self.output.warning(f"Skipping hidden file: {local_path}")
            return BatchSummary(total=0)

        result = await self.operations.execute(
            self.context.client,
            self.context.path_config,
            local_path,
            SyncAction.MODIFY,
            notify=True,
        )
        summary = BatchSummary(total=1, processed=1 if result.ok else 0)
        if not result.ok:
            summary.failed.append(local_path)
        return summary
