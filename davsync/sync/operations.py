"""The atomic sync operation: one local path, one action, one remote call chain."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from ..api import WebDAVClient
from ..exceptions import DavSyncConnectionError, DavSyncError, DavSyncUploadError
from ..models import PathConfig, SyncAction, SyncResult
from ..output import OutputFormatter
from .paths import PathLike, map_remote_path, relative_display_path, remote_parent

logger = logging.getLogger(__name__)


class SyncOperations:
    """Realizes create/modify/delete of a local path against the remote store."""

    def __init__(self, output: Optional[OutputFormatter] = None):
        """Initialize sync operations.

        Args:
            output: Output formatter for user notifications
        """
        self.output = output or OutputFormatter()

    async def ensure_remote_directory(self, client: WebDAVClient, remote_dir: str) -> None:
        """Create a remote directory and its ancestors if it does not exist.

        Two concurrent calls may both see the directory missing and both
        create it; the client treats "already exists" as success.

        Raises:
            DavSyncError: If the probe or the creation fails
        """
        try:
            if not await client.exists(remote_dir):
                await client.create_directory(remote_dir, recursive=True)
        except DavSyncError as e:
            logger.warning(f"Failed to create remote directory {remote_dir}: {e}")
            raise

    async def _read_local(self, local_path: Path) -> bytes:
        try:
            return await asyncio.to_thread(local_path.read_bytes)
        except OSError as e:
            raise DavSyncUploadError(f"Cannot read {local_path}: {e}") from e

    async def execute(
        self,
        client: Optional[WebDAVClient],
        path_config: PathConfig,
        local_path: PathLike,
        action: SyncAction,
        notify: bool = True,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> SyncResult:
        """Apply one action for one local path to the remote store.

        Failures are logged, reported when ``notify`` is set, and returned
        in the result; they never propagate to the caller.

        Args:
            client: Connected WebDAV client (None when disconnected)
            path_config: Path configuration for the remote path mapping
            local_path: Local absolute path
            action: Create/modify upload the file, delete removes it remotely
            notify: Show success/failure messages to the user
            progress_callback: Optional callback function(bytes_uploaded, total_bytes)

        Returns:
            SyncResult, with ``error`` set on failure
        """
        local_path = Path(local_path)
        remote_path = map_remote_path(local_path, path_config)
        result = SyncResult(local_path=local_path, remote_path=remote_path, action=action)
        display_path = relative_display_path(local_path, path_config)

        logger.info(f"Syncing {local_path} -> {remote_path} ({action.value})")

        def on_progress(loaded: int, total: int) -> None:
            logger.debug(f"Upload progress {remote_path}: {loaded}/{total}")
            if progress_callback:
                progress_callback(loaded, total)

        try:
            if client is None:
                raise DavSyncConnectionError("Not connected to the WebDAV server")

            if action.is_upload:
                await self.ensure_remote_directory(client, remote_parent(remote_path))
                content = await self._read_local(local_path)
                await client.put_file_contents(
                    remote_path, content, overwrite=True, on_progress=on_progress
                )
                if notify:
                    self.output.success(f"File synced: {display_path}")
            else:
                await client.delete_file(remote_path)
                if notify:
                    self.output.success(f"File deleted: {display_path}")

        except Exception as e:
            result.error = e
            logger.error(f"Sync failed for {local_path} ({action.value}): {e}")
            if notify:
                self.output.error(f"Sync failed: {display_path}: {e}")

        return result
