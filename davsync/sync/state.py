"""Paused/running state and reaction to configuration changes.

The run flag is persisted per workspace, so a restarted watcher comes
back in the state it was left in. The default for a new workspace is
paused.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Callable, Optional

from ..config import CONNECTION_KEYS, PATH_KEYS, Config, default_config_dir
from ..connection import ConnectionManager
from ..exceptions import DavSyncConfigError, DavSyncConnectionError
from ..models import ConnectionState, PathConfig, SyncStatus
from ..output import OutputFormatter
from .bulk import BulkSyncCoordinator
from .context import SyncContext
from .events import EventSyncController, WatchSource
from .operations import SyncOperations

logger = logging.getLogger(__name__)

RUN_STATE_KEY = "davsync.syncRunning"

StatusListener = Callable[[SyncStatus], None]


class RunStateStore:
    """Persists the paused/running flag of one workspace.

    The state is stored in a JSON file in the user's config directory,
    keyed by a hash of the workspace root.
    """

    def __init__(self, workspace_root: Path, state_dir: Optional[Path] = None):
        """Initialize run state store.

        Args:
            workspace_root: Workspace the flag belongs to
            state_dir: Directory to store state files. Defaults to
                      ~/.config/davsync/state/
        """
        if state_dir is None:
            state_dir = default_config_dir() / "state"
        self.state_dir = state_dir
        self.workspace_root = Path(workspace_root)

    def _get_state_key(self) -> str:
        """Generate a unique key for the workspace.

        Returns:
            Hash-based key for the workspace
        """
        workspace_abs = str(self.workspace_root.resolve())
        return hashlib.sha256(workspace_abs.encode()).hexdigest()[:16]

    @property
    def state_file(self) -> Path:
        return self.state_dir / f"{self._get_state_key()}.json"

    def load_running(self) -> bool:
        """Load the persisted flag; False (paused) if none was stored."""
        if not self.state_file.exists():
            logger.debug(f"No run state found at {self.state_file}")
            return False

        try:
            with open(self.state_file, encoding="utf-8") as f:
                data = json.load(f)
            return bool(data.get(RUN_STATE_KEY, False))
        except (json.JSONDecodeError, OSError, AttributeError) as e:
            logger.warning(f"Failed to load run state: {e}")
            return False

    def save_running(self, running: bool) -> None:
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(self.state_file, "w", encoding="utf-8") as f:
                json.dump(
                    {RUN_STATE_KEY: running, "workspace": str(self.workspace_root)},
                    f,
                    indent=2,
                )
            logger.debug(f"Saved run state running={running} to {self.state_file}")
        except OSError as e:
            logger.warning(f"Failed to save run state: {e}")


class SyncStateController:
    """Owns the sync context and wires the sync components together.

    It is the only writer of the path configuration, the paused flag and
    (through the connection manager) the client handle.
    """

    def __init__(
        self,
        config: Config,
        workspace_root: Path,
        store: Optional[RunStateStore] = None,
        connection: Optional[ConnectionManager] = None,
        output: Optional[OutputFormatter] = None,
        serialize_per_path: bool = False,
    ):
        """Initialize sync state controller.

        Args:
            config: Settings source
            workspace_root: Workspace root (resolves ``${workspaceFolder}``)
            store: Persisted run state (defaults to one per workspace)
            connection: Connection manager (defaults to one reading ``config``)
            output: Output formatter for user-facing messages
            serialize_per_path: Serialize event dispatches per remote path
        """
        self.config = config
        self.workspace_root = Path(workspace_root)
        self.output = output or OutputFormatter()
        self.store = store or RunStateStore(self.workspace_root)
        self.connection = connection or ConnectionManager(
            settings_provider=config.connection_settings, output=self.output
        )
        self.context = SyncContext(
            connection=self.connection, paused=not self.store.load_running()
        )
        self.operations = SyncOperations(self.output)
        self.events = EventSyncController(
            self.context, self.operations, serialize_per_path=serialize_per_path
        )
        self.bulk = BulkSyncCoordinator(self.context, self.operations, self.output)

        self._watch_source: Optional[WatchSource] = None
        self._status_listeners: list[StatusListener] = []
        self._last_status: Optional[SyncStatus] = None
        self._unsubscribe_config: Optional[Callable[[], None]] = None
        self._pending: set[asyncio.Task] = set()
        self._connect_attempted = False

        self.connection.on_change(self._on_connection_change)

    # =========================
    # Status
    # =========================

    @property
    def paused(self) -> bool:
        return self.context.paused

    @property
    def status(self) -> SyncStatus:
        if not self.context.connected:
            return SyncStatus.DISCONNECTED
        if self.context.paused:
            return SyncStatus.PAUSED
        return SyncStatus.RUNNING

    def on_status_change(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def _publish_status(self) -> None:
        status = self.status
        if status == self._last_status:
            return
        self._last_status = status
        for listener in list(self._status_listeners):
            listener(status)

    def _on_connection_change(self, state: ConnectionState) -> None:
        self._publish_status()

    # =========================
    # Lifecycle
    # =========================

    def load_path_config(self) -> bool:
        """Re-derive the path configuration from the settings.

        Returns:
            False (and reports the problem) if the settings are incomplete
        """
        try:
            self.context.path_config = self.config.path_config(self.workspace_root)
        except DavSyncConfigError as e:
            logger.warning(f"Invalid configuration: {e}")
            self.output.error(str(e))
            self.context.path_config = PathConfig("", "")
            return False
        return True

    async def start(self, watch_source: Optional[WatchSource] = None) -> bool:
        """Load settings, connect and start observing file events.

        Configuration changes are observed even when the settings are
        incomplete, so fixing them later brings synchronization up.

        Returns:
            True if connected and ready to sync
        """
        self._watch_source = watch_source
        if self._unsubscribe_config is None:
            self._unsubscribe_config = self.config.on_change(self._on_config_change)

        if not self.load_path_config():
            self._publish_status()
            return False

        await self.connection.reconnect()
        self._connect_attempted = True
        self._rebuild_subscription()
        self._publish_status()
        return self.context.connected

    async def stop(self) -> None:
        """Stop observing, wait for in-flight operations and disconnect."""
        if self._unsubscribe_config is not None:
            self._unsubscribe_config()
            self._unsubscribe_config = None
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._watch_source = None
        self.events.unsubscribe()
        await self.events.drain()
        await self.connection.disconnect()

    def _rebuild_subscription(self) -> None:
        if self._watch_source is None:
            return
        self.events.unsubscribe()
        if not self.context.path_config.is_complete():
            return
        try:
            self.events.subscribe(self._watch_source)
        except OSError as e:
            root = self.context.path_config.local_base_path
            logger.error(f"Cannot watch {root}: {e}")
            self.output.error(f"Cannot watch {root}: {e}")

    # =========================
    # Commands
    # =========================

    async def reconnect(self) -> bool:
        """Reconnect with the current settings."""
        state = await self.connection.reconnect()
        self._connect_attempted = True
        self._publish_status()
        if state.connected:
            self.output.success("Connected to WebDAV server")
        return state.connected

    def pause(self) -> None:
        self.context.paused = True
        self.store.save_running(False)
        logger.info("Sync paused")
        self._publish_status()

    def resume(self) -> None:
        """Resume event-driven sync.

        Raises:
            DavSyncConnectionError: If not connected
        """
        if not self.context.connected:
            logger.warning("Cannot resume sync while disconnected")
            raise DavSyncConnectionError(
                "Cannot resume sync: not connected to the WebDAV server"
            )
        self.context.paused = False
        self.store.save_running(True)
        logger.info("Sync resumed")
        self._publish_status()

    def reload_run_state(self) -> None:
        """Pick up a run flag persisted by another process."""
        paused = not self.store.load_running()
        if paused != self.context.paused:
            self.context.paused = paused
            logger.info("Sync paused" if paused else "Sync resumed")
            self._publish_status()

    # =========================
    # Configuration changes
    # =========================

    def _on_config_change(self, changed: set[str]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Configuration changed outside the event loop, ignoring")
            return
        task = loop.create_task(self.apply_config_change(changed))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def apply_config_change(self, changed: set[str]) -> None:
        """React to changed settings.

        Path settings re-derive the path configuration; connection
        settings also trigger a reconnect, as does the first valid
        configuration after a start that was refused. In every case the
        event subscription is rebuilt.
        """
        relevant = changed & (CONNECTION_KEYS | PATH_KEYS)
        if not relevant:
            return
        logger.info(f"Configuration changed: {', '.join(sorted(relevant))}")

        paths_ok = self.load_path_config()
        if relevant & CONNECTION_KEYS or (paths_ok and not self._connect_attempted):
            await self.reconnect()
        self._rebuild_subscription()
        self._publish_status()
