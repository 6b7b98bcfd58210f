"""Long-running watch mode.

The daemon starts event-driven sync, follows changes of the settings
file and of the persisted run state (so ``davsync pause`` from another
terminal takes effect), and accepts commands on stdin.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import IO, Optional

from .exceptions import DavSyncConnectionError, DavSyncError
from .models import FileEventKind
from .output import OutputFormatter
from .sync.state import SyncStateController
from .watcher import FileWatcher

logger = logging.getLogger(__name__)

COMMANDS = ("pause", "resume", "reconnect", "sync-all", "status", "quit")


class WatchDaemon:
    """Runs a SyncStateController until ``quit`` or a termination signal."""

    def __init__(
        self,
        controller: SyncStateController,
        output: Optional[OutputFormatter] = None,
        watcher: Optional[FileWatcher] = None,
        config_watcher: Optional[FileWatcher] = None,
        stdin: Optional[IO[str]] = None,
    ):
        """Initialize watch daemon.

        Args:
            controller: Sync state controller to run
            output: Output formatter for status and command replies
            watcher: Watch source for the local base path
            config_watcher: Watch source for the configuration directory
            stdin: Command stream (defaults to ``sys.stdin``); reading stops
                   at EOF while the daemon keeps running
        """
        self.controller = controller
        self.output = output or controller.output
        self.watcher = watcher or FileWatcher()
        self.config_watcher = config_watcher or FileWatcher()
        self.stdin = stdin if stdin is not None else sys.stdin
        self._commands: Optional[asyncio.Queue] = None
        self._bulk_task: Optional[asyncio.Task] = None
        self._bulk_cancel: Optional[asyncio.Event] = None

    # =========================
    # Lifecycle
    # =========================

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self._commands = asyncio.Queue()
        self._install_signal_handlers(loop)

        self.controller.on_status_change(self.output.status)
        await self.controller.start(self.watcher)
        self._watch_config_dir()
        self._start_command_reader(loop)
        self.output.info(f"Commands: {', '.join(COMMANDS)}")

        try:
            while True:
                command = await self._commands.get()
                if not await self.handle_command(command):
                    break
        finally:
            await self._shutdown(loop)

    def request_stop(self) -> None:
        """Ask the daemon to quit; safe to call from a signal handler."""
        if self._commands is not None:
            self._commands.put_nowait("quit")

    async def _shutdown(self, loop: asyncio.AbstractEventLoop) -> None:
        logger.info("Stopping watch daemon")
        self.config_watcher.stop()
        if self._bulk_task is not None and not self._bulk_task.done():
            self._bulk_cancel.set()
            await asyncio.gather(self._bulk_task, return_exceptions=True)
        await self.controller.stop()
        self._remove_signal_handlers(loop)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_stop)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not supported on this platform or not in the main thread
                logger.debug(f"Cannot install handler for signal {signum}")

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug(f"Cannot remove handler for signal {signum}")

    # =========================
    # Configuration directory
    # =========================

    def _watch_config_dir(self) -> None:
        config_dir = Path(self.controller.config.config_dir)
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            self.config_watcher.start(str(config_dir), self.on_config_dir_event)
        except OSError as e:
            logger.warning(f"Cannot watch configuration directory {config_dir}: {e}")

    def on_config_dir_event(
        self, kind: FileEventKind, path: str, is_directory: bool = False
    ) -> None:
        """Reload settings or run state when their files change."""
        if is_directory or kind == FileEventKind.DELETED:
            return
        changed = Path(path)
        if changed == Path(self.controller.config.config_file):
            logger.debug("Settings file changed, reloading")
            self.controller.config.reload()
        elif changed == Path(self.controller.store.state_file):
            logger.debug("Run state file changed, reloading")
            self.controller.reload_run_state()

    # =========================
    # Commands
    # =========================

    def _start_command_reader(self, loop: asyncio.AbstractEventLoop) -> None:
        def read_commands() -> None:
            for line in self.stdin:
                command = line.strip().lower()
                if command:
                    loop.call_soon_threadsafe(self._commands.put_nowait, command)
            logger.debug("End of command input")

        # Never joined; ends with the interpreter
        thread = threading.Thread(
            target=read_commands, name="davsync-commands", daemon=True
        )
        thread.start()

    async def handle_command(self, command: str) -> bool:
        """Execute one command.

        Returns:
            False when the daemon should stop
        """
        if command == "quit":
            return False

        if command == "pause":
            self.controller.pause()
        elif command == "resume":
            try:
                self.controller.resume()
            except DavSyncConnectionError as e:
                self.output.error(str(e))
        elif command == "reconnect":
            await self.controller.reconnect()
        elif command == "status":
            self.output.status(self.controller.status)
        elif command == "sync-all":
            self._start_bulk_sync()
        else:
            self.output.warning(
                f"Unknown command '{command}'. Commands: {', '.join(COMMANDS)}"
            )
        return True

    def _start_bulk_sync(self) -> None:
        if self._bulk_task is not None and not self._bulk_task.done():
            self.output.warning("A sync of all files is already running")
            return
        self._bulk_cancel = asyncio.Event()
        self._bulk_task = asyncio.create_task(self._run_bulk_sync(self._bulk_cancel))

    async def _run_bulk_sync(self, cancel: asyncio.Event) -> None:
        try:
            await self.controller.bulk.sync_all(cancel=cancel)
        except DavSyncError as e:
            self.output.error(str(e))
        except OSError as e:
            logger.error(f"Sync of all files failed: {e}")
            self.output.error(f"Sync of all files failed: {e}")
