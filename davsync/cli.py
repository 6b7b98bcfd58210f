"""CLI interface for davsync."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .cli_progress import BulkProgressDisplay
from .config import (
    LOCAL_PATH,
    PASSWORD,
    REMOTE_PATH,
    SERVER_HOST,
    SETTING_KEYS,
    USERNAME,
    WORKSPACE_PLACEHOLDER,
    config,
)
from .connection import ConnectionManager
from .daemon import WatchDaemon
from .exceptions import DavSyncConfigError, DavSyncConnectionError, DavSyncError
from .models import BatchSummary, SyncStatus
from .output import OutputFormatter
from .sync.state import SyncStateController

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(verbose: bool, log_file: Optional[str]) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT, datefmt="%H:%M:%S")
        # Enable debug logging for davsync modules
        logging.getLogger("davsync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)

    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger = logging.getLogger("davsync")
        package_logger.addHandler(handler)
        # The log file always records every sync attempt
        if not verbose:
            package_logger.setLevel(logging.INFO)
            handler.setLevel(logging.INFO)
            for root_handler in logging.getLogger().handlers:
                root_handler.setLevel(logging.WARNING)


def _make_controller(ctx: Any, serialize_per_path: bool = False) -> SyncStateController:
    return SyncStateController(
        config,
        ctx.obj["workspace"],
        output=ctx.obj["out"],
        serialize_per_path=serialize_per_path,
    )


def _use_progress(out: OutputFormatter) -> bool:
    return not out.quiet and not out.json_output


def _report_summary(out: OutputFormatter, summary: BatchSummary) -> None:
    if out.json_output:
        out.output_json(summary.to_dict())


def _require_configured(ctx: Any, out: OutputFormatter) -> None:
    if not config.is_configured():
        out.error("WebDAV server not configured.")
        out.info("Run 'davsync init' to configure the server")
        ctx.exit(1)


@click.group()
@click.option(
    "--workspace",
    "-W",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Workspace root used for ${workspaceFolder} (default: current directory)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write log output to this file",
)
@click.version_option(version=__version__, prog_name="davsync")
@click.pass_context
def main(
    ctx: Any,
    workspace: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
    log_file: Optional[str],
) -> None:
    """davsync - Mirror a local directory onto a WebDAV server."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = (workspace or Path.cwd()).resolve()
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    _configure_logging(verbose, log_file)


@main.command()
@click.option("--server-host", prompt="WebDAV server URL", help="WebDAV server URL")
@click.option("--username", prompt="Username", default="", help="WebDAV username")
@click.option(
    "--password",
    prompt="Password",
    default="",
    hide_input=True,
    help="WebDAV password",
)
@click.option(
    "--local-path",
    prompt="Local path",
    default=WORKSPACE_PLACEHOLDER,
    help="Local directory to sync (may contain ${workspaceFolder})",
)
@click.option(
    "--remote-path",
    prompt="Remote path",
    default="/",
    help="Remote directory on the server",
)
@click.pass_context
def init(
    ctx: Any,
    server_host: str,
    username: str,
    password: str,
    local_path: str,
    remote_path: str,
) -> None:
    """Initialize davsync configuration.

    Probes the server and stores the settings in
    ~/.config/davsync/config.json for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Checking connection...")
    manager = ConnectionManager(output=out)

    async def probe() -> bool:
        state = await manager.connect(server_host, username, password)
        await manager.disconnect()
        return state.connected

    if asyncio.run(probe()):
        out.success("Connection successful")
    elif not click.confirm("Save configuration anyway?", default=False):
        out.warning("Configuration cancelled.")
        ctx.exit(1)

    values = {
        SERVER_HOST: server_host,
        USERNAME: username,
        PASSWORD: password,
        LOCAL_PATH: local_path,
        REMOTE_PATH: remote_path,
    }
    try:
        for key, value in values.items():
            config.set(key, value)
    except OSError as e:
        out.error(f"Failed to save configuration: {e}")
        ctx.exit(1)

    out.success(f"Configuration saved to {config.get_config_path()}")


@main.group(name="config")
def config_group() -> None:
    """Show and change settings.

    Valid settings: serverHost, username, password, localPath, remotePath.
    """


@config_group.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx: Any, key: str) -> None:
    """Print the value of one setting."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        value = config.get(key)
    except DavSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({key: value})
    else:
        click.echo(value)


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: Any, key: str, value: str) -> None:
    """Change one setting."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        config.set(key, value)
    except DavSyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    except OSError as e:
        out.error(f"Failed to save configuration: {e}")
        ctx.exit(1)
        return
    out.success(f"{key} updated")


@config_group.command("show")
@click.pass_context
def config_show(ctx: Any) -> None:
    """Show all settings (password masked)."""
    out: OutputFormatter = ctx.obj["out"]
    values = config.as_dict(mask_password=True)

    if out.json_output:
        out.output_json(values)
        return

    out.print(f"Config file: {config.get_config_path()}")
    for key in SETTING_KEYS:
        out.print(f"  {key}: {values[key] or '-'}")


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Check the connection and show the sync status.

    Shows disconnected, paused or running, and the path mapping.
    """
    out: OutputFormatter = ctx.obj["out"]
    controller = _make_controller(ctx)

    async def run() -> tuple[SyncStatus, Optional[str]]:
        try:
            await controller.start()
            return controller.status, controller.connection.state.error
        finally:
            await controller.stop()

    sync_status, error = asyncio.run(run())

    path_config = controller.context.path_config
    if out.json_output:
        out.output_json(
            {
                "status": sync_status.value,
                "localPath": path_config.local_base_path,
                "remotePath": path_config.remote_base_path,
                "error": error,
            }
        )
    else:
        out.status(sync_status)
        if path_config.is_complete():
            out.print(
                f"{path_config.local_base_path} -> {path_config.remote_base_path}"
            )

    if not path_config.is_complete():
        ctx.exit(1)


@main.command()
@click.pass_context
def pause(ctx: Any) -> None:
    """Pause event-driven sync for this workspace."""
    out: OutputFormatter = ctx.obj["out"]
    controller = _make_controller(ctx)
    controller.pause()
    out.success("Sync paused")


@main.command()
@click.pass_context
def resume(ctx: Any) -> None:
    """Resume event-driven sync for this workspace.

    The connection is checked first; resuming while the server is
    unreachable is refused.
    """
    out: OutputFormatter = ctx.obj["out"]
    _require_configured(ctx, out)
    controller = _make_controller(ctx)

    async def run() -> bool:
        try:
            await controller.start()
            controller.resume()
            return True
        except DavSyncConnectionError as e:
            out.error(str(e))
            return False
        finally:
            await controller.stop()

    if not asyncio.run(run()):
        ctx.exit(1)
    out.success("Sync resumed")


@main.command()
@click.pass_context
def reconnect(ctx: Any) -> None:
    """Connect to the WebDAV server with the current settings."""
    out: OutputFormatter = ctx.obj["out"]
    _require_configured(ctx, out)
    controller = _make_controller(ctx)

    async def run() -> bool:
        try:
            return await controller.start()
        finally:
            await controller.stop()

    if not asyncio.run(run()):
        ctx.exit(1)
    out.success("Connected to WebDAV server")


async def _run_bulk(
    controller: SyncStateController,
    out: OutputFormatter,
    path: Optional[Path] = None,
) -> Optional[BatchSummary]:
    """Connect and run a bulk sync with progress and Ctrl-C cancellation.

    Args:
        controller: Started lazily here and stopped afterwards
        out: Output formatter
        path: File or directory to sync, or None for the whole local base

    Returns:
        The batch summary, or None if the sync could not start
    """
    loop = asyncio.get_running_loop()
    cancel = asyncio.Event()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        handles_sigint = True
    except (NotImplementedError, RuntimeError, ValueError):
        handles_sigint = False

    try:
        if not await controller.start():
            return None

        show_progress = _use_progress(out) and (path is None or path.is_dir())
        if not show_progress:
            if path is None:
                return await controller.bulk.sync_all(cancel=cancel)
            return await controller.bulk.sync_path(path, cancel=cancel)

        with BulkProgressDisplay(console=out.console) as display:
            tracker = display.create_tracker()
            if path is None:
                return await controller.bulk.sync_all(cancel=cancel, tracker=tracker)
            return await controller.bulk.sync_path(
                path, cancel=cancel, tracker=tracker
            )
    except (DavSyncError, OSError) as e:
        out.error(str(e))
        return None
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)
        await controller.stop()


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def push(ctx: Any, path: Path) -> None:
    """Upload a file, or every file below a directory.

    PATH must lie inside the configured local directory. Hidden entries
    (names starting with a dot) are skipped.
    """
    out: OutputFormatter = ctx.obj["out"]
    _require_configured(ctx, out)
    controller = _make_controller(ctx)
    path = Path(os.path.abspath(path))

    summary = asyncio.run(_run_bulk(controller, out, path))
    if summary is None:
        ctx.exit(1)
        return

    _report_summary(out, summary)
    if not path.is_dir() and summary.failed:
        ctx.exit(1)


@main.command("push-all")
@click.pass_context
def push_all(ctx: Any) -> None:
    """Upload every file of the local directory.

    Press Ctrl-C to stop after the file currently being uploaded.
    Individual failures are reported in the summary and do not change
    the exit code.
    """
    out: OutputFormatter = ctx.obj["out"]
    _require_configured(ctx, out)
    controller = _make_controller(ctx)

    summary = asyncio.run(_run_bulk(controller, out))
    if summary is None:
        ctx.exit(1)
        return

    _report_summary(out, summary)


@main.command()
@click.option(
    "--serialize",
    is_flag=True,
    help="Upload changes of the same file one after another",
)
@click.pass_context
def watch(ctx: Any, serialize: bool) -> None:
    """Watch the local directory and sync every change.

    Reads commands from stdin: pause, resume, reconnect, sync-all,
    status, quit.
    """
    out: OutputFormatter = ctx.obj["out"]
    controller = _make_controller(ctx, serialize_per_path=serialize)
    daemon = WatchDaemon(controller, out)

    asyncio.run(daemon.run())
    out.info("Stopped watching")


if __name__ == "__main__":
    main()
