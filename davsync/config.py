"""Configuration management for davsync.

Settings live in ``~/.config/davsync/config.json`` and can be overridden
per setting with environment variables. Listeners registered with
:meth:`Config.on_change` are told which keys changed whenever a value is
set or the file is reloaded.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from .exceptions import DavSyncConfigError
from .models import PathConfig

logger = logging.getLogger(__name__)

SERVER_HOST = "serverHost"
USERNAME = "username"
PASSWORD = "password"
LOCAL_PATH = "localPath"
REMOTE_PATH = "remotePath"

SETTING_KEYS: tuple[str, ...] = (SERVER_HOST, USERNAME, PASSWORD, LOCAL_PATH, REMOTE_PATH)

# Changing any of these requires a new connection
CONNECTION_KEYS = frozenset({SERVER_HOST, USERNAME, PASSWORD})
PATH_KEYS = frozenset({LOCAL_PATH, REMOTE_PATH})

ENV_VARS: dict[str, str] = {
    SERVER_HOST: "DAVSYNC_SERVER_HOST",
    USERNAME: "DAVSYNC_USERNAME",
    PASSWORD: "DAVSYNC_PASSWORD",
    LOCAL_PATH: "DAVSYNC_LOCAL_PATH",
    REMOTE_PATH: "DAVSYNC_REMOTE_PATH",
}

WORKSPACE_PLACEHOLDER = "${workspaceFolder}"
CONFIG_FILE_NAME = "config.json"

ChangeListener = Callable[[set[str]], None]


def default_config_dir() -> Path:
    """Return the configuration directory, honouring ``DAVSYNC_CONFIG_DIR``."""
    env_dir = os.environ.get("DAVSYNC_CONFIG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".config" / "davsync"


def normalize_remote_path(remote_path: str) -> str:
    """Use forward slashes and drop a trailing slash (a lone ``/`` is kept).

    Examples:
        >>> normalize_remote_path("/dav/sync/")
        '/dav/sync'
        >>> normalize_remote_path("/")
        '/'
    """
    remote_path = remote_path.strip().replace("\\", "/")
    if len(remote_path) > 1:
        remote_path = remote_path.rstrip("/") or "/"
    return remote_path


class Config:
    """Key-value settings source with change notifications."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding ``config.json``. Defaults to
                ``~/.config/davsync`` (or ``$DAVSYNC_CONFIG_DIR``).
        """
        self.config_dir = config_dir or default_config_dir()
        self._listeners: list[ChangeListener] = []
        self._values: dict[str, str] = self._read_file()

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    def get_config_path(self) -> Path:
        """Path of the JSON settings file."""
        return self.config_file

    def _read_file(self) -> dict[str, str]:
        if not self.config_file.exists():
            return {}
        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read configuration {self.config_file}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed configuration in {self.config_file}")
            return {}
        return {
            key: str(value)
            for key, value in data.items()
            if key in SETTING_KEYS and value is not None
        }

    def _write_file(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2)
        # The file holds a password
        try:
            self.config_file.chmod(0o600)
        except OSError as e:
            logger.debug(f"Cannot restrict permissions of {self.config_file}: {e}")

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in SETTING_KEYS:
            raise DavSyncConfigError(
                f"Unknown setting '{key}'. Valid settings: {', '.join(SETTING_KEYS)}"
            )

    def get(self, key: str) -> str:
        """Get a setting value, environment first, then the settings file.

        Args:
            key: One of :data:`SETTING_KEYS`

        Returns:
            The value, or an empty string when unset
        """
        self._check_key(key)
        env_value = os.environ.get(ENV_VARS[key])
        if env_value:
            return env_value
        return self._values.get(key, "")

    def set(self, key: str, value: str) -> None:
        """Persist a setting and notify listeners if it changed."""
        self._check_key(key)
        old_value = self.get(key)
        self._values[key] = value
        self._write_file()
        if self.get(key) != old_value:
            self._notify({key})

    def reload(self) -> set[str]:
        """Re-read the settings file and notify listeners of changed keys.

        Returns:
            Set of keys whose effective value changed
        """
        before = {key: self.get(key) for key in SETTING_KEYS}
        self._values = self._read_file()
        changed = {key for key in SETTING_KEYS if self.get(key) != before[key]}
        if changed:
            logger.debug(f"Configuration changed: {sorted(changed)}")
            self._notify(changed)
        return changed

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener called with the set of changed keys.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, changed: set[str]) -> None:
        for listener in list(self._listeners):
            listener(set(changed))

    def is_configured(self) -> bool:
        """True when a server host is available."""
        return bool(self.get(SERVER_HOST))

    def resolve_local_path(self, workspace_root: Optional[Path] = None) -> str:
        """Resolve ``localPath`` against the workspace root.

        The ``${workspaceFolder}`` placeholder is replaced by the workspace
        root. An empty ``localPath`` falls back to the workspace root.
        """
        local_path = self.get(LOCAL_PATH)
        root = str(workspace_root) if workspace_root is not None else ""

        if WORKSPACE_PLACEHOLDER in local_path:
            if not root:
                return ""
            local_path = local_path.replace(WORKSPACE_PLACEHOLDER, root)
        elif not local_path:
            local_path = root

        if not local_path:
            return ""
        return os.path.abspath(os.path.expanduser(local_path))

    def path_config(self, workspace_root: Optional[Path] = None) -> PathConfig:
        """Build the path mapping configuration.

        Raises:
            DavSyncConfigError: If the local or remote path is not configured
        """
        local_base = self.resolve_local_path(workspace_root)
        remote_base = normalize_remote_path(self.get(REMOTE_PATH))

        missing = []
        if not local_base:
            missing.append(f"davsync.{LOCAL_PATH}")
        if not remote_base:
            missing.append(f"davsync.{REMOTE_PATH}")
        if missing:
            raise DavSyncConfigError(
                f"Please configure {' and '.join(missing)} "
                "(run 'davsync init' or 'davsync config set')"
            )

        return PathConfig(local_base_path=local_base, remote_base_path=remote_base)

    def connection_settings(self) -> tuple[str, str, str]:
        """Return ``(serverHost, username, password)``.

        Raises:
            DavSyncConfigError: If no server host is configured
        """
        server_host = self.get(SERVER_HOST)
        if not server_host:
            raise DavSyncConfigError(
                f"Please configure davsync.{SERVER_HOST} "
                "(run 'davsync init' or set DAVSYNC_SERVER_HOST)"
            )
        return server_host, self.get(USERNAME), self.get(PASSWORD)

    def as_dict(self, mask_password: bool = True) -> dict[str, str]:
        values = {key: self.get(key) for key in SETTING_KEYS}
        if mask_password and values[PASSWORD]:
            values[PASSWORD] = "********"
        return values


config = Config()
