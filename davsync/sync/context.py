"""Shared synchronization state."""

from __future__ import annotations

from typing import Optional

from ..api import WebDAVClient
from ..connection import ConnectionManager
from ..models import PathConfig


class SyncContext:
    """Process-wide state read by every sync component.

    Only :class:`~davsync.sync.state.SyncStateController` writes to it;
    everybody else reads the current values at the moment they need them,
    so a reconfiguration or reconnect is visible immediately.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        path_config: Optional[PathConfig] = None,
        paused: bool = True,
    ):
        self.connection = connection
        self.path_config = path_config or PathConfig("", "")
        self.paused = paused

    @property
    def client(self) -> Optional[WebDAVClient]:
        return self.connection.client

    @property
    def connected(self) -> bool:
        return self.connection.connected
