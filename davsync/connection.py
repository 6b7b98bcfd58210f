"""Lifecycle of the connection to the remote store."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .api import WebDAVClient
from .exceptions import DavSyncConfigError
from .models import ConnectionState
from .output import OutputFormatter

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str, str], WebDAVClient]
SettingsProvider = Callable[[], tuple[str, str, str]]
StateListener = Callable[[ConnectionState], None]

PROBE_PATH = "/"


class ConnectionManager:
    """Owns the shared client handle and its Connected/Disconnected state.

    A connect builds a new client and probes it with a ``stat`` of the
    server root. Only a successful probe makes the new client visible;
    the previous client is closed afterwards, so operations still holding
    it fail on their next call. There is no automatic retry.
    """

    def __init__(
        self,
        settings_provider: Optional[SettingsProvider] = None,
        client_factory: Optional[ClientFactory] = None,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize connection manager.

        Args:
            settings_provider: Returns ``(serverHost, username, password)``
                for :meth:`reconnect`, may raise DavSyncConfigError
            client_factory: Builds a client from host and credentials
            output: Output formatter for user-facing diagnostics
        """
        self.settings_provider = settings_provider
        self.client_factory: ClientFactory = client_factory or WebDAVClient
        self.output = output or OutputFormatter()
        self._state = ConnectionState.disconnected()
        self._last_settings: Optional[tuple[str, str, str]] = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state.connected

    @property
    def client(self) -> Optional[WebDAVClient]:
        return self._state.client

    def on_change(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        changed = state.connected != self._state.connected
        self._state = state
        if changed:
            for listener in list(self._listeners):
                listener(state)

    async def connect(
        self, server_host: str, username: str = "", password: str = ""
    ) -> ConnectionState:
        """Connect to the server and probe it.

        Never raises: a failure leaves the manager Disconnected and is
        reported through the output formatter.
        """
        self._last_settings = (server_host, username, password)
        previous = self._state.client
        self._set_state(ConnectionState.disconnected())

        client: Optional[WebDAVClient] = None
        try:
            client = self.client_factory(server_host, username, password)
            await client.stat(PROBE_PATH)
        except Exception as e:
            if client is not None:
                await client.close()
            if previous is not None:
                await previous.close()
            message = f"WebDAV connection failed: {e}"
            logger.warning(message)
            self.output.error(message)
            self._set_state(ConnectionState.disconnected(error=str(e)))
            return self._state

        self._set_state(ConnectionState(client=client))
        if previous is not None and previous is not client:
            await previous.close()
        logger.info(f"Connected to WebDAV server {server_host}")
        return self._state

    async def reconnect(self) -> ConnectionState:
        """Connect again using the latest settings."""
        settings = self._last_settings
        if self.settings_provider is not None:
            try:
                settings = self.settings_provider()
            except DavSyncConfigError as e:
                logger.warning(f"Cannot connect: {e}")
                self.output.error(str(e))
                await self.disconnect(error=str(e))
                return self._state

        if settings is None:
            message = "No connection settings available"
            self.output.error(message)
            await self.disconnect(error=message)
            return self._state

        return await self.connect(*settings)

    async def disconnect(self, error: Optional[str] = None) -> None:
        """Drop the current client, if any."""
        previous = self._state.client
        self._set_state(ConnectionState.disconnected(error=error))
        if previous is not None:
            await previous.close()
