"""davsync - mirror a local directory tree onto a WebDAV server."""

from .api import WebDAVClient
from .config import Config
from .connection import ConnectionManager
from .exceptions import (
    DavSyncAPIError,
    DavSyncAuthenticationError,
    DavSyncConfigError,
    DavSyncConnectionError,
    DavSyncError,
    DavSyncNetworkError,
    DavSyncNotFoundError,
    DavSyncPermissionError,
    DavSyncUploadError,
)
from .models import (
    BatchSummary,
    ConnectionState,
    FileEventKind,
    PathConfig,
    RemoteStat,
    SyncAction,
    SyncResult,
    SyncStatus,
)

__version__ = "0.1.0"

__all__ = [
    "BatchSummary",
    "Config",
    "ConnectionManager",
    "ConnectionState",
    "DavSyncAPIError",
    "DavSyncAuthenticationError",
    "DavSyncConfigError",
    "DavSyncConnectionError",
    "DavSyncError",
    "DavSyncNetworkError",
    "DavSyncNotFoundError",
    "DavSyncPermissionError",
    "DavSyncUploadError",
    "FileEventKind",
    "PathConfig",
    "RemoteStat",
    "SyncAction",
    "SyncResult",
    "SyncStatus",
    "WebDAVClient",
]
