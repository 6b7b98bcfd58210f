"""Data models shared across davsync."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .api import WebDAVClient


@dataclass(frozen=True)
class PathConfig:
    """Local and remote roots of the mirrored tree."""

    local_base_path: str
    """Absolute local directory being mirrored"""

    remote_base_path: str
    """Remote root, forward slashes, no trailing slash"""

    def is_complete(self) -> bool:
        return bool(self.local_base_path) and bool(self.remote_base_path)


class SyncAction(str, Enum):
    """What happened to a local file."""

    CREATE = "create"
    """File appeared locally (uploaded with overwrite)"""

    MODIFY = "modify"
    """File content changed (uploaded with overwrite)"""

    DELETE = "delete"
    """File removed locally (remote object deleted)"""

    @property
    def is_upload(self) -> bool:
        return self in (SyncAction.CREATE, SyncAction.MODIFY)


class SyncStatus(str, Enum):
    """Persistent status indicator states."""

    DISCONNECTED = "disconnected"
    PAUSED = "paused"
    RUNNING = "running"


@dataclass(frozen=True)
class ConnectionState:
    """Either disconnected, or connected with a shared client handle."""

    client: Optional["WebDAVClient"] = None
    error: Optional[str] = None
    """Diagnostic from the last failed connect, if any"""

    @property
    def connected(self) -> bool:
        return self.client is not None

    @classmethod
    def disconnected(cls, error: Optional[str] = None) -> "ConnectionState":
        return cls(client=None, error=error)


@dataclass
class RemoteStat:
    """Metadata for a remote resource as returned by PROPFIND."""

    path: str
    name: str
    type: str
    """Either "file" or "directory" """

    size: int = 0
    last_modified: Optional[str] = None
    etag: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"


@dataclass
class SyncResult:
    """Outcome of a single SyncOperation."""

    local_path: Path
    remote_path: str
    action: SyncAction
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    """Terminal report of a bulk sync."""

    total: int = 0
    processed: int = 0
    failed: list[Path] = field(default_factory=list)
    cancelled: bool = False
    """Stopped early because the cancellation flag was set"""

    disconnected: bool = False
    """Stopped early because the connection went away"""

    @property
    def stopped_early(self) -> bool:
        return self.cancelled or self.disconnected

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "failed": [str(p) for p in self.failed],
            "cancelled": self.cancelled,
            "disconnected": self.disconnected,
        }

    def to_text_summary(self) -> str:
        text = f"Sync complete, processed {self.processed}/{self.total} file(s)"
        if self.cancelled:
            text += " (cancelled)"
        elif self.disconnected:
            text += " (connection lost)"
        return text


class FileEventKind(str, Enum):
    """File-system notifications delivered by a watch source."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"

    @property
    def action(self) -> SyncAction:
        return {
            FileEventKind.CREATED: SyncAction.CREATE,
            FileEventKind.CHANGED: SyncAction.MODIFY,
            FileEventKind.DELETED: SyncAction.DELETE,
        }[self]
