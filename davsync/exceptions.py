"""Exceptions raised by davsync."""

from __future__ import annotations


class DavSyncError(Exception):
    """Base exception for all davsync errors."""


class DavSyncConfigError(DavSyncError):
    """Raised when a required setting is missing or invalid."""


class DavSyncConnectionError(DavSyncError):
    """Raised when the remote store cannot be reached or probed."""


class DavSyncAPIError(DavSyncError):
    """Raised when the remote store answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DavSyncAuthenticationError(DavSyncAPIError):
    """Raised on 401 Unauthorized."""


class DavSyncPermissionError(DavSyncAPIError):
    """Raised on 403 Forbidden."""


class DavSyncNotFoundError(DavSyncAPIError):
    """Raised on 404 Not Found."""


class DavSyncNetworkError(DavSyncError):
    """Raised on transport-level failures (DNS, refused, timeouts, closed client)."""


class DavSyncUploadError(DavSyncError):
    """Raised when a local file cannot be prepared for upload."""
