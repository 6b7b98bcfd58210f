"""Async WebDAV client used as the remote store."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, AsyncIterator, Callable, Optional
from urllib.parse import quote, unquote, urlsplit

import httpx

from .exceptions import (
    DavSyncAPIError,
    DavSyncAuthenticationError,
    DavSyncConfigError,
    DavSyncNetworkError,
    DavSyncNotFoundError,
    DavSyncPermissionError,
)
from .models import RemoteStat

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

PROPFIND_BODY = (
    b'<?xml version="1.0" encoding="utf-8"?>'
    b'<d:propfind xmlns:d="DAV:"><d:prop>'
    b"<d:resourcetype/><d:getcontentlength/><d:getlastmodified/><d:getetag/>"
    b"</d:prop></d:propfind>"
)

# 64KB chunks for upload progress updates
UPLOAD_CHUNK_SIZE: int = 64 * 1024

ProgressCallback = Callable[[int, int], None]


class WebDAVClient:
    """Client for a WebDAV server.

    All remote operations are coroutines and share one pooled
    ``httpx.AsyncClient``. Once :meth:`close` has been called every further
    call fails with :class:`DavSyncNetworkError`.
    """

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize WebDAV client.

        Args:
            base_url: Server URL, e.g. ``https://dav.example.com/remote.php/dav``
            username: Optional user name for basic auth
            password: Optional password for basic auth
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        if not base_url:
            raise DavSyncConfigError(
                "Server host not configured. Please set davsync.serverHost."
            )
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._closed = False

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._closed:
            raise DavSyncNetworkError("Connection to the WebDAV server was closed")
        if self._client is None:
            auth = (
                httpx.BasicAuth(self.username, self.password)
                if self.username or self.password
                else None
            )
            self._client = httpx.AsyncClient(
                auth=auth,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the client and release connections."""
        self._closed = True
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WebDAVClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        segments = [quote(segment) for segment in path.split("/") if segment]
        return f"{self.base_url}/{'/'.join(segments)}"

    def _map_http_error(
        self, e: httpx.HTTPStatusError, method: str, path: str
    ) -> DavSyncAPIError:
        """Translate an HTTP error status into a davsync exception."""
        status_code = e.response.status_code

        if status_code == 401:
            return DavSyncAuthenticationError(
                "Invalid credentials or unauthorized access", status_code
            )
        if status_code == 403:
            return DavSyncPermissionError(
                f"Access forbidden for {path} - check your permissions", status_code
            )
        if status_code == 404:
            return DavSyncNotFoundError(f"Resource not found: {path}", status_code)
        if status_code == 412:
            return DavSyncAPIError(
                f"Precondition failed for {path} (resource already exists?)",
                status_code,
            )
        reason = e.response.reason_phrase or "error"
        return DavSyncAPIError(
            f"{method} {path} failed with status {status_code} ({reason})",
            status_code,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request to the server.

        Args:
            method: HTTP/WebDAV method
            path: Remote path (forward slashes)
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful response

        Raises:
            DavSyncAPIError: If the server answers with an error status
            DavSyncNetworkError: On transport failures
        """
        client = self._get_client()
        try:
            response = await client.request(method, self._url(path), **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._map_http_error(e, method, path) from e
        except httpx.RequestError as e:
            raise DavSyncNetworkError(f"Network error during {method} {path}: {e}") from e
        return response

    # =========================
    # Remote store operations
    # =========================

    async def stat(self, path: str) -> RemoteStat:
        """Get metadata of a remote file or directory (``PROPFIND``, depth 0).

        Raises:
            DavSyncNotFoundError: If the resource does not exist
        """
        response = await self._request(
            "PROPFIND",
            path,
            content=PROPFIND_BODY,
            headers={"Depth": "0", "Content-Type": "application/xml; charset=utf-8"},
        )
        return parse_propfind_response(path, response.content)

    async def exists(self, path: str) -> bool:
        """Check whether a remote resource exists."""
        try:
            await self.stat(path)
        except DavSyncNotFoundError:
            return False
        return True

    async def create_directory(self, path: str, recursive: bool = False) -> None:
        """Create a remote directory (``MKCOL``).

        An already existing collection is not an error.

        Args:
            path: Remote directory path
            recursive: Also create every missing ancestor directory
        """
        if not recursive:
            await self._mkcol(path)
            return

        current = ""
        for segment in [s for s in path.split("/") if s]:
            current = f"{current}/{segment}"
            if not await self.exists(current):
                await self._mkcol(current)

    async def _mkcol(self, path: str) -> None:
        try:
            await self._request("MKCOL", path)
        except DavSyncAPIError as e:
            # 405 Method Not Allowed: the collection already exists
            if e.status_code == 405:
                logger.debug(f"Remote directory already exists: {path}")
                return
            raise
        logger.debug(f"Created remote directory: {path}")

    async def put_file_contents(
        self,
        path: str,
        data: bytes,
        overwrite: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Upload file content (``PUT``).

        Args:
            path: Remote file path
            data: Full file content
            overwrite: Replace an existing file (default: True)
            on_progress: Optional callback function(bytes_uploaded, total_bytes)
        """
        total = len(data)
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(total),
        }
        if not overwrite:
            headers["If-None-Match"] = "*"

        async def body() -> AsyncIterator[bytes]:
            loaded = 0
            for offset in range(0, total, UPLOAD_CHUNK_SIZE):
                chunk = data[offset : offset + UPLOAD_CHUNK_SIZE]
                loaded += len(chunk)
                if on_progress:
                    on_progress(loaded, total)
                yield chunk

        await self._request("PUT", path, content=body(), headers=headers)

        if total == 0 and on_progress:
            on_progress(0, 0)

    async def delete_file(self, path: str) -> None:
        """Delete a remote file or directory (``DELETE``)."""
        await self._request("DELETE", path)


def parse_propfind_response(path: str, content: bytes) -> RemoteStat:
    """Parse a depth-0 multistatus document into a :class:`RemoteStat`.

    Raises:
        DavSyncAPIError: If the document is not a usable multistatus reply
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise DavSyncAPIError(f"Invalid PROPFIND response for {path}: {e}") from e

    response = root.find(f"{DAV_NS}response")
    if response is None:
        raise DavSyncAPIError(f"Empty PROPFIND response for {path}")

    href = response.findtext(f"{DAV_NS}href") or path
    href_path = unquote(urlsplit(href).path).rstrip("/")
    name = href_path.rsplit("/", 1)[-1]

    resource_type = "file"
    size = 0
    last_modified = None
    etag = None

    for propstat in response.findall(f"{DAV_NS}propstat"):
        status = propstat.findtext(f"{DAV_NS}status") or ""
        if status and " 200 " not in f"{status} ":
            continue
        prop = propstat.find(f"{DAV_NS}prop")
        if prop is None:
            continue
        type_element = prop.find(f"{DAV_NS}resourcetype")
        if (
            type_element is not None
            and type_element.find(f"{DAV_NS}collection") is not None
        ):
            resource_type = "directory"
        length = prop.findtext(f"{DAV_NS}getcontentlength")
        if length and length.strip().isdigit():
            size = int(length.strip())
        last_modified = prop.findtext(f"{DAV_NS}getlastmodified") or last_modified
        etag_text = prop.findtext(f"{DAV_NS}getetag")
        if etag_text:
            etag = etag_text.strip('"')

    return RemoteStat(
        path=path,
        name=name,
        type=resource_type,
        size=size,
        last_modified=last_modified,
        etag=etag,
    )
