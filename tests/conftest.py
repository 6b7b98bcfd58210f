"""Shared fixtures: an in-memory WebDAV server behind httpx.MockTransport."""

import posixpath

import httpx
import pytest

from davsync.api import WebDAVClient
from davsync.config import ENV_VARS

BASE_URL = "https://dav.example.com/remote.php/dav"
PREFIX = "/remote.php/dav"

MULTISTATUS = """<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:">
  <d:response>
    <d:href>{href}</d:href>
    <d:propstat>
      <d:prop>
        <d:resourcetype>{resourcetype}</d:resourcetype>
        <d:getcontentlength>{size}</d:getcontentlength>
        <d:getetag>"etag-{size}"</d:getetag>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>
"""


class FakeDAVServer:
    """Minimal WebDAV server keeping collections and files in memory."""

    def __init__(self):
        self.collections = {"/"}
        self.files = {}
        self.requests = []
        self.fail_puts = set()
        self.forbid_mkcol = False
        self.status_override = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self, username: str = "", password: str = "") -> WebDAVClient:
        return WebDAVClient(
            BASE_URL, username, password, transport=self.transport()
        )

    def calls(self, method: str) -> list:
        return [path for m, path in self.requests if m == method]

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len(PREFIX) :].rstrip("/") or "/"
        self.requests.append((request.method, path))

        if self.status_override is not None:
            return httpx.Response(self.status_override)

        handler = getattr(self, f"_handle_{request.method.lower()}", None)
        if handler is None:
            return httpx.Response(405)
        return handler(request, path)

    def _handle_propfind(self, request, path):
        if path in self.collections:
            body = MULTISTATUS.format(
                href=PREFIX + path, resourcetype="<d:collection/>", size=0
            )
        elif path in self.files:
            body = MULTISTATUS.format(
                href=PREFIX + path, resourcetype="", size=len(self.files[path])
            )
        else:
            return httpx.Response(404)
        return httpx.Response(207, content=body.encode())

    def _handle_mkcol(self, request, path):
        if self.forbid_mkcol:
            return httpx.Response(403)
        if path in self.collections or path in self.files:
            return httpx.Response(405)
        if posixpath.dirname(path) not in self.collections:
            return httpx.Response(409)
        self.collections.add(path)
        return httpx.Response(201)

    def _handle_put(self, request, path):
        if path in self.fail_puts:
            return httpx.Response(500)
        if posixpath.dirname(path) not in self.collections:
            return httpx.Response(409)
        if request.headers.get("if-none-match") == "*" and path in self.files:
            return httpx.Response(412)
        self.files[path] = request.content
        return httpx.Response(201)

    def _handle_delete(self, request, path):
        if path in self.files:
            del self.files[path]
            return httpx.Response(204)
        if path in self.collections:
            self.collections = {
                c for c in self.collections if c != path and not c.startswith(path + "/")
            }
            self.files = {
                f: data for f, data in self.files.items() if not f.startswith(path + "/")
            }
            return httpx.Response(204)
        return httpx.Response(404)


@pytest.fixture
def dav_server():
    """Provide an empty in-memory WebDAV server."""
    return FakeDAVServer()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep DAVSYNC_* variables of the developer's shell out of the tests."""
    for name in ENV_VARS.values():
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DAVSYNC_CONFIG_DIR", str(tmp_path / "davsync-config"))
