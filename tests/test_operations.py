"""Tests for the atomic sync operation."""

import asyncio
import logging
from unittest.mock import Mock

import pytest

from davsync.exceptions import (
    DavSyncAPIError,
    DavSyncConnectionError,
    DavSyncPermissionError,
    DavSyncUploadError,
)
from davsync.models import PathConfig, SyncAction
from davsync.output import OutputFormatter
from davsync.sync.operations import SyncOperations


@pytest.fixture
def mock_output():
    """Create a mock output formatter."""
    return Mock(spec=OutputFormatter)


@pytest.fixture
def local_base(tmp_path):
    """Create a local tree with one nested file."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.txt").write_bytes(b"hello")
    return tmp_path


@pytest.fixture
def path_config(local_base):
    """Map the local tree onto /dav/sync."""
    return PathConfig(str(local_base), "/dav/sync")


class TestEnsureRemoteDirectory:
    """Tests for ensure_remote_directory."""

    def test_creates_missing_ancestors(self, dav_server, mock_output):
        """Test all missing ancestors are created."""
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                await operations.ensure_remote_directory(client, "/dav/sync/src")

        asyncio.run(run())
        assert {"/dav", "/dav/sync", "/dav/sync/src"} <= dav_server.collections

    def test_twice_is_idempotent(self, dav_server, mock_output):
        """Test a second ensure of the same directory is a no-op without error."""
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                await operations.ensure_remote_directory(client, "/dav/sync")
                await operations.ensure_remote_directory(client, "/dav/sync")

        asyncio.run(run())
        assert dav_server.calls("MKCOL") == ["/dav", "/dav/sync"]
        assert "/dav/sync" in dav_server.collections

    def test_concurrent_ensure_is_harmless(self, dav_server, mock_output):
        """Test two concurrent ensures racing on the same directory both succeed."""
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                await asyncio.gather(
                    operations.ensure_remote_directory(client, "/dav"),
                    operations.ensure_remote_directory(client, "/dav"),
                )

        asyncio.run(run())
        assert "/dav" in dav_server.collections

    def test_failure_propagates(self, dav_server, mock_output):
        """Test a refused creation is raised to the caller."""
        dav_server.forbid_mkcol = True
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                await operations.ensure_remote_directory(client, "/dav")

        with pytest.raises(DavSyncPermissionError):
            asyncio.run(run())


class TestExecute:
    """Tests for SyncOperations.execute."""

    def test_upload_creates_parents(self, dav_server, mock_output, local_base, path_config):
        """Test an upload ensures the parent directory and stores the content."""
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client, path_config, local_base / "src" / "a.txt", SyncAction.CREATE
                )

        result = asyncio.run(run())

        assert result.ok
        assert result.remote_path == "/dav/sync/src/a.txt"
        assert dav_server.files["/dav/sync/src/a.txt"] == b"hello"
        mock_output.success.assert_called_once_with("File synced: src/a.txt")

    def test_modify_overwrites(self, dav_server, mock_output, local_base, path_config):
        """Test a modification replaces the remote content."""
        dav_server.collections.update({"/dav", "/dav/sync", "/dav/sync/src"})
        dav_server.files["/dav/sync/src/a.txt"] = b"old"
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client, path_config, local_base / "src" / "a.txt", SyncAction.MODIFY
                )

        assert asyncio.run(run()).ok
        assert dav_server.files["/dav/sync/src/a.txt"] == b"hello"
        assert dav_server.calls("MKCOL") == []

    def test_delete(self, dav_server, mock_output, local_base, path_config):
        """Test a delete removes the remote file."""
        dav_server.collections.update({"/dav", "/dav/sync", "/dav/sync/src"})
        dav_server.files["/dav/sync/src/gone.txt"] = b"x"
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client, path_config, local_base / "src" / "gone.txt", SyncAction.DELETE
                )

        assert asyncio.run(run()).ok
        assert "/dav/sync/src/gone.txt" not in dav_server.files
        mock_output.success.assert_called_once_with("File deleted: src/gone.txt")

    def test_progress_callback(self, dav_server, mock_output, local_base, path_config):
        """Test upload progress is forwarded."""
        operations = SyncOperations(mock_output)
        progress = []

        async def run():
            async with dav_server.client() as client:
                await operations.execute(
                    client,
                    path_config,
                    local_base / "src" / "a.txt",
                    SyncAction.MODIFY,
                    progress_callback=lambda l, t: progress.append((l, t)),
                )

        asyncio.run(run())
        assert progress == [(5, 5)]

    def test_upload_failure_is_returned(
        self, dav_server, mock_output, local_base, path_config, caplog
    ):
        """Test a failing upload is logged once, reported and not raised."""
        dav_server.fail_puts.add("/dav/sync/src/a.txt")
        operations = SyncOperations(mock_output)
        caplog.set_level(logging.INFO, logger="davsync")

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client, path_config, local_base / "src" / "a.txt", SyncAction.MODIFY
                )

        result = asyncio.run(run())

        assert not result.ok
        assert isinstance(result.error, DavSyncAPIError)
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        mock_output.error.assert_called_once()
        mock_output.success.assert_not_called()

    def test_failure_without_notify_is_silent(
        self, dav_server, mock_output, local_base, path_config
    ):
        """Test notify=False keeps failures out of user notifications."""
        dav_server.fail_puts.add("/dav/sync/src/a.txt")
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client,
                    path_config,
                    local_base / "src" / "a.txt",
                    SyncAction.MODIFY,
                    notify=False,
                )

        assert not asyncio.run(run()).ok
        mock_output.error.assert_not_called()

    def test_directory_failure_aborts_upload(
        self, dav_server, mock_output, local_base, path_config
    ):
        """Test a failed parent creation stops before the upload."""
        dav_server.forbid_mkcol = True
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client, path_config, local_base / "src" / "a.txt", SyncAction.MODIFY
                )

        result = asyncio.run(run())
        assert isinstance(result.error, DavSyncPermissionError)
        assert dav_server.calls("PUT") == []

    def test_missing_local_file(self, dav_server, mock_output, local_base, path_config):
        """Test an unreadable local file is a per-operation failure."""
        operations = SyncOperations(mock_output)

        async def run():
            async with dav_server.client() as client:
                return await operations.execute(
                    client, path_config, local_base / "missing.txt", SyncAction.CREATE
                )

        result = asyncio.run(run())
        assert isinstance(result.error, DavSyncUploadError)

    def test_without_client(self, mock_output, local_base, path_config):
        """Test a missing client is a per-operation failure."""
        operations = SyncOperations(mock_output)

        result = asyncio.run(
            operations.execute(None, path_config, local_base / "src" / "a.txt", SyncAction.MODIFY)
        )

        assert isinstance(result.error, DavSyncConnectionError)
        mock_output.error.assert_called_once()

    def test_closed_client(self, dav_server, mock_output, local_base, path_config):
        """Test an invalidated handle fails the operation without raising."""
        operations = SyncOperations(mock_output)

        async def run():
            client = dav_server.client()
            await client.close()
            return await operations.execute(
                client, path_config, local_base / "src" / "a.txt", SyncAction.MODIFY
            )

        assert not asyncio.run(run()).ok
