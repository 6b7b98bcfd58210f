"""Tests for event-driven sync."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from davsync.api import WebDAVClient
from davsync.connection import ConnectionManager
from davsync.models import FileEventKind, PathConfig
from davsync.output import OutputFormatter
from davsync.sync.context import SyncContext
from davsync.sync.events import EventSyncController
from davsync.sync.operations import SyncOperations


def make_client():
    client = Mock(spec=WebDAVClient)
    client.exists = AsyncMock(return_value=True)
    client.create_directory = AsyncMock()
    client.put_file_contents = AsyncMock()
    client.delete_file = AsyncMock()
    return client


@pytest.fixture
def client():
    """Create a mock WebDAV client."""
    return make_client()


@pytest.fixture
def connection(client):
    """Create a connected mock connection manager."""
    connection = Mock(spec=ConnectionManager)
    connection.client = client
    connection.connected = True
    return connection


@pytest.fixture
def context(connection, tmp_path):
    """Create a running sync context over tmp_path."""
    return SyncContext(connection, PathConfig(str(tmp_path), "/dav"), paused=False)


@pytest.fixture
def controller(context):
    """Create an event controller with a silent output."""
    return EventSyncController(context, SyncOperations(Mock(spec=OutputFormatter)))


def dispatch(controller, kind, path, is_directory=False):
    """Deliver one event and wait for the resulting operation."""

    async def run():
        task = controller.on_watch_event(kind, str(path), is_directory)
        await controller.drain()
        return task

    return asyncio.run(run())


class TestGating:
    """Tests for the conditions under which events are ignored."""

    def test_running_dispatches_upload(self, controller, client, tmp_path):
        """Test a change event uploads the file."""
        (tmp_path / "a.txt").write_text("hello")
        task = dispatch(controller, FileEventKind.CHANGED, tmp_path / "a.txt")

        assert task is not None
        assert task.result().ok
        client.put_file_contents.assert_awaited_once()
        assert client.put_file_contents.call_args[0][:2] == ("/dav/a.txt", b"hello")

    def test_paused_makes_no_remote_calls(self, controller, context, client, tmp_path):
        """Test nothing reaches the remote store while paused."""
        context.paused = True
        (tmp_path / "a.txt").write_text("hello")

        for kind in FileEventKind:
            assert dispatch(controller, kind, tmp_path / "a.txt") is None

        client.exists.assert_not_called()
        client.put_file_contents.assert_not_called()
        client.delete_file.assert_not_called()

    def test_resume_enables_dispatch(self, controller, context, client, tmp_path):
        """Test events after un-pausing produce remote calls."""
        context.paused = True
        (tmp_path / "a.txt").write_text("hello")
        assert dispatch(controller, "created", tmp_path / "a.txt") is None

        context.paused = False
        assert dispatch(controller, "created", tmp_path / "a.txt") is not None
        client.put_file_contents.assert_awaited_once()

    def test_disconnected_is_inert(self, controller, connection, client, tmp_path):
        """Test events are ignored while disconnected even if running."""
        connection.client = None
        connection.connected = False
        (tmp_path / "a.txt").write_text("hello")

        assert dispatch(controller, FileEventKind.CHANGED, tmp_path / "a.txt") is None
        client.put_file_contents.assert_not_called()

    def test_hidden_paths_are_ignored(self, controller, client, tmp_path):
        """Test dot-files and files in dot-directories are not synced."""
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text("[core]")
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / ".env").write_text("secret")
        (tmp_path / "src" / "env").write_text("public")

        assert dispatch(controller, "changed", tmp_path / ".git" / "config") is None
        assert dispatch(controller, "changed", tmp_path / "src" / ".env") is None
        assert dispatch(controller, "changed", tmp_path / "src" / "env") is not None
        assert client.put_file_contents.await_count == 1

    def test_incomplete_config_is_inert(self, controller, context, client, tmp_path):
        """Test nothing is dispatched without a path configuration."""
        context.path_config = PathConfig("", "")
        (tmp_path / "a.txt").write_text("hello")
        assert dispatch(controller, "changed", tmp_path / "a.txt") is None


class TestEventKinds:
    """Tests for event kind handling."""

    def test_delete_event(self, controller, client, tmp_path):
        """Test a delete event deletes the remote file."""
        dispatch(controller, FileEventKind.DELETED, tmp_path / "old.txt")
        client.delete_file.assert_awaited_once_with("/dav/old.txt")

    def test_directory_create_is_ignored(self, controller, client, tmp_path):
        """Test directory creation and modification produce no operation."""
        (tmp_path / "new").mkdir()
        assert dispatch(controller, "created", tmp_path / "new", True) is None
        assert dispatch(controller, "changed", tmp_path / "new", True) is None
        client.create_directory.assert_not_called()

    def test_directory_delete_is_forwarded(self, controller, client, tmp_path):
        """Test deleting a directory deletes the remote collection."""
        dispatch(controller, "deleted", tmp_path / "gone", True)
        client.delete_file.assert_awaited_once_with("/dav/gone")

    def test_failed_dispatch_does_not_raise(self, controller, client, tmp_path):
        """Test a failing operation is contained in its task."""
        client.put_file_contents.side_effect = OSError("disk on fire")
        (tmp_path / "a.txt").write_text("hello")

        task = dispatch(controller, "changed", tmp_path / "a.txt")
        assert not task.result().ok


class TestSubscription:
    """Tests for subscribing to a watch source."""

    def test_subscribe_starts_source(self, controller, tmp_path):
        """Test subscribe starts watching the local base path."""
        source = Mock()
        controller.subscribe(source)

        source.start.assert_called_once_with(str(tmp_path), controller.on_watch_event)
        assert controller.subscribed

    def test_resubscribe_stops_previous_source(self, controller):
        """Test a new subscription replaces the old one."""
        first, second = Mock(), Mock()
        controller.subscribe(first)
        controller.subscribe(second)

        first.stop.assert_called_once()
        second.start.assert_called_once()

    def test_unsubscribe(self, controller):
        """Test unsubscribe stops the source."""
        source = Mock()
        controller.subscribe(source)
        controller.unsubscribe()

        source.stop.assert_called_once()
        assert not controller.subscribed


class TestOrdering:
    """Tests for the ordering of overlapping dispatches."""

    def _gated_put(self, remote):
        """A put whose first call blocks until released."""
        first_started = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def put(path, data, overwrite=True, on_progress=None):
            calls.append(data)
            if len(calls) == 1:
                first_started.set()
                await release.wait()
            remote[path] = data

        return put, first_started, release, calls

    def test_last_completion_wins_without_serialization(self, controller, client, tmp_path):
        """Test overlapping uploads are unordered: the slower, older one wins."""
        target = tmp_path / "a.txt"
        remote = {}

        async def run():
            put, first_started, release, calls = self._gated_put(remote)
            client.put_file_contents.side_effect = put

            target.write_text("v1")
            first = controller.handle_event("changed", str(target))
            await first_started.wait()

            target.write_text("v2")
            second = controller.handle_event("changed", str(target))
            await second
            assert remote["/dav/a.txt"] == b"v2"

            release.set()
            await first

        asyncio.run(run())
        # Known limitation: the stale content finished last and is what remains
        assert remote["/dav/a.txt"] == b"v1"

    def test_serialize_per_path_keeps_order(self, context, client, tmp_path):
        """Test per-path serialization applies edits in dispatch order."""
        controller = EventSyncController(
            context, SyncOperations(Mock(spec=OutputFormatter)), serialize_per_path=True
        )
        target = tmp_path / "a.txt"
        remote = {}

        async def run():
            put, first_started, release, calls = self._gated_put(remote)
            client.put_file_contents.side_effect = put

            target.write_text("v1")
            first = controller.handle_event("changed", str(target))
            await first_started.wait()

            target.write_text("v2")
            second = controller.handle_event("changed", str(target))
            for _ in range(5):
                await asyncio.sleep(0)
            assert calls == [b"v1"]

            release.set()
            await asyncio.gather(first, second)
            return calls

        calls = asyncio.run(run())
        assert calls == [b"v1", b"v2"]
        assert remote["/dav/a.txt"] == b"v2"

    def test_serialize_per_path_releases_locks(self, context, client, tmp_path):
        """Test per-path locks are dropped once no dispatch waits for them."""
        controller = EventSyncController(
            context, SyncOperations(Mock(spec=OutputFormatter)), serialize_per_path=True
        )
        (tmp_path / "a.txt").write_text("hello")

        dispatch(controller, "changed", tmp_path / "a.txt")

        assert controller._locks == {}
        assert controller.in_flight == 0
