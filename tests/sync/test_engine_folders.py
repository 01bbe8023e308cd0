"""Reconciliation engine tests for folders.

Tests folder creation (marker files) and deletion of a folder with all its
notes, online and offline.
"""

from __future__ import annotations

import pytest

from commitpad.core.connectivity import ConnectivityMonitor
from commitpad.core.errors import UnknownRemoteError
from commitpad.core.models import SyncStatus
from commitpad.core.sync import ReconciliationEngine
from commitpad.core.validation import ValidationError

from tests.helpers import FakeContentStore, git_blob_sha


@pytest.mark.sync
class TestCreateFolder:
    """Test ReconciliationEngine.create_folder."""

    def test_create_writes_marker(
        self, engine: ReconciliationEngine, remote: FakeContentStore
    ) -> None:
        folder = engine.create_folder("Ideas")

        assert folder.name == "Ideas"
        assert folder.path == "Ideas"
        assert folder.synced
        assert folder.marker_sha == git_blob_sha("")
        assert remote.files == {"Ideas/.gitkeep": ""}
        assert remote.commits == [("put", "Ideas/.gitkeep", "Create folder: Ideas")]

    def test_create_is_idempotent(
        self, engine: ReconciliationEngine, remote: FakeContentStore
    ) -> None:
        first = engine.create_folder("Ideas")
        second = engine.create_folder(" Ideas ")
        assert second == first
        assert len(engine.folders) == 1
        assert len(remote.commits) == 1

    def test_create_existing_remote_folder(
        self, engine: ReconciliationEngine, remote: FakeContentStore
    ) -> None:
        """Test that a marker written by another device is reused."""
        remote.write("Ideas/.gitkeep", "")
        folder = engine.create_folder("Ideas")
        assert folder.synced
        assert remote.commits == []

    def test_invalid_name(self, engine: ReconciliationEngine) -> None:
        with pytest.raises(ValidationError):
            engine.create_folder("a/b")
        assert engine.folders == []

    def test_create_offline_then_sync(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        monitor.set_online(False)
        folder = engine.create_folder("Ideas")
        assert not folder.synced

        monitor.set_online(True)
        assert engine.sync_status is SyncStatus.PENDING
        result = engine.sync_notes()

        assert result.folders_created == 1
        assert "Ideas/.gitkeep" in remote.files
        assert engine.folders[0].synced
        assert engine.folders[0].id == folder.id

    def test_empty_folder_survives_fetch(
        self, make_engine, remote: FakeContentStore
    ) -> None:
        make_engine().create_folder("Empty")
        other = make_engine(cache_name="other-device.json")
        other.fetch_all()
        assert [f.name for f in other.folders] == ["Empty"]


@pytest.mark.sync
class TestDeleteFolder:
    """Test ReconciliationEngine.delete_folder."""

    @pytest.fixture
    def populated(self, engine: ReconciliationEngine) -> ReconciliationEngine:
        engine.create_note("A", "a", folder="Ideas")
        engine.create_note("B", "b", folder="Ideas")
        engine.create_note("Root", "r")
        return engine

    def test_delete_online(
        self, populated: ReconciliationEngine, remote: FakeContentStore
    ) -> None:
        folder = populated.get_folder_by_name("Ideas")

        assert populated.delete_folder(folder.id) == folder

        assert [n.title for n in populated.notes] == ["Root"]
        assert populated.folders == []
        assert populated.tombstones == []
        assert populated.error is None
        assert not any(path.startswith("Ideas/") for path in remote.files)
        assert len(remote.files) == 1

    def test_delete_unknown(self, engine: ReconciliationEngine) -> None:
        assert engine.delete_folder("missing") is None

    def test_delete_offline_then_sync(
        self,
        populated: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        folder = populated.get_folder_by_name("Ideas")
        monitor.set_online(False)

        populated.delete_folder(folder.id)

        assert all(n.folder != "Ideas" for n in populated.notes)
        assert len(populated.tombstones) == 3
        assert remote.sha("Ideas/.gitkeep")

        monitor.set_online(True)
        populated.fetch_all()
        # Pending deletions hide the remote folder and its notes
        assert [n.title for n in populated.notes] == ["Root"]
        assert populated.folders == []

        result = populated.sync_notes()

        assert result.deleted == 3
        assert not any(path.startswith("Ideas/") for path in remote.files)
        assert populated.tombstones == []
        assert populated.sync_status is SyncStatus.SYNCED

    def test_partial_remote_failure(
        self,
        populated: ReconciliationEngine,
        remote: FakeContentStore,
    ) -> None:
        """Test that the local view is final even if remote deletions fail."""
        folder = populated.get_folder_by_name("Ideas")
        failing = next(n for n in populated.notes if n.title == "A")
        remote.fail_paths[failing.path] = UnknownRemoteError("Server Error", status=500)

        populated.delete_folder(folder.id)

        assert all(n.folder != "Ideas" for n in populated.notes)
        assert populated.get_folder_by_name("Ideas") is None
        assert populated.error == "Folder 'Ideas' deleted locally; 1 remote deletion(s) failed"
        assert failing.path in remote.files
        assert "Ideas/.gitkeep" not in remote.files

    def test_delete_removes_untracked_files(
        self, engine: ReconciliationEngine, remote: FakeContentStore
    ) -> None:
        """Test that files the engine does not track go with the folder."""
        remote.write("Ideas/.gitkeep", "")
        remote.write("Ideas/note_1.md", "# One\nfirst")
        remote.write("Ideas/diagram.png", "binary")
        engine.fetch_all()
        folder = engine.get_folder_by_name("Ideas")

        engine.delete_folder(folder.id)
        result = engine.sync_notes()

        assert result.success
        assert not any(path.startswith("Ideas/") for path in remote.files)
        assert engine.folders == []
        assert engine.error is None

    def test_delete_offline_removes_notes_added_remotely(
        self,
        populated: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        folder = populated.get_folder_by_name("Ideas")
        monitor.set_online(False)
        populated.delete_folder(folder.id)
        remote.write("Ideas/note_9.md", "# Other device\nnew")
        monitor.set_online(True)

        result = populated.sync_notes()

        assert result.deleted == 3
        assert not any(path.startswith("Ideas/") for path in remote.files)
        assert [n.title for n in populated.notes] == ["Root"]
        assert populated.folders == []

    def test_recreate_deleted_folder_offline(
        self,
        populated: ReconciliationEngine,
        monitor: ConnectivityMonitor,
    ) -> None:
        folder = populated.get_folder_by_name("Ideas")
        monitor.set_online(False)
        populated.delete_folder(folder.id)

        populated.create_folder("Ideas")

        assert not any(t.is_folder for t in populated.tombstones)
        assert populated.get_folder_by_name("Ideas") is not None
