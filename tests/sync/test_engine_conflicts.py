"""Reconciliation engine tests for conflict detection and resolution.

A conflict is set up by editing a note offline while another device
changes the same file.
"""

from __future__ import annotations

import pytest

from commitpad.core.connectivity import ConnectivityMonitor
from commitpad.core.models import Note, NoteState, SyncStatus
from commitpad.core.sync import ReconciliationEngine, ResolutionChoice
from commitpad.core.validation import ValidationError

from tests.helpers import FakeContentStore


def diverge(
    engine: ReconciliationEngine,
    remote: FakeContentStore,
    monitor: ConnectivityMonitor,
    local: str = "local edit",
    other: str = "remote edit",
) -> Note:
    """Create a clean note, edit it offline and change it remotely."""
    note = engine.create_note("Hello", "World")
    monitor.set_online(False)
    engine.update_note(note.id, local)
    remote.write(note.path, f"# Hello\n{other}")
    monitor.set_online(True)
    return note


@pytest.mark.sync
class TestConflictDetection:
    """Test that divergent edits become conflicts."""

    def test_sync_marks_conflict(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        """Test that a rejected write neither overwrites nor loses anything."""
        note = diverge(engine, remote, monitor)

        result = engine.sync_notes()

        assert result.conflicts == 1
        conflicted = engine.notes[0]
        assert conflicted.state is NoteState.CONFLICTED
        assert conflicted.content == "local edit"
        assert conflicted.conflict_content == "# Hello\nremote edit"
        assert conflicted.conflict_sha == remote.sha(note.path)
        assert remote.files[note.path] == "# Hello\nremote edit"
        assert engine.sync_status is SyncStatus.CONFLICTED
        assert engine.conflicts == [conflicted]

    def test_fetch_marks_conflict(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        diverge(engine, remote, monitor)

        engine.fetch_all()

        assert engine.notes[0].state is NoteState.CONFLICTED
        assert engine.notes[0].content == "local edit"

    def test_repeated_sync_keeps_single_conflict(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        diverge(engine, remote, monitor)
        engine.sync_notes()
        engine.sync_notes()
        assert len(engine.notes) == 1
        assert len(engine.conflicts) == 1

    def test_identical_edits_converge(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        note = diverge(engine, remote, monitor, local="same", other="same")

        result = engine.sync_notes()

        assert result.conflicts == 0
        assert engine.notes[0].synced
        assert engine.notes[0].id == remote.sha(note.path)
        assert engine.sync_status is SyncStatus.SYNCED

    def test_edit_of_conflicted_note_stays_local(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        note = diverge(engine, remote, monitor)
        engine.sync_notes()
        commits = len(remote.commits)

        edited = engine.update_note(engine.notes[0].id, "more local work")

        assert edited.state is NoteState.CONFLICTED
        assert edited.content == "more local work"
        assert len(remote.commits) == commits
        assert remote.files[note.path] == "# Hello\nremote edit"

    def test_move_keeps_remote_edit_of_old_file(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> None:
        """Test that a move never deletes an old file changed elsewhere."""
        note = engine.create_note("Hello", "World")
        monitor.set_online(False)
        moved = engine.update_note(note.id, "World", folder="Ideas")
        remote.write(note.path, "# Hello\nchanged elsewhere")
        monitor.set_online(True)

        engine.sync_notes()

        assert remote.files[note.path] == "# Hello\nchanged elsewhere"
        assert remote.files[moved.path] == "# Hello\nWorld"
        assert sorted(n.path for n in engine.notes) == sorted([moved.path, note.path])
        assert all(n.synced for n in engine.notes)


@pytest.mark.sync
class TestConflictResolution:
    """Test ReconciliationEngine.resolve_conflict."""

    @pytest.fixture
    def conflicted(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
    ) -> Note:
        diverge(engine, remote, monitor)
        engine.sync_notes()
        return engine.conflicts[0]

    def test_keep_local(
        self, engine: ReconciliationEngine, remote: FakeContentStore, conflicted: Note
    ) -> None:
        resolved = engine.resolve_conflict(conflicted.id, ResolutionChoice.KEEP_LOCAL)

        assert resolved.synced
        assert remote.files[conflicted.path] == "# Hello\nlocal edit"
        assert resolved.id == remote.sha(conflicted.path)
        assert engine.sync_status is SyncStatus.SYNCED

    def test_keep_remote(
        self, engine: ReconciliationEngine, remote: FakeContentStore, conflicted: Note
    ) -> None:
        commits = len(remote.commits)

        resolved = engine.resolve_conflict(conflicted.id, ResolutionChoice.KEEP_REMOTE)

        assert resolved.synced
        assert resolved.content == "remote edit"
        assert resolved.id == remote.sha(conflicted.path)
        assert resolved.conflict_content is None
        assert len(remote.commits) == commits
        assert engine.conflicts == []

    def test_choice_as_string(self, engine: ReconciliationEngine, conflicted: Note) -> None:
        resolved = engine.resolve_conflict(conflicted.id, "keep_remote")
        assert resolved.synced

    def test_keep_local_offline(
        self,
        engine: ReconciliationEngine,
        remote: FakeContentStore,
        monitor: ConnectivityMonitor,
        conflicted: Note,
    ) -> None:
        """Test that an offline resolution is pushed by the next sync."""
        monitor.set_online(False)
        resolved = engine.resolve_conflict(conflicted.id, ResolutionChoice.KEEP_LOCAL)
        assert resolved.state is NoteState.DIRTY

        monitor.set_online(True)
        engine.sync_notes()
        assert remote.files[conflicted.path] == "# Hello\nlocal edit"
        assert engine.conflicts == []

    def test_invalid_choice(self, engine: ReconciliationEngine, conflicted: Note) -> None:
        with pytest.raises(ValidationError):
            engine.resolve_conflict(conflicted.id, "merge")
        assert engine.notes[0].is_conflicted

    def test_not_conflicted(self, engine: ReconciliationEngine) -> None:
        note = engine.create_note("Clean", "x")
        with pytest.raises(ValidationError):
            engine.resolve_conflict(note.id, ResolutionChoice.KEEP_LOCAL)

    def test_unknown_note(self, engine: ReconciliationEngine) -> None:
        assert engine.resolve_conflict("missing", ResolutionChoice.KEEP_LOCAL) is None
