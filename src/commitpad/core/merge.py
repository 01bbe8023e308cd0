"""Merge of fetched remote state into the local note/folder set.

This module is pure: no network, no cache, no clock. Given the local notes
and the notes just fetched from the remote, it decides per path what the
local set becomes. Local edits are never discarded: a local note is only
overwritten when it is clean, and divergence while dirty becomes an
explicit conflict. Content is never merged automatically.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from .models import Folder, Note, NoteState, Tombstone
from .remote_files import encode_note

__all__ = ["MergeOutcome", "merge_fetched", "merge_folders", "same_document"]


@dataclass
class MergeOutcome:
    """Result of merging fetched notes into the local set.

    Attributes:
        notes: The new local note set
        added: Paths added from the remote
        replaced: Paths of clean notes refreshed from the remote
        dropped: Paths of clean notes removed because the remote lost them
        conflicts: Paths newly marked conflicted
        converged: Paths of pending notes found identical on the remote
    """

    notes: List[Note] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    replaced: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    converged: List[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def same_document(a: Note, b: Note) -> bool:
    """Check whether two notes serialize to the same file text."""
    return a.title == b.title and a.content == b.content


def _merge_pending(local: Note, fetched: Note, outcome: MergeOutcome) -> Note:
    """Merge a fetched note into a local note with unpushed changes."""
    if same_document(local, fetched) and local.previous_path is None:
        outcome.converged.append(local.path)
        return replace(
            fetched,
            last_modified=local.last_modified,
        )

    if fetched.remote_sha == local.remote_sha:
        # Remote unchanged since we last read it: the edit is just pending
        return local

    if local.conflict_sha == fetched.remote_sha:
        return local

    if local.state is not NoteState.CONFLICTED:
        outcome.conflicts.append(local.path)
    return replace(
        local,
        state=NoteState.CONFLICTED,
        conflict_content=encode_note(fetched.title, fetched.content),
        conflict_sha=fetched.remote_sha,
    )


def _orphan_pending(local: Note, remote_paths: Set[str]) -> Note:
    """Handle a pending note whose file is absent from the remote."""
    if local.previous_path is not None:
        if local.previous_path in remote_paths:
            return local
        # The old file of a pending move is gone as well
        return replace(local, previous_path=None, remote_sha=None)

    if local.remote_sha is None:
        return local

    # Remote deleted the file while it was being edited; recreate on push
    state = NoteState.DIRTY if local.state is NoteState.CONFLICTED else local.state
    return replace(
        local,
        state=state,
        remote_sha=None,
        conflict_content=None,
        conflict_sha=None,
    )


def merge_fetched(
    local_notes: Iterable[Note],
    fetched_notes: Iterable[Note],
    tombstones: Iterable[Tombstone] = (),
) -> MergeOutcome:
    """Three-way merge keyed by path.

    Args:
        local_notes: Current local notes, in display order
        fetched_notes: Clean notes just built from the remote
        tombstones: Deletions not yet pushed; matching remote files are
            not resurrected

    Returns:
        MergeOutcome with the new note set and what changed
    """
    outcome = MergeOutcome()
    fetched_by_path: Dict[str, Note] = {n.path: n for n in fetched_notes}
    remote_paths = set(fetched_by_path)

    local_list = list(local_notes)
    local_paths = {n.path for n in local_list}
    # Old locations of pending moves still exist remotely until pushed
    claimed_paths = {
        n.previous_path for n in local_list if not n.synced and n.previous_path
    }
    deleted = {(t.path, t.sha) for t in tombstones if not t.is_folder}
    deleted_folders = {t.path for t in tombstones if t.is_folder}

    for local in local_list:
        fetched = fetched_by_path.get(local.path)

        if fetched is None:
            if local.synced:
                outcome.dropped.append(local.path)
                continue
            outcome.notes.append(_orphan_pending(local, remote_paths))
            continue

        if local.synced:
            # Remote is authoritative when no local edit is pending
            if fetched.remote_sha == local.remote_sha and same_document(local, fetched):
                outcome.notes.append(local)
            else:
                outcome.replaced.append(local.path)
                outcome.notes.append(fetched)
            continue

        outcome.notes.append(_merge_pending(local, fetched, outcome))

    for path in sorted(remote_paths - local_paths):
        fetched = fetched_by_path[path]
        if path in claimed_paths or (path, fetched.remote_sha) in deleted:
            continue
        if fetched.folder in deleted_folders:
            continue
        outcome.notes.append(fetched)
        outcome.added.append(path)

    return outcome


def merge_folders(
    local_folders: Iterable[Folder],
    remote_folders: Mapping[str, Optional[str]],
    notes: Iterable[Note],
    new_id: Callable[[], str],
    deleted: Iterable[str] = (),
) -> List[Folder]:
    """Rebuild the folder set after a fetch.

    Args:
        local_folders: Current local folders
        remote_folders: Folder name -> marker sha (None if no marker)
        notes: The merged note set
        new_id: Factory for ids of folders not known locally
        deleted: Names of folders whose deletion is not pushed yet

    Returns:
        Remote folders (keeping local ids), local folders not yet pushed,
        and folders referenced by pending notes, in that order
    """
    by_name = {f.name: f for f in local_folders}
    result: List[Folder] = []
    seen: Set[str] = set(deleted)

    for name in sorted(remote_folders):
        if name in seen:
            continue
        existing = by_name.get(name)
        result.append(Folder(
            id=existing.id if existing else new_id(),
            name=name,
            path=name,
            synced=True,
            marker_sha=remote_folders[name],
        ))
        seen.add(name)

    for folder in by_name.values():
        if folder.name in seen or folder.synced:
            continue
        result.append(folder)
        seen.add(folder.name)

    for note in notes:
        if note.folder and note.folder not in seen:
            result.append(Folder(id=new_id(), name=note.folder, path=note.folder))
            seen.add(note.folder)

    return result
