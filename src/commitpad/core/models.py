"""Data models for the CommitPad application.

This module defines immutable dataclasses representing the core entities:
Note, Folder, Tombstone, Repository and Session, plus the reconciliation
state of a note and the derived process-wide SyncStatus.

Notes and folders are persisted and served with camelCase keys
(``lastModified``, ``remoteSha``...) so the stored record keeps the layout
``{notes, folders, currentNoteId}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class NoteState(Enum):
    """Reconciliation state of a single note."""

    CLEAN = "clean"  # identical to the last fetched/written remote
    DIRTY = "dirty"  # local edit pending write
    WRITING = "writing"  # a write is in flight
    CONFLICTED = "conflicted"  # remote changed while a local edit was pending


class SyncStatus(Enum):
    """Process-wide sync status. Always derived, never set directly."""

    SYNCED = "synced"
    PENDING = "pending"
    CONFLICTED = "conflicted"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Note:
    """Represents a note stored as a Markdown file in the repository.

    Attributes:
        id: Remote content hash for remote-backed notes, UUID7 hex for
            notes that were never pushed
        title: Title shown to the user (the file's leading heading)
        content: Markdown body without the leading ``# title`` line
        path: Repository path of the file
        last_modified: ISO timestamp of the last local mutation
        state: Reconciliation state
        folder: Owning folder name (first path segment), or None
        remote_sha: Last-known remote hash (None if never pushed)
        previous_path: Old path of a move that has not been pushed yet
        conflict_content: Remote content of a detected conflict
        conflict_sha: Remote hash of a detected conflict
    """

    id: str
    title: str
    content: str
    path: str
    last_modified: str
    state: NoteState = NoteState.DIRTY
    folder: Optional[str] = None
    remote_sha: Optional[str] = None
    previous_path: Optional[str] = None
    conflict_content: Optional[str] = None
    conflict_sha: Optional[str] = None

    @property
    def synced(self) -> bool:
        return self.state is NoteState.CLEAN

    @property
    def is_conflicted(self) -> bool:
        return self.state is NoteState.CONFLICTED

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted/JSON representation."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "path": self.path,
            "folder": self.folder,
            "lastModified": self.last_modified,
            "synced": self.synced,
            "state": self.state.value,
            "remoteSha": self.remote_sha,
            "previousPath": self.previous_path,
            "conflictContent": self.conflict_content,
            "conflictSha": self.conflict_sha,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Note":
        """Create from the persisted representation.

        Records written before ``state`` existed only carry ``synced``.

        Raises:
            KeyError: If a required key is missing
            ValueError: If ``state`` holds an unknown value
        """
        state_value = data.get("state")
        if state_value is None:
            state = NoteState.CLEAN if data.get("synced") else NoteState.DIRTY
        else:
            state = NoteState(state_value)

        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            content=str(data.get("content") or ""),
            path=str(data["path"]),
            last_modified=str(data.get("lastModified") or ""),
            state=state,
            folder=data.get("folder") or None,
            remote_sha=data.get("remoteSha"),
            previous_path=data.get("previousPath"),
            conflict_content=data.get("conflictContent"),
            conflict_sha=data.get("conflictSha"),
        )


@dataclass(frozen=True)
class Folder:
    """Represents a top-level folder of the repository.

    The member notes are not stored; use folder_notes() to derive them.

    Attributes:
        id: UUID7 hex assigned locally
        name: Folder name (unique, never contains '/')
        path: Repository path (equal to name for top-level folders)
        synced: True once the folder is known to exist remotely
        marker_sha: Hash of the remote marker file, if one exists
    """

    id: str
    name: str
    path: str
    synced: bool = False
    marker_sha: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "synced": self.synced,
            "markerSha": self.marker_sha,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        name = str(data["name"])
        return cls(
            id=str(data["id"]),
            name=name,
            path=str(data.get("path") or name),
            synced=bool(data.get("synced", False)),
            marker_sha=data.get("markerSha"),
        )


@dataclass(frozen=True)
class Tombstone:
    """A deletion that could not be pushed yet (offline).

    Attributes:
        path: Repository path of the deleted note file, or the folder name
        sha: Last-known remote hash of the file ("" for folders)
        title: Title of the deleted note, for the commit message
        kind: "note" or "folder"
    """

    path: str
    sha: str
    title: str = ""
    kind: str = "note"

    @property
    def is_folder(self) -> bool:
        return self.kind == "folder"

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "sha": self.sha, "title": self.title, "kind": self.kind}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tombstone":
        kind = str(data.get("kind") or "note")
        if kind not in ("note", "folder"):
            raise ValueError(f"Unknown tombstone kind: {kind}")
        return cls(
            path=str(data["path"]),
            sha=str(data.get("sha") or ""),
            title=str(data.get("title") or ""),
            kind=kind,
        )


@dataclass(frozen=True)
class Repository:
    """The remote repository notes are stored in.

    Attributes:
        owner: Owner login
        name: Repository name
        default_branch: Branch notes are read from and committed to
    """

    owner: str
    name: str
    default_branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "name": self.name,
            "default_branch": self.default_branch,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Repository":
        return cls(
            owner=str(data["owner"]),
            name=str(data["name"]),
            default_branch=str(data.get("default_branch") or "main"),
        )


@dataclass(frozen=True)
class Session:
    """Authenticated session handed to the reconciliation engine.

    Attributes:
        token: Bearer token for the remote content store
        repository: Selected repository, or None if none is selected
        user: Authenticated user info (id, login, name, avatar_url)
    """

    token: Optional[str] = None
    repository: Optional[Repository] = None
    user: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


def folder_notes(folder: Folder, notes: Iterable[Note]) -> List[Note]:
    """Get the notes that belong to a folder."""
    return [n for n in notes if n.folder == folder.name]


def derive_sync_status(
    online: bool,
    notes: Iterable[Note],
    folders: Iterable[Folder] = (),
    tombstones: Iterable[Tombstone] = (),
) -> SyncStatus:
    """Derive the process-wide sync status.

    Offline wins over everything; then any conflicted note; then anything
    not yet pushed (notes, folder markers, deletions).
    """
    if not online:
        return SyncStatus.OFFLINE

    notes = list(notes)
    if any(n.state is NoteState.CONFLICTED for n in notes):
        return SyncStatus.CONFLICTED
    if any(not n.synced for n in notes):
        return SyncStatus.PENDING
    if any(not f.synced for f in folders) or any(True for _ in tombstones):
        return SyncStatus.PENDING
    return SyncStatus.SYNCED
