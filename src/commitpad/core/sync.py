"""Reconciliation engine for CommitPad.

This module keeps three views of the notes consistent:
- the in-memory note/folder set the presentation layer reads
- the local cache (durable mirror, updated after every mutation)
- the remote content store (source of truth)

Every mutation is applied locally first (optimistic) and then pushed
with a compare-and-swap write keyed on the last-known content hash. A
write rejected because the remote moved on routes the note to the
conflicted state; it is never retried blindly and never merged.

Operations are serialized by a re-entrant lock, so the engine behaves as
one logical task queue even when called from several threads (the HTTP
API serves requests concurrently).

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import contextlib
import functools
import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional, Set, Tuple, Union

from uuid6 import uuid7

from .cache import LocalCache
from .connectivity import ConnectivityMonitor
from .errors import (
    Conflict,
    NetworkUnavailable,
    NotFound,
    SyncError,
    Unauthorized,
    UnknownRemoteError,
)
from .github_client import RemoteContentStore
from .merge import merge_fetched, merge_folders
from .models import (
    Folder,
    Note,
    NoteState,
    Session,
    SyncStatus,
    Tombstone,
    derive_sync_status,
)
from .remote_files import (
    RemoteFileAdapter,
    decode_note,
    encode_note,
    folder_of,
    heading_title,
    move_path,
    note_path,
    strip_title_heading,
)
from .timestamp_utils import current_epoch_ms, current_iso_timestamp
from .validation import (
    ValidationError,
    validate_folder_name,
    validate_note_content,
    validate_note_title,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ReconciliationEngine",
    "SyncResult",
    "ResolutionChoice",
    "DEFAULT_TITLE",
    "UNAUTHORIZED_MESSAGE",
]

DEFAULT_TITLE = "Untitled"
UNAUTHORIZED_MESSAGE = "Not authorized: sign in again"

StoreFactory = Callable[[Session], RemoteContentStore]
StatusListener = Callable[[SyncStatus], None]


class ResolutionChoice(Enum):
    """How to resolve a conflicted note."""

    KEEP_LOCAL = "keep_local"  # force the local version over the remote one
    KEEP_REMOTE = "keep_remote"  # discard the local edit


@dataclass
class SyncResult:
    """Result of a sync pass."""

    success: bool = True
    pushed: int = 0  # Notes written to the remote
    deleted: int = 0  # Pending deletions applied
    folders_created: int = 0
    conflicts: int = 0  # Notes left conflicted
    errors: List[str] = field(default_factory=list)


def engine_operation(error_message: str) -> Callable:
    """Decorator applying the failure policy of public engine operations.

    The wrapped method runs under the engine lock with ``loading`` set and
    ``error`` reset. With no repository selected it is a no-op returning
    None. Remote failures never propagate: they are recorded in ``error``
    (or mark the monitor offline) and the method returns None. Caller input
    errors (ValidationError) do propagate. The state is mirrored to the
    cache whatever happens.
    """

    def decorator(method: Callable) -> Callable:
        @functools.wraps(method)
        def wrapper(self: "ReconciliationEngine", *args: Any, **kwargs: Any) -> Any:
            if self.session.repository is None:
                logger.debug(f"{method.__name__}: no repository selected")
                return None

            with self._lock:
                self.loading = True
                self.error = None
                try:
                    return method(self, *args, **kwargs)
                except SyncError as e:
                    self._handle_failure(e, error_message)
                    return None
                finally:
                    self.loading = False
                    self._persist()
                    self._notify()

        return wrapper

    return decorator


class ReconciliationEngine:
    """Local-first sync engine for notes stored in a remote repository.

    Attributes:
        session: Current session (token + repository)
        notes: In-memory note set, in display order
        folders: In-memory folder set
        tombstones: Deletions not yet pushed
        current_note_id: Id of the note open in the presentation layer
        loading: True while an operation runs
        error: User-visible message of the last failed operation
    """

    def __init__(
        self,
        session: Session,
        cache: LocalCache,
        monitor: ConnectivityMonitor,
        store_factory: StoreFactory,
        commit_templates: Optional[Mapping[str, str]] = None,
        clock: Callable[[], int] = current_epoch_ms,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        """Initialize the engine and load the cached state.

        Args:
            session: Session to start with
            cache: Local cache to mirror state into
            monitor: Connectivity monitor (subscribed to once, here)
            store_factory: Builds the remote store for a session
            commit_templates: Commit message templates by operation kind
            clock: Epoch-milliseconds source used to name new note files
            id_factory: Source of temporary ids for never-pushed notes
        """
        self.session = session
        self.cache = cache
        self.monitor = monitor
        self.store_factory = store_factory
        self.commit_templates = dict(commit_templates or {})
        self.clock = clock
        self.new_id = id_factory or (lambda: uuid7().hex)

        self.notes: List[Note] = []
        self.folders: List[Folder] = []
        self.tombstones: List[Tombstone] = []
        self.current_note_id: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None

        self._lock = threading.RLock()
        self._remote: Optional[RemoteFileAdapter] = None
        self._status_listeners: List[StatusListener] = []
        self._last_status: Optional[SyncStatus] = None

        self._load_cache()
        self._unsubscribe = monitor.subscribe(self._on_connectivity_change)

    # ===== Read-only state =====

    @property
    def repository_name(self) -> Optional[str]:
        repository = self.session.repository
        return repository.full_name if repository else None

    @property
    def sync_status(self) -> SyncStatus:
        with self._lock:
            return derive_sync_status(
                self.monitor.online, self.notes, self.folders, self.tombstones
            )

    @property
    def current_note(self) -> Optional[Note]:
        if self.current_note_id is None:
            return None
        return self.get_note(self.current_note_id)

    @property
    def conflicts(self) -> List[Note]:
        return [n for n in self.notes if n.is_conflicted]

    def get_note(self, note_id: str) -> Optional[Note]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        for folder in self.folders:
            if folder.id == folder_id:
                return folder
        return None

    def get_folder_by_name(self, name: str) -> Optional[Folder]:
        for folder in self.folders:
            if folder.name == name:
                return folder
        return None

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a callback invoked whenever the sync status changes.

        Returns:
            A function that removes the listener
        """
        self._status_listeners.append(listener)

        def remove() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)

        return remove

    def close(self) -> None:
        """Stop listening to connectivity transitions."""
        self._unsubscribe()

    # ===== Session =====

    def update_session(self, session: Session) -> None:
        """Replace the session.

        A new token only rebuilds the remote client. A different repository
        invalidates the local state and the cache and triggers a fresh
        fetch.
        """
        with self._lock:
            previous = self.session.repository
            self.session = session
            self._remote = None

            if previous == session.repository:
                logger.debug("Session token refreshed")
                return

            logger.info(
                f"Repository changed from "
                f"{previous.full_name if previous else None} to {self.repository_name}"
            )
            self.cache.clear()
            self.notes = []
            self.folders = []
            self.tombstones = []
            self.current_note_id = None
            self.error = None
            self._notify()

        if session.repository is not None:
            self.fetch_all()

    # ===== Public operations =====

    @engine_operation("Failed to fetch notes")
    def fetch_all(self) -> List[Note]:
        """Fetch every note from the remote and merge it into the local set.

        Offline, the cached notes are returned unchanged.
        """
        if not self._online():
            logger.info("Offline; keeping cached notes")
            return list(self.notes)
        self._fetch()
        return list(self.notes)

    @engine_operation("Failed to create note")
    def create_note(
        self,
        title: str,
        content: str,
        folder: Optional[str] = None,
    ) -> Optional[Note]:
        """Create a note, visible immediately, pushed if online.

        Args:
            title: Note title (derived from a leading heading, or
                "Untitled", when blank)
            content: Markdown body; a leading ``# <title>`` line is dropped
            folder: Folder to create the note in, or None for the root

        Returns:
            The created note (clean if the push succeeded)
        """
        validate_note_content(content)
        title = self._resolve_title(title, content)
        folder_name = validate_folder_name(folder) if folder else None
        content = strip_title_heading(title, content)

        note = Note(
            id=self.new_id(),
            title=title,
            content=content,
            path=self._unique_path(folder_name),
            last_modified=current_iso_timestamp(),
            state=NoteState.DIRTY,
            folder=folder_name,
        )
        self.notes.append(note)
        if folder_name:
            self._ensure_folder(folder_name)
        self._persist()
        logger.info(f"Created note {note.path}")

        if not self._online():
            return note

        with self._remote_guard("Failed to create note"):
            if folder_name:
                self._push_pending_folder(folder_name)
            note = self._push_note(note)
        return self.get_note(note.id) or note

    @engine_operation("Failed to update note")
    def update_note(
        self,
        note_id: str,
        content: str,
        folder: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Optional[Note]:
        """Edit a note's content and optionally move it to another folder.

        Without an explicit title, a leading ``# heading`` line in content
        becomes the new title, unless content is the stored body unchanged
        or starts with the same line as the stored body. Moving is
        delete-old-path plus create-new-path, pushed together.

        Args:
            note_id: Id of the note
            content: New Markdown body
            folder: None keeps the folder, "" moves to the root, a name
                moves into that folder
            title: New title; content is then taken verbatim

        Returns:
            The updated note, or None if no such note exists
        """
        validate_note_content(content)
        note = self.get_note(note_id)
        if note is None:
            logger.warning(f"update_note: unknown note {note_id}")
            return None

        if title is not None:
            title = validate_note_title(title)
        else:
            title, content = self._split_edited_heading(note, content)

        path = note.path
        previous_path = note.previous_path
        new_folder = note.folder
        if folder is not None:
            new_folder = validate_folder_name(folder) if folder else None

        if new_folder != note.folder:
            path = move_path(note.path, new_folder)
            if self._path_taken(path, exclude=note.id):
                path = self._unique_path(new_folder)
            if note.remote_sha and previous_path is None:
                previous_path = note.path
            if path == previous_path:
                # Moved back to where the remote file is
                previous_path = None
            logger.info(f"Moving {note.path} -> {path}")

        if (
            note.synced
            and title == note.title
            and content == note.content
            and path == note.path
        ):
            return note

        state = NoteState.CONFLICTED if note.is_conflicted else NoteState.DIRTY
        updated = replace(
            note,
            title=title,
            content=content,
            path=path,
            folder=new_folder,
            previous_path=previous_path,
            last_modified=current_iso_timestamp(),
            state=state,
        )
        self._put_note(note.id, updated)
        if new_folder:
            self._ensure_folder(new_folder)
        self._persist()

        if updated.is_conflicted or not self._online():
            return updated

        with self._remote_guard("Failed to update note"):
            if new_folder:
                self._push_pending_folder(new_folder)
            updated = self._push_note(updated)
        return self.get_note(updated.id) or updated

    @engine_operation("Failed to delete note")
    def delete_note(self, note_id: str) -> Optional[Note]:
        """Delete a note locally now and remotely if possible.

        A deletion that cannot reach the remote is kept as a tombstone and
        replayed by the next sync. A deletion the remote rejects (the file
        changed or vanished) is logged and dropped; the note is not
        restored locally.

        Returns:
            The deleted note, or None if no such note exists
        """
        note = self.get_note(note_id)
        if note is None:
            logger.warning(f"delete_note: unknown note {note_id}")
            return None

        tombstone = self._remove_note(note)
        self._persist()
        logger.info(f"Deleted note {note.path} locally")

        if tombstone is not None and self._online():
            with self._remote_guard("Failed to delete note"):
                self._replay_tombstone(tombstone)
        return note

    @engine_operation("Failed to create folder")
    def create_folder(self, name: str) -> Optional[Folder]:
        """Create a folder, writing its marker file if online.

        Creating a folder that already exists returns the existing one.
        """
        name = validate_folder_name(name)
        folder = self._ensure_folder(name)
        self._persist()

        if folder.synced or not self._online():
            return folder

        with self._remote_guard("Failed to create folder"):
            folder = self._push_folder(folder)
        return folder

    @engine_operation("Failed to delete folder")
    def delete_folder(self, folder_id: str) -> Optional[Folder]:
        """Delete a folder and every note in it.

        The local set reflects the deletion immediately. Remote deletions
        are best effort: each member note goes through the note-delete path,
        then every other file under the folder, markers last. Failures are
        reported in ``error``, not rolled back.

        Returns:
            The deleted folder, or None if no such folder exists
        """
        folder = self.get_folder(folder_id)
        if folder is None:
            logger.warning(f"delete_folder: unknown folder {folder_id}")
            return None

        members = [n for n in self.notes if n.folder == folder.name]
        pending: List[Tombstone] = []
        for note in members:
            tombstone = self._remove_note(note)
            if tombstone is not None:
                pending.append(tombstone)

        self.folders = [f for f in self.folders if f.id != folder.id]
        folder_tombstone = Tombstone(
            path=folder.name, sha=folder.marker_sha or "", kind="folder"
        )
        self._add_tombstone(folder_tombstone)
        pending.append(folder_tombstone)
        self._persist()
        logger.info(f"Deleted folder {folder.name} ({len(members)} notes) locally")

        if not self._online():
            return folder

        failed: Set[str] = set()
        for tombstone in pending:
            try:
                if tombstone.is_folder:
                    failed.update(self._replay_folder_tombstone(tombstone))
                elif not self._replay_tombstone(tombstone):
                    failed.add(tombstone.path)
            except (NetworkUnavailable, Unauthorized) as e:
                self._handle_failure(e, "Failed to delete folder")
                return folder
            except SyncError as e:
                logger.error(f"Failed to delete {tombstone.path}: {e}")
                self._drop_tombstone(tombstone)
                failed.add(tombstone.path)

        if failed:
            self.error = (
                f"Folder '{folder.name}' deleted locally; "
                f"{len(failed)} remote deletion(s) failed"
            )
        return folder

    @engine_operation("Failed to sync notes")
    def sync_notes(self) -> Optional[SyncResult]:
        """Push everything pending, then fetch.

        Order: pending deletions (notes before folders), folder markers,
        dirty and conflicted notes. A Conflict marks the note conflicted;
        it is not retried. Stops at the first sign of being offline or
        unauthorized.
        """
        result = SyncResult()
        if not self._online():
            result.success = False
            result.errors.append("Offline")
            return result

        try:
            for tombstone in sorted(self.tombstones, key=lambda t: t.is_folder):
                try:
                    if self._replay_tombstone(tombstone):
                        result.deleted += 1
                except UnknownRemoteError as e:
                    self._drop_tombstone(tombstone)
                    result.errors.append(str(e))

            for folder in [f for f in self.folders if not f.synced]:
                try:
                    self._push_folder(folder)
                    result.folders_created += 1
                except UnknownRemoteError as e:
                    result.errors.append(str(e))

            for note in [n for n in self.notes if not n.synced]:
                try:
                    pushed = self._push_note(note)
                except UnknownRemoteError as e:
                    result.errors.append(str(e))
                    continue
                if pushed.synced:
                    result.pushed += 1

            self._fetch()
        except (NetworkUnavailable, Unauthorized) as e:
            self._handle_failure(e, "Failed to sync notes")
            result.success = False
            result.errors.append(str(e))

        result.conflicts = len(self.conflicts)
        if result.errors and result.success:
            result.success = False
            self.error = "Failed to sync notes"
        logger.info(
            f"Sync finished: pushed={result.pushed} deleted={result.deleted} "
            f"folders={result.folders_created} conflicts={result.conflicts}"
        )
        return result

    @engine_operation("Failed to resolve conflict")
    def resolve_conflict(
        self, note_id: str, choice: Union[ResolutionChoice, str]
    ) -> Optional[Note]:
        """Resolve a conflicted note.

        Args:
            note_id: Id of the conflicted note
            choice: ResolutionChoice.KEEP_LOCAL writes the local version over
                the remote one (keyed on the remote hash of the conflict);
                ResolutionChoice.KEEP_REMOTE discards the local edit

        Returns:
            The resolved note, or None if no such note exists

        Raises:
            ValidationError: If choice is unknown or the note is not
                conflicted
        """
        try:
            choice = ResolutionChoice(choice)
        except ValueError:
            allowed = ", ".join(c.value for c in ResolutionChoice)
            raise ValidationError("choice", f"must be one of {allowed}") from None
        note = self.get_note(note_id)
        if note is None:
            logger.warning(f"resolve_conflict: unknown note {note_id}")
            return None
        if not note.is_conflicted or note.conflict_sha is None:
            raise ValidationError("note", f"note {note_id} is not conflicted")

        if choice is ResolutionChoice.KEEP_REMOTE:
            title, content = decode_note(note.path, note.conflict_content or "")
            if note.previous_path and note.remote_sha:
                # Undoing the move is not possible; the old file comes back
                # on the next fetch
                logger.info(f"Keeping {note.previous_path} as a separate note")
            resolved = replace(
                note,
                id=note.conflict_sha,
                title=title,
                content=content,
                state=NoteState.CLEAN,
                remote_sha=note.conflict_sha,
                previous_path=None,
                conflict_content=None,
                conflict_sha=None,
                last_modified=current_iso_timestamp(),
            )
            self._put_note(note.id, resolved)
            logger.info(f"Resolved {note.path}: kept remote version")
            return resolved

        if note.previous_path and note.remote_sha:
            # The remote hash now refers to the new path; delete the old
            # file separately
            self._add_tombstone(
                Tombstone(path=note.previous_path, sha=note.remote_sha, title=note.title)
            )
        forced = replace(
            note,
            state=NoteState.DIRTY,
            remote_sha=note.conflict_sha,
            previous_path=None,
            conflict_content=None,
            conflict_sha=None,
        )
        self._put_note(note.id, forced)
        logger.info(f"Resolved {note.path}: keeping local version")
        self._persist()

        if not self._online():
            return forced

        with self._remote_guard("Failed to resolve conflict"):
            for tombstone in [t for t in self.tombstones if t.path == note.previous_path]:
                self._replay_tombstone(tombstone)
            forced = self._push_note(forced)
        return self.get_note(forced.id) or forced

    @engine_operation("Failed to select note")
    def set_current_note(self, note_id: Optional[str]) -> Optional[Note]:
        """Set (or clear, with None) the note open in the presentation layer.

        Returns:
            The current note, or None if cleared or unknown
        """
        if note_id is None:
            self.current_note_id = None
            return None
        note = self.get_note(note_id)
        if note is None:
            logger.warning(f"set_current_note: unknown note {note_id}")
            return None
        self.current_note_id = note.id
        return note

    # ===== Failure handling =====

    def _handle_failure(self, error: SyncError, error_message: str) -> None:
        """Record a remote failure in the engine state."""
        if isinstance(error, NetworkUnavailable):
            logger.info(f"Offline: {error}")
            self.monitor.report_offline()
        elif isinstance(error, Unauthorized):
            logger.warning(f"Access token rejected: {error}")
            self.error = UNAUTHORIZED_MESSAGE
        else:
            logger.error(f"{error_message}: {error}")
            self.error = error_message

    @contextlib.contextmanager
    def _remote_guard(self, error_message: str) -> Iterator[None]:
        """Swallow remote failures of the enclosed block, recording them."""
        try:
            yield
        except SyncError as e:
            self._handle_failure(e, error_message)

    # ===== Remote steps =====

    def _adapter(self) -> RemoteFileAdapter:
        if self._remote is None:
            self._remote = RemoteFileAdapter(
                self.store_factory(self.session), self.commit_templates
            )
        return self._remote

    def _online(self) -> bool:
        return self.monitor.is_online()

    def _fetch(self) -> None:
        """List, read and merge the remote tree (no failure handling)."""
        adapter = self._adapter()
        tree = adapter.list_tree()
        known = {n.path: n for n in self.notes}
        current = self.current_note
        current_path = current.path if current else None

        fetched: List[Note] = []
        for path, sha in tree.note_files:
            local = known.get(path)
            if local is not None and local.synced and local.remote_sha == sha:
                fetched.append(local)
                continue
            try:
                text, current_sha = adapter.read_file_with_sha(path)
            except NotFound:
                logger.info(f"{path} vanished during fetch; skipping")
                continue
            fetched.append(self._note_from_remote(path, text, current_sha))

        outcome = merge_fetched(self.notes, fetched, self.tombstones)
        self.notes = outcome.notes

        remote_paths = {path for path, _ in tree.note_files}
        self.tombstones = [
            t for t in self.tombstones
            if (t.path in tree.folders if t.is_folder else t.path in remote_paths)
        ]
        self.folders = merge_folders(
            self.folders,
            tree.folders,
            self.notes,
            self.new_id,
            deleted=[t.path for t in self.tombstones if t.is_folder],
        )

        if current_path is not None:
            self.current_note_id = next(
                (n.id for n in self.notes if n.path == current_path), None
            )

        logger.info(
            f"Fetched {len(fetched)} notes: {len(outcome.added)} added, "
            f"{len(outcome.replaced)} refreshed, {len(outcome.dropped)} dropped, "
            f"{len(outcome.conflicts)} conflicted"
        )

    def _push_note(self, note: Note) -> Note:
        """Write a pending note to the remote.

        Returns:
            The note after the attempt: clean, or conflicted if the remote
            diverged

        Raises:
            SyncError (other than Conflict): the note is left dirty
        """
        adapter = self._adapter()
        self._put_note(note.id, replace(note, state=NoteState.WRITING))
        self._persist()

        current = note
        try:
            if current.previous_path:
                self._delete_previous_path(adapter, current)
                current = replace(current, previous_path=None, remote_sha=None)

            text = encode_note(current.title, current.content)
            kind = "update" if current.remote_sha else "create"
            message = adapter.commit_message(
                kind, title=current.title, path=current.path, folder=current.folder
            )
            try:
                sha = adapter.write_file(current.path, text, current.remote_sha, message)
            except NotFound:
                if current.remote_sha is None:
                    raise
                logger.info(f"{current.path} was deleted remotely; recreating it")
                current = replace(current, remote_sha=None)
                message = adapter.commit_message(
                    "create", title=current.title, path=current.path, folder=current.folder
                )
                sha = adapter.write_file(current.path, text, None, message)
        except Conflict as e:
            logger.warning(f"Conflict writing {current.path}: {e}")
            return self._mark_conflicted(adapter, note.id, current)
        except SyncError:
            self._put_note(note.id, replace(current, state=NoteState.DIRTY))
            raise

        pushed = replace(
            current,
            id=sha,
            state=NoteState.CLEAN,
            remote_sha=sha,
            conflict_content=None,
            conflict_sha=None,
        )
        self._put_note(note.id, pushed)
        logger.info(f"Pushed {pushed.path} -> {sha}")
        return pushed

    def _delete_previous_path(self, adapter: RemoteFileAdapter, note: Note) -> None:
        """Delete the old file of a moved note."""
        message = adapter.commit_message(
            "delete", title=note.title, path=note.previous_path, folder=note.folder
        )
        try:
            adapter.delete_file(note.previous_path, note.remote_sha, message)
        except NotFound:
            logger.info(f"{note.previous_path} already gone")
        except Conflict as e:
            # The old file changed remotely; it stays as a separate note
            logger.warning(f"Not deleting {note.previous_path}: {e}")

    def _mark_conflicted(
        self, adapter: RemoteFileAdapter, note_id: str, note: Note
    ) -> Note:
        """Record the remote side of a rejected write."""
        try:
            text, sha = adapter.read_file_with_sha(note.path)
        except NotFound:
            dirty = replace(note, state=NoteState.DIRTY, remote_sha=None)
            self._put_note(note_id, dirty)
            return dirty

        title, content = decode_note(note.path, text)
        if title == note.title and content == note.content:
            # Someone already wrote exactly this
            converged = replace(
                note,
                id=sha,
                state=NoteState.CLEAN,
                remote_sha=sha,
                conflict_content=None,
                conflict_sha=None,
            )
            self._put_note(note_id, converged)
            return converged

        conflicted = replace(
            note,
            state=NoteState.CONFLICTED,
            conflict_content=encode_note(title, content),
            conflict_sha=sha,
        )
        self._put_note(note_id, conflicted)
        logger.warning(f"{note.path} is conflicted (remote {sha})")
        return conflicted

    def _push_folder(self, folder: Folder) -> Folder:
        sha = self._adapter().create_folder_marker(folder.name)
        pushed = replace(folder, synced=True, marker_sha=sha)
        self.folders = [pushed if f.id == folder.id else f for f in self.folders]
        logger.info(f"Created folder marker for {folder.name}")
        return pushed

    def _push_pending_folder(self, name: str) -> None:
        folder = self.get_folder_by_name(name)
        if folder is not None and not folder.synced:
            self._push_folder(folder)

    def _replay_tombstone(self, tombstone: Tombstone) -> bool:
        """Push one pending deletion.

        A folder deletion removes every file under the folder, not only
        the notes known locally.

        Returns:
            True if the remote deletion happened, False if the remote
            rejected it (the tombstone is dropped either way)

        Raises:
            NetworkUnavailable, Unauthorized: the tombstone is kept
        """
        adapter = self._adapter()
        try:
            if tombstone.is_folder:
                return not self._replay_folder_tombstone(tombstone)
            else:
                message = adapter.commit_message(
                    "delete",
                    title=tombstone.title,
                    path=tombstone.path,
                    folder=folder_of(tombstone.path),
                )
                adapter.delete_file(tombstone.path, tombstone.sha, message)
        except (Conflict, NotFound) as e:
            logger.warning(f"Remote deletion of {tombstone.path} not applied: {e}")
            self._drop_tombstone(tombstone)
            return False

        self._drop_tombstone(tombstone)
        logger.info(f"Deleted {tombstone.path} remotely")
        return True

    def _replay_folder_tombstone(self, tombstone: Tombstone) -> List[str]:
        """Delete every remote file under a deleted folder.

        Returns:
            Paths left behind; the tombstone is dropped either way

        Raises:
            NetworkUnavailable, Unauthorized: the tombstone is kept
        """
        left = self._adapter().delete_folder_files(tombstone.path)
        self._drop_tombstone(tombstone)
        if left:
            logger.warning(f"Folder {tombstone.path} deleted remotely except {left}")
        else:
            logger.info(f"Deleted folder {tombstone.path} remotely")
        return left

    # ===== Local state =====

    def _note_from_remote(self, path: str, text: str, sha: str) -> Note:
        title, content = decode_note(path, text)
        return Note(
            id=sha,
            title=title,
            content=content,
            path=path,
            last_modified=current_iso_timestamp(),
            state=NoteState.CLEAN,
            folder=folder_of(path),
            remote_sha=sha,
        )

    def _resolve_title(self, title: Optional[str], content: str) -> str:
        if title and title.strip():
            return validate_note_title(title)
        heading = heading_title(content.partition("\n")[0])
        return validate_note_title(heading) if heading else DEFAULT_TITLE

    def _split_edited_heading(self, note: Note, content: str) -> Tuple[str, str]:
        """Return (title, body) for edited content of ``note``.

        A body that itself opens with a heading keeps it: passing the stored
        content back, or an edit starting with the same line, is not a rename.
        """
        if content == note.content:
            return note.title, content
        first, _, rest = content.partition("\n")
        heading = heading_title(first)
        if heading is None or first == note.content.partition("\n")[0]:
            return note.title, content
        return validate_note_title(heading), rest

    def _path_taken(self, path: str, exclude: Optional[str] = None) -> bool:
        for note in self.notes:
            if note.id == exclude:
                continue
            if note.path == path or note.previous_path == path:
                return True
        return False

    def _unique_path(self, folder: Optional[str]) -> str:
        """Build a new note path, bumping the timestamp until it is free."""
        epoch_ms = self.clock()
        path = note_path(folder, epoch_ms)
        while self._path_taken(path):
            epoch_ms += 1
            path = note_path(folder, epoch_ms)
        return path

    def _put_note(self, note_id: str, note: Note) -> None:
        """Replace the note with note_id in place (its id may change)."""
        self.notes = [note if n.id == note_id else n for n in self.notes]
        if self.current_note_id == note_id:
            self.current_note_id = note.id

    def _remove_note(self, note: Note) -> Optional[Tombstone]:
        """Remove a note locally, recording a tombstone if it exists remotely."""
        self.notes = [n for n in self.notes if n.id != note.id]
        if self.current_note_id == note.id:
            self.current_note_id = None
        if not note.remote_sha:
            return None
        tombstone = Tombstone(
            path=note.previous_path or note.path,
            sha=note.remote_sha,
            title=note.title,
        )
        self._add_tombstone(tombstone)
        return tombstone

    def _ensure_folder(self, name: str) -> Folder:
        existing = self.get_folder_by_name(name)
        if existing is not None:
            return existing
        self.tombstones = [
            t for t in self.tombstones if not (t.is_folder and t.path == name)
        ]
        folder = Folder(id=self.new_id(), name=name, path=name)
        self.folders.append(folder)
        return folder

    def _add_tombstone(self, tombstone: Tombstone) -> None:
        self.tombstones = [
            t for t in self.tombstones
            if (t.path, t.kind) != (tombstone.path, tombstone.kind)
        ]
        self.tombstones.append(tombstone)

    def _drop_tombstone(self, tombstone: Tombstone) -> None:
        self.tombstones = [t for t in self.tombstones if t != tombstone]

    def _load_cache(self) -> None:
        if self.session.repository is None:
            return
        snapshot = self.cache.load(self.repository_name)
        self.notes = snapshot.notes
        self.folders = snapshot.folders
        self.tombstones = snapshot.tombstones
        self.current_note_id = snapshot.current_note_id
        logger.debug(
            f"Loaded {len(self.notes)} notes and {len(self.folders)} folders from cache"
        )

    def _persist(self) -> None:
        if self.session.repository is None:
            return
        try:
            self.cache.save(
                self.notes,
                self.folders,
                self.current_note_id,
                self.tombstones,
                repository=self.repository_name,
            )
        except OSError as e:
            logger.error(f"Failed to write cache {self.cache.path}: {e}")

    def _notify(self) -> None:
        status = self.sync_status
        if status == self._last_status:
            return
        self._last_status = status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

    def _on_connectivity_change(self, online: bool) -> None:
        logger.debug(f"Engine saw connectivity change: online={online}")
        self._notify()
