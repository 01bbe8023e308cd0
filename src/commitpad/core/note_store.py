"""Public sync API for CommitPad.

NoteStore is the thin facade the presentation layers (CLI, HTTP API) talk
to. It wires configuration, the local cache, the GitHub store and the
connectivity monitor into a ReconciliationEngine and exposes:
- Operations: fetch_notes, create_note, update_note, delete_note,
  create_folder, delete_folder, sync_notes, set_current_note,
  resolve_conflict
- Read-only state: notes, folders, current_note, sync_status, loading,
  error, conflicts

Operations never raise for remote failures; check ``error`` and
``sync_status`` afterwards. Invalid input raises ValidationError.

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from .cache import LocalCache
from .config import Config
from .conflicts import ConflictManager
from .connectivity import ConnectivityMonitor, http_probe
from .github_client import GitHubContentStore, RemoteContentStore
from .models import Folder, Note, Session, SyncStatus, folder_notes
from .sync import ReconciliationEngine, ResolutionChoice, StoreFactory, SyncResult

logger = logging.getLogger(__name__)

__all__ = ["NoteStore", "AmbiguousIdError"]


class AmbiguousIdError(LookupError):
    """An id prefix matches more than one entity."""


def _find_by_prefix(items: List[Any], prefix: str, kind: str) -> Optional[Any]:
    exact = [i for i in items if i.id == prefix]
    if exact:
        return exact[0]
    matches = [i for i in items if i.id.startswith(prefix)]
    if len(matches) > 1:
        raise AmbiguousIdError(f"{kind} ID prefix '{prefix}' is ambiguous")
    return matches[0] if matches else None


class NoteStore:
    """Facade over the reconciliation engine."""

    def __init__(self, engine: ReconciliationEngine) -> None:
        self.engine = engine
        self.conflict_manager = ConflictManager(engine)

    @classmethod
    def from_config(
        cls,
        config: Config,
        session: Optional[Session] = None,
        store_factory: Optional[StoreFactory] = None,
        monitor: Optional[ConnectivityMonitor] = None,
    ) -> "NoteStore":
        """Build a store from the configuration.

        Args:
            config: Configuration (token, repository, endpoints, templates)
            session: Session to use instead of the configured token and
                repository
            store_factory: Remote store builder (GitHubContentStore by
                default)
            monitor: Connectivity monitor (probes the API root by default)
        """
        if session is None:
            session = Session(token=config.get_token(), repository=config.get_repository())

        api_url = config.get_api_url()
        timeout = config.get_request_timeout()

        if store_factory is None:
            def store_factory(s: Session) -> RemoteContentStore:
                return GitHubContentStore(s.token, s.repository, api_url=api_url, timeout=timeout)

        if monitor is None:
            monitor = ConnectivityMonitor(
                probe=http_probe(api_url, timeout=config.get_connectivity_timeout())
            )

        engine = ReconciliationEngine(
            session=session,
            cache=LocalCache(config.get_cache_file()),
            monitor=monitor,
            store_factory=store_factory,
            commit_templates=config.get_commit_message_templates(),
        )
        return cls(engine)

    # ===== Read-only state =====

    @property
    def notes(self) -> List[Note]:
        return list(self.engine.notes)

    @property
    def folders(self) -> List[Folder]:
        return list(self.engine.folders)

    @property
    def current_note(self) -> Optional[Note]:
        return self.engine.current_note

    @property
    def sync_status(self) -> SyncStatus:
        return self.engine.sync_status

    @property
    def loading(self) -> bool:
        return self.engine.loading

    @property
    def error(self) -> Optional[str]:
        return self.engine.error

    @property
    def conflicts(self) -> List[Note]:
        return self.engine.conflicts

    @property
    def session(self) -> Session:
        return self.engine.session

    def folder_notes(self, folder: Folder) -> List[Note]:
        """Get the notes of a folder (derived, not stored)."""
        return folder_notes(folder, self.engine.notes)

    def get_note(self, note_id_prefix: str) -> Optional[Note]:
        """Find a note by full id or unique id prefix.

        Raises:
            AmbiguousIdError: If the prefix matches several notes
        """
        return _find_by_prefix(self.engine.notes, note_id_prefix, "Note")

    def get_folder(self, folder_ref: str) -> Optional[Folder]:
        """Find a folder by name, full id or unique id prefix."""
        by_name = self.engine.get_folder_by_name(folder_ref)
        if by_name is not None:
            return by_name
        return _find_by_prefix(self.engine.folders, folder_ref, "Folder")

    def status(self) -> Dict[str, Any]:
        """Get a summary of the sync state."""
        return {
            "repository": self.engine.repository_name,
            "status": self.sync_status.value,
            "online": self.engine.monitor.online,
            "loading": self.loading,
            "error": self.error,
            "notes": len(self.engine.notes),
            "unsynced": sum(1 for n in self.engine.notes if not n.synced),
            "conflicts": len(self.engine.conflicts),
            "pending_deletions": len(self.engine.tombstones),
            "current_note_id": self.engine.current_note_id,
        }

    # ===== Operations =====

    def fetch_notes(self) -> Optional[List[Note]]:
        return self.engine.fetch_all()

    def create_note(
        self, title: str, content: str, folder: Optional[str] = None
    ) -> Optional[Note]:
        return self.engine.create_note(title, content, folder)

    def update_note(
        self,
        note_id: str,
        content: str,
        folder: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Optional[Note]:
        return self.engine.update_note(note_id, content, folder, title=title)

    def delete_note(self, note_id: str) -> Optional[Note]:
        return self.engine.delete_note(note_id)

    def create_folder(self, name: str) -> Optional[Folder]:
        return self.engine.create_folder(name)

    def delete_folder(self, folder_id: str) -> Optional[Folder]:
        return self.engine.delete_folder(folder_id)

    def sync_notes(self) -> Optional[SyncResult]:
        return self.engine.sync_notes()

    def set_current_note(self, note_id: Optional[str]) -> Optional[Note]:
        return self.engine.set_current_note(note_id)

    def resolve_conflict(
        self, note_id: str, choice: Union[ResolutionChoice, str]
    ) -> Optional[Note]:
        return self.engine.resolve_conflict(note_id, choice)

    def update_session(self, session: Session) -> None:
        self.engine.update_session(session)

    def close(self) -> None:
        self.engine.close()
