"""Local note cache for CommitPad.

A single JSON record per device holding the last-known notes and folders,
the currently open note and the deletions not yet pushed:

    {
        "repository": "owner/name",
        "notes": [...],
        "folders": [...],
        "currentNoteId": "...",
        "tombstones": [...]
    }

It exists to survive restarts, not as a sync transport. Missing or corrupt
data is treated as empty; loading never fails.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from .models import Folder, Note, NoteState, Tombstone

logger = logging.getLogger(__name__)

__all__ = ["CacheSnapshot", "LocalCache"]

T = TypeVar("T")


@dataclass
class CacheSnapshot:
    """Contents of the local cache."""

    notes: List[Note] = field(default_factory=list)
    folders: List[Folder] = field(default_factory=list)
    current_note_id: Optional[str] = None
    tombstones: List[Tombstone] = field(default_factory=list)
    repository: Optional[str] = None


def _parse_entries(
    raw: Any, parse: Callable[[Any], T], kind: str
) -> List[T]:
    """Parse a list of records, skipping malformed entries."""
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning(f"Ignoring cached {kind}: not a list")
        return []

    result: List[T] = []
    for i, entry in enumerate(raw):
        try:
            result.append(parse(entry))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Skipping malformed cached {kind} entry {i}: {e}")
    return result


class LocalCache:
    """Durable, process-local mirror of the note/folder set.

    Attributes:
        path: JSON file the cache lives in
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self, repository: Optional[str] = None) -> CacheSnapshot:
        """Load the cached state.

        Args:
            repository: If given, state cached for another repository is
                ignored

        Returns:
            CacheSnapshot, empty if nothing usable is stored
        """
        if not self.path.exists():
            return CacheSnapshot(repository=repository)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache {self.path}: {e}")
            return CacheSnapshot(repository=repository)

        if not isinstance(data, dict):
            logger.warning(f"Ignoring cache {self.path}: top level is not an object")
            return CacheSnapshot(repository=repository)

        stored_repository = data.get("repository")
        if repository is not None and stored_repository != repository:
            logger.info(
                f"Cache belongs to {stored_repository!r}, not {repository!r}; starting empty"
            )
            return CacheSnapshot(repository=repository)

        notes = _parse_entries(data.get("notes"), Note.from_dict, "note")
        # An interrupted write is just a pending edit
        notes = [
            replace(n, state=NoteState.DIRTY) if n.state is NoteState.WRITING else n
            for n in notes
        ]
        folders = _parse_entries(data.get("folders"), Folder.from_dict, "folder")
        tombstones = _parse_entries(data.get("tombstones"), Tombstone.from_dict, "tombstone")

        current_note_id = data.get("currentNoteId")
        if not isinstance(current_note_id, str):
            current_note_id = None

        return CacheSnapshot(
            notes=notes,
            folders=folders,
            current_note_id=current_note_id,
            tombstones=tombstones,
            repository=stored_repository,
        )

    def save(
        self,
        notes: Iterable[Note],
        folders: Iterable[Folder],
        current_note_id: Optional[str],
        tombstones: Iterable[Tombstone] = (),
        repository: Optional[str] = None,
    ) -> None:
        """Persist the state atomically (write to a temp file, then rename)."""
        data = {
            "repository": repository,
            "notes": [n.to_dict() for n in notes],
            "folders": [f.to_dict() for f in folders],
            "currentNoteId": current_note_id,
            "tombstones": [t.to_dict() for t in tombstones],
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def clear(self) -> None:
        """Remove the cached state."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
