"""Conflict listing and resolution for CommitPad sync.

A note becomes conflicted when its local edit and the remote file have
diverged. This module handles:
- Listing conflicted notes as local/remote pairs
- Resolving a conflict (keep local or keep remote) by id prefix
- Rendering a diff between the two sides

Content is never merged automatically; the user picks a side.

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from .remote_files import encode_note
from .sync import ReconciliationEngine, ResolutionChoice
from .validation import ValidationError

logger = logging.getLogger(__name__)

__all__ = ["ConflictManager", "NoteConflict", "ResolutionChoice", "get_diff_preview"]


@dataclass
class NoteConflict:
    """A note whose local edit and remote file diverged."""

    note_id: str
    path: str
    title: str
    local_content: str  # Full file text of the local version
    local_modified_at: str
    remote_content: str  # Full file text of the remote version
    remote_sha: str

    def diff(self) -> str:
        return get_diff_preview(self.local_content, self.remote_content)


class ConflictManager:
    """Lists and resolves conflicted notes of an engine."""

    def __init__(self, engine: ReconciliationEngine) -> None:
        """Initialize conflict manager.

        Args:
            engine: Reconciliation engine owning the notes
        """
        self.engine = engine

    def get_conflicts(self) -> List[NoteConflict]:
        """Get every conflicted note as a local/remote pair."""
        return [
            NoteConflict(
                note_id=note.id,
                path=note.path,
                title=note.title,
                local_content=encode_note(note.title, note.content),
                local_modified_at=note.last_modified,
                remote_content=note.conflict_content or "",
                remote_sha=note.conflict_sha or "",
            )
            for note in self.engine.conflicts
        ]

    def get_unresolved_count(self) -> int:
        return len(self.engine.conflicts)

    def resolve(self, note_id: str, choice: ResolutionChoice) -> bool:
        """Resolve the conflict of a note.

        Returns:
            True if the note is no longer conflicted
        """
        resolved = self.engine.resolve_conflict(note_id, choice)
        if resolved is None:
            return False
        logger.info(f"Resolved conflict on {resolved.path} with {ResolutionChoice(choice).value}")
        return not resolved.is_conflicted

    def find_and_resolve_conflict(
        self,
        note_id_prefix: str,
        choice: Union[ResolutionChoice, str],
    ) -> Tuple[bool, Optional[str]]:
        """Find a conflicted note by id prefix and resolve it.

        Args:
            note_id_prefix: Full or partial note id
            choice: How to resolve the conflict

        Returns:
            Tuple of (success, error_message)
        """
        try:
            choice = ResolutionChoice(choice)
        except ValueError:
            allowed = ", ".join(c.value for c in ResolutionChoice)
            return False, f"Resolution must be one of: {allowed}"

        matches = [c for c in self.get_conflicts() if c.note_id.startswith(note_id_prefix)]
        if not matches:
            return False, f"Conflict with note ID starting with '{note_id_prefix}' not found"
        if len(matches) > 1:
            return False, f"Note ID prefix '{note_id_prefix}' is ambiguous"

        try:
            if self.resolve(matches[0].note_id, choice):
                return True, None
        except ValidationError as e:
            return False, str(e)
        return False, self.engine.error or "Failed to resolve conflict"


def get_diff_preview(local: str, remote: str) -> str:
    """Get a human-readable diff between two versions.

    Args:
        local: Local content
        remote: Remote content

    Returns:
        Unified diff string
    """
    local_lines = local.splitlines(keepends=True)
    remote_lines = remote.splitlines(keepends=True)

    diff = difflib.unified_diff(
        local_lines,
        remote_lines,
        fromfile="Local",
        tofile="Remote",
    )

    return "".join(diff)
