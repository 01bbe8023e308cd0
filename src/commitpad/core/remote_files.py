"""Remote file adapter for CommitPad.

Translates between the remote store's flat, content-addressed file tree
and notes/folders:
- which files are notes and which are folder markers
- how notes are named, encoded and decoded
- how folders are materialized (marker files)

The remote store has no directories of its own, so a folder exists when
``<folder>/.gitkeep`` exists. ``<folder>/README.md`` is recognized as a
marker too, but ``.gitkeep`` is the one this adapter writes.

File naming is fixed: ``note_<epoch-ms>.md`` at the root or
``<folder>/note_<epoch-ms>.md``, with content ``# <title>\\n<body>``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from .config import DEFAULT_COMMIT_MESSAGE_TEMPLATES
from .errors import Conflict, NotFound, UnknownRemoteError
from .github_client import RemoteContentStore

logger = logging.getLogger(__name__)

NOTE_PREFIX = "note_"
NOTE_EXTENSION = ".md"
CANONICAL_MARKER = ".gitkeep"
MARKER_FILES = (CANONICAL_MARKER, "README.md")
ROOT_README = "README.md"

_HEADING_RE = re.compile(r"^#\s+(.*?)\s*$")


@dataclass
class RemoteTree:
    """One recursive listing of the repository.

    Attributes:
        note_files: (path, sha) of every note file, sorted by path
        folders: top-level folder name -> marker sha (None if the folder
            only exists because it holds files)
        marker_paths: top-level folder name -> (marker path, sha) list
    """

    note_files: List[Tuple[str, str]] = field(default_factory=list)
    folders: Dict[str, Optional[str]] = field(default_factory=dict)
    marker_paths: Dict[str, List[Tuple[str, str]]] = field(default_factory=dict)


# ===== Pure path/content helpers =====


def folder_of(path: str) -> Optional[str]:
    """Get the owning folder of a path (its first segment), or None at root."""
    parts = path.strip("/").split("/")
    return parts[0] if len(parts) > 1 else None


def is_marker_file(path: str) -> bool:
    """Check whether a path is a folder marker (``<folder>/.gitkeep`` etc.)."""
    parts = path.strip("/").split("/")
    if len(parts) < 2:
        return False
    name = parts[-1]
    return name == CANONICAL_MARKER or name.lower() == "readme.md"


def is_note_file(path: str) -> bool:
    """Check whether a path holds a note.

    Notes end in ``.md`` (any case) or start with the ``note_`` prefix.
    Marker files and the root README are never notes.
    """
    stripped = path.strip("/")
    if not stripped or is_marker_file(stripped):
        return False
    if stripped.lower() == ROOT_README.lower():
        return False
    name = posixpath.basename(stripped)
    return name.lower().endswith(NOTE_EXTENSION) or name.startswith(NOTE_PREFIX)


def note_filename(epoch_ms: int) -> str:
    return f"{NOTE_PREFIX}{epoch_ms}{NOTE_EXTENSION}"


def note_path(folder: Optional[str], epoch_ms: int) -> str:
    """Build the path of a new note file."""
    filename = note_filename(epoch_ms)
    return f"{folder}/{filename}" if folder else filename


def move_path(path: str, folder: Optional[str]) -> str:
    """Get the path a note file gets when moved to another folder."""
    filename = posixpath.basename(path.strip("/"))
    return f"{folder}/{filename}" if folder else filename


def marker_path(folder: str) -> str:
    return f"{folder}/{CANONICAL_MARKER}"


def title_from_filename(path: str) -> str:
    """Derive a title from a file name (``note_`` and ``.md`` removed)."""
    name = posixpath.basename(path.strip("/"))
    if name.lower().endswith(NOTE_EXTENSION):
        name = name[: -len(NOTE_EXTENSION)]
    return name.replace(NOTE_PREFIX, "", 1) if name.startswith(NOTE_PREFIX) else name


def heading_title(line: str) -> Optional[str]:
    """Get the text of a ``# heading`` line, or None if it is not one."""
    match = _HEADING_RE.match(line.rstrip("\r"))
    if match and match.group(1):
        return match.group(1)
    return None


def strip_title_heading(title: str, content: str) -> str:
    """Drop a leading ``# <title>`` line that duplicates the title."""
    first, _, rest = content.partition("\n")
    if heading_title(first) == title:
        return rest
    return content


def encode_note(title: str, content: str) -> str:
    """Serialize a note to file text: ``# <title>\\n<body>``."""
    return f"# {title}\n{content}"


def decode_note(path: str, text: str) -> Tuple[str, str]:
    """Parse file text into (title, content).

    The title is the leading heading; without one, it comes from the
    filename and the whole text is the content.
    """
    first, _, rest = text.partition("\n")
    title = heading_title(first)
    if title is not None:
        return title, rest
    return title_from_filename(path), text


def encode_base64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_base64(data: str) -> str:
    """Decode base64 file content (GitHub wraps it across lines)."""
    compact = re.sub(r"\s", "", data or "")
    try:
        raw = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UnknownRemoteError(f"Invalid base64 content: {e}") from e
    return raw.decode("utf-8", errors="replace")


def render_commit_message(
    template: str,
    title: str = "",
    path: str = "",
    folder: Optional[str] = None,
) -> str:
    """Fill ``{{title}}``, ``{{path}}`` and ``{{folder}}`` in a template."""
    return (
        template.replace("{{title}}", title)
        .replace("{{path}}", path)
        .replace("{{folder}}", folder or "")
    )


# ===== Adapter =====


class RemoteFileAdapter:
    """Notes/folders view of a RemoteContentStore.

    All mutations are compare-and-swap on the last-known content hash.
    """

    def __init__(
        self,
        store: RemoteContentStore,
        commit_templates: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            store: Remote content store to talk to
            commit_templates: Commit message templates by operation kind
        """
        self.store = store
        self.commit_templates = dict(DEFAULT_COMMIT_MESSAGE_TEMPLATES)
        if commit_templates:
            self.commit_templates.update(commit_templates)

    def commit_message(
        self,
        kind: str,
        title: str = "",
        path: str = "",
        folder: Optional[str] = None,
    ) -> str:
        template = self.commit_templates.get(kind) or DEFAULT_COMMIT_MESSAGE_TEMPLATES[kind]
        return render_commit_message(template, title=title, path=path, folder=folder)

    def _walk(self, path: str = "") -> Iterator[Dict[str, str]]:
        """Yield every file entry below path, recursing into directories."""
        listing = self.store.get(path)
        if not isinstance(listing, list):
            return
        for entry in listing:
            entry_type = entry.get("type")
            if entry_type == "dir":
                yield from self._walk(entry["path"])
            elif entry_type == "file":
                yield entry

    def list_tree(self) -> RemoteTree:
        """List note files, folders and markers in one recursive pass."""
        tree = RemoteTree()
        for entry in self._walk(""):
            entry_path = entry["path"]
            folder = folder_of(entry_path)

            if folder is not None:
                tree.folders.setdefault(folder, None)

            if is_marker_file(entry_path):
                # Only markers directly inside a top-level folder count
                if entry_path.count("/") == 1:
                    tree.marker_paths.setdefault(folder, []).append(
                        (entry_path, entry["sha"])
                    )
                    if tree.folders.get(folder) is None or entry_path.endswith(CANONICAL_MARKER):
                        tree.folders[folder] = entry["sha"]
                continue

            if is_note_file(entry_path):
                tree.note_files.append((entry_path, entry["sha"]))

        tree.note_files.sort()
        return tree

    def list_note_files(self) -> List[Tuple[str, str]]:
        """List (path, sha) of every note file in the repository."""
        return self.list_tree().note_files

    def list_folders(self) -> List[Tuple[str, Optional[str]]]:
        """List (name, marker sha) of every top-level folder."""
        return sorted(self.list_tree().folders.items())

    def read_file_with_sha(self, path: str) -> Tuple[str, str]:
        """Read a file's text and its current hash.

        Raises:
            NotFound if the path vanished; Unauthorized if the token is
            rejected
        """
        entry = self.store.get(path)
        if not isinstance(entry, dict) or entry.get("type", "file") != "file":
            raise NotFound("Path is not a file", path=path)
        return decode_base64(entry.get("content", "")), entry["sha"]

    def read_file(self, path: str) -> str:
        """Read and decode a single file."""
        text, _ = self.read_file_with_sha(path)
        return text

    def write_file(
        self,
        path: str,
        content: str,
        expected_hash: Optional[str] = None,
        message: Optional[str] = None,
    ) -> str:
        """Create (no expected_hash) or conditionally update a file.

        Returns:
            The new content hash

        Raises:
            Conflict if the remote hash diverged from expected_hash
        """
        if message is None:
            kind = "update" if expected_hash else "create"
            message = self.commit_message(kind, title=posixpath.basename(path), path=path)
        result = self.store.put(path, message, encode_base64(content), expected_hash)
        new_sha = result["content"]["sha"]
        logger.debug(f"Wrote {path} -> {new_sha}")
        return new_sha

    def delete_file(
        self,
        path: str,
        expected_hash: str,
        message: Optional[str] = None,
    ) -> None:
        """Delete a file if it still has expected_hash.

        Raises:
            Conflict if the remote hash diverged from expected_hash
        """
        if message is None:
            message = self.commit_message("delete", title=posixpath.basename(path), path=path)
        self.store.delete(path, message, expected_hash)
        logger.debug(f"Deleted {path}")

    def create_folder_marker(self, folder: str) -> str:
        """Materialize a folder by writing its zero-byte marker.

        Creating a folder that already has a marker is not an error; the
        existing marker's hash is returned.
        """
        path = marker_path(folder)
        message = self.commit_message("folder_create", folder=folder, path=path)
        try:
            return self.write_file(path, "", message=message)
        except Conflict:
            _, sha = self.read_file_with_sha(path)
            logger.info(f"Folder marker {path} already exists")
            return sha

    def delete_folder_marker(self, folder: str) -> int:
        """Delete every marker file of a folder.

        Returns:
            Number of marker files deleted
        """
        try:
            listing = self.store.get(folder)
        except NotFound:
            return 0
        if not isinstance(listing, list):
            return 0

        deleted = 0
        message = self.commit_message("folder_delete", folder=folder, path=folder)
        for entry in listing:
            if entry.get("type") == "file" and is_marker_file(entry["path"]):
                try:
                    self.delete_file(entry["path"], entry["sha"], message=message)
                    deleted += 1
                except NotFound:
                    logger.info(f"Marker {entry['path']} already gone")
        return deleted

    def delete_folder_files(self, folder: str) -> List[str]:
        """Delete every file under a folder, markers last.

        Each file is deleted with the hash it was listed with, so a file
        changed in between is left alone.

        Returns:
            Paths that could not be deleted

        Raises:
            NetworkUnavailable, Unauthorized: the remaining files are not tried
        """
        try:
            entries = list(self._walk(folder))
        except NotFound:
            return []
        entries.sort(key=lambda e: is_marker_file(e["path"]))

        left: List[str] = []
        message = self.commit_message("folder_delete", folder=folder, path=folder)
        for entry in entries:
            try:
                self.delete_file(entry["path"], entry["sha"], message=message)
            except NotFound:
                logger.info(f"{entry['path']} already gone")
            except (Conflict, UnknownRemoteError) as e:
                logger.warning(f"Not deleting {entry['path']}: {e}")
                left.append(entry["path"])
        logger.debug(f"Deleted folder {folder}: {len(entries) - len(left)} of {len(entries)} files")
        return left
