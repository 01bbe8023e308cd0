"""Test helpers for CommitPad tests.

This module provides an in-memory RemoteContentStore with GitHub
contents API semantics, a controllable clock, small builders and a
subprocess runner for the entry points.
"""

from __future__ import annotations

import base64
import hashlib
import os
import posixpath
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from commitpad.core.errors import Conflict, NetworkUnavailable, NotFound, SyncError
from commitpad.core.github_client import RemoteContentStore
from commitpad.core.models import Note, NoteState


# Base of the fake clock (2023-11-14T22:13:20Z)
TEST_EPOCH_MS = 1700000000000


def git_blob_sha(text: str) -> str:
    """Compute the hash git (and GitHub) assigns to a file's bytes."""
    data = text.encode("utf-8")
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class FakeClock:
    """Epoch-milliseconds source that only moves when told to."""

    def __init__(self, start: int = TEST_EPOCH_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1) -> None:
        self.now += ms


class FakeContentStore(RemoteContentStore):
    """In-memory repository with GitHub contents API semantics.

    Attributes:
        files: path -> file text
        commits: (operation, path, message) of every successful write
        fail_with: If set, every call raises this error
        fail_paths: path -> error raised for calls on that path only
    """

    def __init__(self, files: Optional[Dict[str, str]] = None) -> None:
        self.files: Dict[str, str] = dict(files or {})
        self.commits: List[Tuple[str, str, str]] = []
        self.fail_with: Optional[SyncError] = None
        self.fail_paths: Dict[str, SyncError] = {}
        self.calls: List[Tuple[str, str]] = []

    # ===== Direct manipulation (another device) =====

    def write(self, path: str, text: str) -> str:
        self.files[path] = text
        return git_blob_sha(text)

    def remove(self, path: str) -> None:
        del self.files[path]

    def sha(self, path: str) -> str:
        return git_blob_sha(self.files[path])

    def go_offline(self) -> None:
        self.fail_with = NetworkUnavailable("Connection refused")

    def go_online(self) -> None:
        self.fail_with = None

    # ===== RemoteContentStore =====

    def _check(self, operation: str, path: str) -> None:
        self.calls.append((operation, path))
        if self.fail_with is not None:
            raise self.fail_with
        if path in self.fail_paths:
            raise self.fail_paths[path]

    def _file_entry(self, path: str, with_content: bool) -> Dict[str, Any]:
        entry = {
            "type": "file",
            "name": posixpath.basename(path),
            "path": path,
            "sha": git_blob_sha(self.files[path]),
        }
        if with_content:
            raw = base64.b64encode(self.files[path].encode("utf-8")).decode("ascii")
            # GitHub wraps base64 content at 60 characters
            entry["content"] = "\n".join(raw[i:i + 60] for i in range(0, len(raw), 60))
        return entry

    def get(self, path: str) -> Any:
        path = path.strip("/")
        self._check("get", path)
        if path in self.files:
            return self._file_entry(path, with_content=True)

        prefix = f"{path}/" if path else ""
        entries: Dict[str, Dict[str, Any]] = {}
        for file_path in self.files:
            if not file_path.startswith(prefix):
                continue
            head, sep, _ = file_path[len(prefix):].partition("/")
            full = prefix + head
            if sep:
                entries[full] = {"type": "dir", "name": head, "path": full, "sha": "0" * 40}
            else:
                entries[full] = self._file_entry(full, with_content=False)

        if path and not entries:
            raise NotFound("Not Found", path=path, status=404)
        return [entries[k] for k in sorted(entries)]

    def put(
        self,
        path: str,
        message: str,
        content_b64: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._check("put", path)
        existing = self.files.get(path)
        if existing is None and sha:
            raise NotFound("Not Found", path=path, status=404)
        if existing is not None and not sha:
            raise Conflict('Invalid request. "sha" wasn\'t supplied.', path=path, status=422)
        if existing is not None and git_blob_sha(existing) != sha:
            raise Conflict(f"{path} does not match {sha}", path=path, status=409)

        text = base64.b64decode(content_b64).decode("utf-8")
        self.files[path] = text
        self.commits.append(("put", path, message))
        return {"content": {"path": path, "sha": git_blob_sha(text)}, "commit": {"message": message}}

    def delete(self, path: str, message: str, sha: str) -> None:
        self._check("delete", path)
        existing = self.files.get(path)
        if existing is None:
            raise NotFound("Not Found", path=path, status=404)
        if git_blob_sha(existing) != sha:
            raise Conflict(f"{path} does not match {sha}", path=path, status=409)
        del self.files[path]
        self.commits.append(("delete", path, message))


def make_note(
    path: str,
    title: str = "Title",
    content: str = "Body",
    state: NoteState = NoteState.CLEAN,
    sha: Optional[str] = None,
    **kwargs: Any,
) -> Note:
    """Build a note; clean notes get the sha of their file text."""
    if sha is None and state is not NoteState.DIRTY:
        sha = git_blob_sha(f"# {title}\n{content}")
    folder = path.split("/")[0] if "/" in path else None
    return Note(
        id=kwargs.pop("id", sha or f"local-{path}"),
        title=title,
        content=content,
        path=path,
        last_modified=kwargs.pop("last_modified", "2023-11-14T22:13:20.000Z"),
        state=state,
        folder=folder,
        remote_sha=sha,
        **kwargs,
    )


SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def run_module(module: str, *args: str) -> subprocess.CompletedProcess:
    """Run ``python -m <module> <args>`` with the source tree importable."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, "-m", module, *args],
        capture_output=True,
        text=True,
        env=env,
        stdin=subprocess.DEVNULL,
    )
