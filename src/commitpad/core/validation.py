"""Input validation for CommitPad.

This module provides validation functions for all user inputs.
All validators raise ValidationError with descriptive messages.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

__all__ = [
    "ValidationError",
    "validate_folder_name",
    "validate_note_title",
    "validate_note_content",
    "validate_repository_name",
    "validate_branch_name",
    "validate_token",
    "MAX_FOLDER_NAME_LENGTH",
    "MAX_NOTE_TITLE_LENGTH",
    "MAX_NOTE_CONTENT_LENGTH",
]

MAX_FOLDER_NAME_LENGTH = 100
MAX_NOTE_TITLE_LENGTH = 200
# GitHub's contents API rejects files above 100 MB; keep notes well under 1 MB
MAX_NOTE_CONTENT_LENGTH = 1_000_000

# GitHub owner/repository names
_REPO_PART_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


def validate_folder_name(name: str) -> str:
    """Validate a folder name and return it stripped.

    Folder names map to a top-level directory of the repository, so they
    may not contain a slash and may not be one of the reserved names.
    """
    if not isinstance(name, str):
        raise ValidationError(
            "folder_name", f"must be a string, got {type(name).__name__}"
        )

    stripped = name.strip()
    if not stripped:
        raise ValidationError("folder_name", "cannot be empty or whitespace only")
    if "/" in stripped or "\\" in stripped:
        raise ValidationError("folder_name", "cannot contain '/' or '\\'")
    if stripped in (".", ".."):
        raise ValidationError("folder_name", f"'{stripped}' is not a valid folder name")
    if stripped.startswith("."):
        raise ValidationError("folder_name", "cannot start with '.'")
    if len(stripped) > MAX_FOLDER_NAME_LENGTH:
        raise ValidationError(
            "folder_name",
            f"cannot exceed {MAX_FOLDER_NAME_LENGTH} characters (got {len(stripped)})",
        )
    return stripped


def validate_note_title(title: str) -> str:
    """Validate a note title and return it stripped."""
    if not isinstance(title, str):
        raise ValidationError(
            "title", f"must be a string, got {type(title).__name__}"
        )

    stripped = title.strip()
    if not stripped:
        raise ValidationError("title", "cannot be empty or whitespace only")
    if "\n" in stripped or "\r" in stripped:
        raise ValidationError("title", "must be a single line")
    if len(stripped) > MAX_NOTE_TITLE_LENGTH:
        raise ValidationError(
            "title",
            f"cannot exceed {MAX_NOTE_TITLE_LENGTH} characters (got {len(stripped)})",
        )
    return stripped


def validate_note_content(content: str) -> None:
    """Validate note content."""
    if not isinstance(content, str):
        raise ValidationError(
            "content", f"must be a string, got {type(content).__name__}"
        )
    if len(content) > MAX_NOTE_CONTENT_LENGTH:
        raise ValidationError(
            "content",
            f"cannot exceed {MAX_NOTE_CONTENT_LENGTH} characters (got {len(content)})",
        )


def validate_repository_name(full_name: str) -> Dict[str, str]:
    """Validate an ``owner/name`` repository string.

    Returns:
        Dict with ``owner`` and ``name`` keys
    """
    if not isinstance(full_name, str):
        raise ValidationError(
            "repository", f"must be a string, got {type(full_name).__name__}"
        )

    parts = full_name.strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise ValidationError("repository", "must have the form 'owner/name'")

    owner, name = parts
    for label, value in (("owner", owner), ("name", name)):
        if not _REPO_PART_RE.match(value):
            raise ValidationError(
                "repository", f"{label} '{value}' contains invalid characters"
            )
    return {"owner": owner, "name": name}


def validate_branch_name(branch: Optional[str]) -> str:
    """Validate a branch name, defaulting to ``main``."""
    if branch is None:
        return "main"
    if not isinstance(branch, str) or not branch.strip():
        raise ValidationError("branch", "cannot be empty")
    if " " in branch or ".." in branch:
        raise ValidationError("branch", f"'{branch}' is not a valid branch name")
    return branch.strip()


def validate_token(token: Any) -> str:
    """Validate an access token."""
    if not isinstance(token, str):
        raise ValidationError(
            "token", f"must be a string, got {type(token).__name__}"
        )
    stripped = token.strip()
    if not stripped:
        raise ValidationError("token", "cannot be empty")
    if any(c.isspace() for c in stripped):
        raise ValidationError("token", "cannot contain whitespace")
    return stripped
