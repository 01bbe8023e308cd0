"""Remote failure taxonomy for CommitPad sync.

Every failure the Remote Content Store can produce is mapped onto one of
these exceptions by the GitHub client. The reconciliation engine catches
them at the boundary of each public operation.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "SyncError",
    "Unauthorized",
    "NotFound",
    "Conflict",
    "NetworkUnavailable",
    "UnknownRemoteError",
]


class SyncError(Exception):
    """Base class for failures talking to the remote content store.

    Attributes:
        message: Human-readable description
        path: Repository path involved, if any
        status: HTTP status code, if the failure came from a response
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        self.message = message
        self.path = path
        self.status = status
        super().__init__(message)

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


class Unauthorized(SyncError):
    """The access token was rejected. Requires re-authentication."""


class NotFound(SyncError):
    """The path no longer exists on the remote."""


class Conflict(SyncError):
    """The remote content hash diverged from the expected hash."""


class NetworkUnavailable(SyncError):
    """The remote could not be reached."""


class UnknownRemoteError(SyncError):
    """Any other non-success response."""
