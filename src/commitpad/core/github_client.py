"""GitHub collaborators for CommitPad.

This module provides:
- RemoteContentStore: the interface the sync engine depends on
- GitHubContentStore: the GitHub repository contents API implementation
- GitHubIdentityProvider: OAuth code exchange and user lookup

Every non-success response is mapped onto the errors in errors.py so
callers never see a raw requests exception.

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import logging
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import requests

from .errors import (
    Conflict,
    NetworkUnavailable,
    NotFound,
    SyncError,
    Unauthorized,
    UnknownRemoteError,
)
from .models import Repository

logger = logging.getLogger(__name__)

__all__ = [
    "RemoteContentStore",
    "GitHubContentStore",
    "GitHubIdentityProvider",
    "raise_for_response",
]

GITHUB_API_VERSION = "2022-11-28"

# A listing is a list of entries, a file is a single entry with content
ContentsResponse = Union[Dict[str, Any], List[Dict[str, Any]]]


class RemoteContentStore(ABC):
    """Repository-backed file storage, shaped like the GitHub contents API.

    Paths are slash-separated and relative to the repository root; the
    empty path is the root directory.
    """

    @abstractmethod
    def get(self, path: str) -> ContentsResponse:
        """Get a file or a directory listing.

        Returns:
            For a file: {"type": "file", "name", "path", "sha", "content"}
            with base64 content. For a directory: a list of
            {"type", "name", "path", "sha"} entries.

        Raises:
            NotFound, Unauthorized, NetworkUnavailable, UnknownRemoteError
        """

    @abstractmethod
    def put(
        self,
        path: str,
        message: str,
        content_b64: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create (no sha) or conditionally update (sha) a file.

        Returns:
            {"content": {"sha": <new hash>, ...}, ...}

        Raises:
            Conflict if sha does not match the current remote hash, or if
            the file already exists and no sha was given.
        """

    @abstractmethod
    def delete(self, path: str, message: str, sha: str) -> None:
        """Delete a file if its remote hash still equals sha.

        Raises:
            Conflict, NotFound, Unauthorized, NetworkUnavailable
        """


def raise_for_response(response: requests.Response, path: Optional[str] = None) -> None:
    """Map a non-success GitHub response onto the sync error taxonomy."""
    status = response.status_code
    if 200 <= status < 300:
        return

    try:
        message = response.json().get("message") or response.reason
    except ValueError:
        message = response.reason or f"HTTP {status}"
    message = str(message)

    if status == 401:
        raise Unauthorized(message, path=path, status=status)
    if status == 403 and "bad credentials" in message.lower():
        raise Unauthorized(message, path=path, status=status)
    if status == 404:
        raise NotFound(message, path=path, status=status)
    if status in (409, 422):
        raise Conflict(message, path=path, status=status)
    raise UnknownRemoteError(message, path=path, status=status)


class GitHubContentStore(RemoteContentStore):
    """RemoteContentStore backed by the GitHub repository contents API."""

    def __init__(
        self,
        token: Optional[str],
        repository: Repository,
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the store.

        Args:
            token: Bearer token (may be None for public repositories)
            repository: Repository to read from and commit to
            api_url: API base URL (GitHub Enterprise or a test server)
            timeout: Per-request timeout in seconds
            session: requests session to use (a new one if None)
        """
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        })
        self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        """Replace the bearer token used for subsequent requests."""
        self.token = token
        if token:
            self.http.headers["Authorization"] = f"Bearer {token}"
        else:
            self.http.headers.pop("Authorization", None)

    def _contents_url(self, path: str) -> str:
        base = (
            f"{self.api_url}/repos/{self.repository.owner}/"
            f"{self.repository.name}/contents"
        )
        path = path.strip("/")
        if not path:
            return base
        return f"{base}/{urllib.parse.quote(path)}"

    def _make_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a contents API request and return the decoded JSON body.

        Raises:
            SyncError subclass for any failure
        """
        url = self._contents_url(path)
        logger.debug(f"{method} {url}")
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkUnavailable(f"Cannot reach {self.api_url}: {e}", path=path) from e
        except requests.RequestException as e:
            raise UnknownRemoteError(f"Request failed: {e}", path=path) from e

        raise_for_response(response, path)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UnknownRemoteError(
                f"Invalid JSON in response: {e}", path=path, status=response.status_code
            ) from e

    def get(self, path: str) -> ContentsResponse:
        return self._make_request(
            "GET", path, params={"ref": self.repository.default_branch}
        )

    def put(
        self,
        path: str,
        message: str,
        content_b64: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": message,
            "content": content_b64,
            "branch": self.repository.default_branch,
        }
        if sha:
            body["sha"] = sha
        result = self._make_request("PUT", path, data=body)
        if not isinstance(result, dict) or not (result.get("content") or {}).get("sha"):
            raise UnknownRemoteError("PUT response carries no content sha", path=path)
        return result

    def delete(self, path: str, message: str, sha: str) -> None:
        self._make_request(
            "DELETE",
            path,
            data={
                "message": message,
                "sha": sha,
                "branch": self.repository.default_branch,
            },
        )


class GitHubIdentityProvider:
    """Identity provider collaborator backed by GitHub OAuth.

    The sync engine only consumes the resulting token; this class exists so
    the CLI can obtain one.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        oauth_url: str = "https://github.com/login/oauth/access_token",
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.oauth_url = oauth_url
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def exchange_code(self, code: str) -> Dict[str, Optional[str]]:
        """Exchange an OAuth authorization code for an access token.

        Returns:
            {"access_token": token or None, "error": message or None}
        """
        if not code:
            return {"access_token": None, "error": "No authorization code provided"}
        if not self.client_id or not self.client_secret:
            return {"access_token": None, "error": "OAuth client is not configured"}

        try:
            response = requests.post(
                self.oauth_url,
                headers={"Accept": "application/json"},
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                },
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Token exchange failed: {e}")
            return {"access_token": None, "error": str(e)}

        if data.get("error"):
            error = data.get("error_description") or data["error"]
            logger.warning(f"Token exchange rejected: {error}")
            return {"access_token": None, "error": error}

        return {"access_token": data.get("access_token"), "error": None}

    def get_authenticated_user(self, token: str) -> Dict[str, Any]:
        """Get the user the token belongs to.

        Returns:
            {"id", "login", "name", "avatar_url"}

        Raises:
            Unauthorized if the token is rejected, or another SyncError
        """
        try:
            response = requests.get(
                f"{self.api_url}/user",
                headers={
                    "Accept": "application/vnd.github+json",
                    "Authorization": f"Bearer {token}",
                },
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkUnavailable(f"Cannot reach {self.api_url}: {e}") from e
        except requests.RequestException as e:
            raise SyncError(f"Request failed: {e}") from e

        raise_for_response(response)
        data = response.json()
        return {
            "id": data.get("id"),
            "login": data.get("login"),
            "name": data.get("name"),
            "avatar_url": data.get("avatar_url"),
        }
