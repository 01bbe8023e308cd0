"""Fake GitHub API for integration tests.

Serves the contents, user and OAuth endpoints the client uses from a
background thread, backed by an in-memory repository. Device bundles one
installation (config directory plus NoteStore) talking to it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

import requests
from flask import Flask, jsonify, request
from werkzeug.serving import BaseWSGIServer, make_server

from commitpad.core.config import Config
from commitpad.core.errors import SyncError
from commitpad.core.note_store import NoteStore

from tests.helpers import FakeContentStore

TEST_TOKEN = "gho_integration"
OAUTH_CODE = "good-code"
REPOSITORY = "alice/notes"


def create_github_app(github: "FakeGitHub") -> Flask:
    """Build a Flask app speaking the subset of the GitHub API we use."""
    app = Flask("fake_github")

    def authorized() -> bool:
        return request.headers.get("Authorization") == f"Bearer {github.token}"

    def unauthorized() -> Tuple[Any, int]:
        return jsonify({"message": "Bad credentials"}), 401

    @app.errorhandler(SyncError)
    def sync_error(error: SyncError) -> Tuple[Any, int]:
        return jsonify({"message": error.message}), error.status or 500

    @app.route("/", methods=["GET"])
    def root() -> Any:
        return jsonify({"current_user_url": f"{github.url}/user"})

    @app.route("/user", methods=["GET"])
    def user() -> Any:
        if not authorized():
            return unauthorized()
        return jsonify({"id": 1, "login": "alice", "name": "Alice", "avatar_url": None})

    @app.route("/login/oauth/access_token", methods=["POST"])
    def access_token() -> Any:
        data = request.get_json(silent=True) or {}
        if data.get("code") != OAUTH_CODE:
            return jsonify({
                "error": "bad_verification_code",
                "error_description": "The code passed is incorrect or expired.",
            })
        return jsonify({"access_token": github.token, "token_type": "bearer"})

    @app.route("/repos/<owner>/<name>/contents", defaults={"path": ""},
               methods=["GET", "PUT", "DELETE"])
    @app.route("/repos/<owner>/<name>/contents/<path:path>",
               methods=["GET", "PUT", "DELETE"])
    def contents(owner: str, name: str, path: str) -> Any:
        if not authorized():
            return unauthorized()
        if f"{owner}/{name}" != REPOSITORY:
            return jsonify({"message": "Not Found"}), 404

        github.requests.append((request.method, path))
        store = github.repository
        if request.method == "GET":
            return jsonify(store.get(path))

        data = request.get_json()
        if request.method == "PUT":
            created = path not in store.files
            result = store.put(path, data["message"], data["content"], data.get("sha"))
            return jsonify(result), 201 if created else 200

        store.delete(path, data["message"], data["sha"])
        return jsonify({"content": None, "commit": {"message": data["message"]}})

    return app


class FakeGitHub:
    """Fake GitHub API served from a background thread.

    Attributes:
        repository: In-memory contents of alice/notes
        token: The only token accepted
        requests: (method, path) of every contents call
    """

    def __init__(self, token: str = TEST_TOKEN) -> None:
        self.repository = FakeContentStore()
        self.token = token
        self.requests: List[Tuple[str, str]] = []
        self.app = create_github_app(self)
        self.port = 0
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def is_running(self) -> bool:
        try:
            return requests.get(self.url, timeout=1).status_code == 200
        except requests.exceptions.RequestException:
            return False

    def start(self) -> None:
        """Start serving (on the previous port after a stop)."""
        self._server = make_server("127.0.0.1", self.port, self.app)
        self.port = self._server.server_port
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop serving; clients see connection failures."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._thread.join(timeout=5)
            self._server = None
            self._thread = None


@dataclass
class Device:
    """One installation of the app, with its own config and cache."""

    name: str
    config_dir: Path
    config: Config
    store: NoteStore

    def restart(self) -> None:
        """Close the store and build a new one from the same directory."""
        self.store.close()
        self.config = Config(config_dir=self.config_dir)
        self.store = NoteStore.from_config(self.config)
