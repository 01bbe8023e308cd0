#!/usr/bin/env python3
"""Web API for CommitPad.

This module provides a JSON HTTP API over the sync engine, for a browser
or desktop front end. Uses only core/ modules.

Endpoints:
    GET    /api/notes                 List all notes (?folder=<name> to filter)
    POST   /api/notes                 Create a note
    GET    /api/notes/<id>            Get a note
    PUT    /api/notes/<id>            Update (and optionally move) a note
    DELETE /api/notes/<id>            Delete a note
    POST   /api/notes/<id>/resolve    Resolve a conflicted note
    GET    /api/folders               List folders with their note ids
    POST   /api/folders               Create a folder
    DELETE /api/folders/<id>          Delete a folder and its notes
    POST   /api/fetch                 Fetch notes from the repository
    POST   /api/sync                  Push pending changes, then fetch
    GET    /api/status                Sync status
    GET    /api/current-note          Get the open note
    PUT    /api/current-note          Set (or clear) the open note
    GET    /api/health                Health check

All endpoints return JSON. Notes are serialized with camelCase keys
(lastModified, remoteSha...). Note ids change whenever a note is pushed;
responses always carry the current id.

POST /api/notes body:
    - title: Note title (string, optional)
    - content: Note content (string, required)
    - folder: Folder name (string, optional)

PUT /api/notes/<id> body:
    - content: New note content (string, required)
    - title: New title (string, optional; content is then stored as is)
    - folder: Folder to move to ("" for the root, omitted to keep)

POST /api/notes/<id>/resolve body:
    - choice: "keep_local" or "keep_remote"
"""

from __future__ import annotations

import argparse
import functools
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request, Response
from flask_cors import CORS

from commitpad.core.config import Config
from commitpad.core.models import Folder
from commitpad.core.note_store import AmbiguousIdError, NoteStore
from commitpad.core.validation import ValidationError

logger = logging.getLogger(__name__)

# Set by create_app; the routes read it at request time.
store: Optional[NoteStore] = None


def api_endpoint(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Catches ValidationError (400), AmbiguousIdError (400) and Exception
    (500) with proper JSON error responses and logging.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            return jsonify({"error": f"Invalid {e.field}: {e.message}"}), 400
        except AmbiguousIdError as e:
            return jsonify({"error": str(e)}), 400
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            return jsonify({"error": str(e)}), 500
    return wrapper


def folder_to_dict(folder: Folder) -> Dict[str, Any]:
    data = folder.to_dict()
    data["notes"] = [n.id for n in store.folder_notes(folder)]
    return data


def state_fields() -> Dict[str, Any]:
    """Status fields attached to mutating responses."""
    return {"syncStatus": store.sync_status.value, "error": store.error}


def no_repository() -> tuple[Response, int]:
    return jsonify({"error": "No repository selected"}), 409


def create_app(
    config_dir: Optional[Path] = None,
    note_store: Optional[NoteStore] = None,
) -> Flask:
    """Build the Flask app serving one NoteStore.

    Args:
        config_dir: Where config.json and the cache live, used only when
            ``note_store`` is not given
        note_store: Store to serve, mainly for tests
    """
    app = Flask(__name__)
    CORS(app)

    global store
    if note_store is None:
        config = Config(config_dir=config_dir)
        note_store = NoteStore.from_config(config)
    store = note_store

    logger.info(f"Web API initialized for repository: {store.status()['repository']}")

    @app.errorhandler(404)
    def not_found(error: Any) -> tuple[Response, int]:
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error: Any) -> tuple[Response, int]:
        logger.error(f"Unhandled error serving {request.path}: {error}")
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(ValidationError)
    def validation_error(error: ValidationError) -> tuple[Response, int]:
        logger.warning(f"Rejected {request.path}: {error.field} - {error.message}")
        return jsonify({"error": f"Invalid {error.field}: {error.message}"}), 400

    # Routes
    @app.route("/api/notes", methods=["GET"])
    @api_endpoint
    def get_notes() -> Response:
        """Get all notes."""
        folder = request.args.get("folder")
        notes = store.notes
        if folder is not None:
            notes = [n for n in notes if (n.folder or "") == folder]
        return jsonify([n.to_dict() for n in notes])

    @app.route("/api/notes", methods=["POST"])
    @api_endpoint
    def create_note() -> tuple[Response, int]:
        """Create a new note."""
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Request body is required"}), 400

        content = data.get("content")
        if content is None:
            return jsonify({"error": "Content is required"}), 400

        note = store.create_note(data.get("title") or "", content, data.get("folder"))
        if note is None:
            return no_repository()

        logger.info(f"Created note {note.path} via API")
        return jsonify({"note": note.to_dict(), **state_fields()}), 201

    @app.route("/api/notes/<note_id>", methods=["GET"])
    @api_endpoint
    def get_note(note_id: str) -> tuple[Response, int]:
        """Get specific note by ID."""
        note = store.get_note(note_id)
        if note:
            return jsonify(note.to_dict()), 200
        return jsonify({"error": f"Note {note_id} not found"}), 404

    @app.route("/api/notes/<note_id>", methods=["PUT"])
    @api_endpoint
    def update_note(note_id: str) -> tuple[Response, int]:
        """Update a note."""
        note = store.get_note(note_id)
        if not note:
            return jsonify({"error": f"Note {note_id} not found"}), 404

        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "Request body is required"}), 400

        content = data.get("content")
        if content is None:
            return jsonify({"error": "Content is required"}), 400

        updated = store.update_note(
            note.id, content, data.get("folder"), title=data.get("title")
        )
        if updated is None:
            return no_repository()

        logger.info(f"Updated note {updated.path} via API")
        return jsonify({"note": updated.to_dict(), **state_fields()}), 200

    @app.route("/api/notes/<note_id>", methods=["DELETE"])
    @api_endpoint
    def delete_note(note_id: str) -> tuple[Response, int]:
        """Delete a note."""
        note = store.get_note(note_id)
        if not note:
            return jsonify({"error": f"Note {note_id} not found"}), 404

        store.delete_note(note.id)
        return jsonify({"message": f"Note {note.id} deleted", **state_fields()}), 200

    @app.route("/api/notes/<note_id>/resolve", methods=["POST"])
    @api_endpoint
    def resolve_note(note_id: str) -> tuple[Response, int]:
        """Resolve a conflicted note."""
        note = store.get_note(note_id)
        if not note:
            return jsonify({"error": f"Note {note_id} not found"}), 404

        data = request.get_json(silent=True) or {}
        choice = data.get("choice")
        if not choice:
            return jsonify({"error": "Choice is required"}), 400

        resolved = store.resolve_conflict(note.id, choice)
        if resolved is None:
            return jsonify({"error": store.error or "Failed to resolve conflict"}), 502
        return jsonify({"note": resolved.to_dict(), **state_fields()}), 200

    @app.route("/api/folders", methods=["GET"])
    @api_endpoint
    def get_folders() -> Response:
        """Get all folders."""
        return jsonify([folder_to_dict(f) for f in store.folders])

    @app.route("/api/folders", methods=["POST"])
    @api_endpoint
    def create_folder() -> tuple[Response, int]:
        """Create a folder."""
        data = request.get_json(silent=True)
        if not data or not data.get("name"):
            return jsonify({"error": "Name is required"}), 400

        folder = store.create_folder(data["name"])
        if folder is None:
            return no_repository()
        return jsonify({"folder": folder_to_dict(folder), **state_fields()}), 201

    @app.route("/api/folders/<folder_id>", methods=["DELETE"])
    @api_endpoint
    def delete_folder(folder_id: str) -> tuple[Response, int]:
        """Delete a folder and every note in it."""
        folder = store.get_folder(folder_id)
        if not folder:
            return jsonify({"error": f"Folder {folder_id} not found"}), 404

        store.delete_folder(folder.id)
        return jsonify({"message": f"Folder {folder.name} deleted", **state_fields()}), 200

    @app.route("/api/fetch", methods=["POST"])
    @api_endpoint
    def fetch_notes() -> tuple[Response, int]:
        """Fetch notes from the repository."""
        notes = store.fetch_notes()
        if notes is None and store.error is None:
            return no_repository()
        return jsonify({
            "notes": [n.to_dict() for n in store.notes],
            **state_fields(),
        }), 200

    @app.route("/api/sync", methods=["POST"])
    @api_endpoint
    def sync_notes() -> tuple[Response, int]:
        """Push pending changes, then fetch."""
        result = store.sync_notes()
        if result is None and store.error is None:
            return no_repository()

        body: Dict[str, Any] = {**state_fields()}
        if result is not None:
            body.update({
                "success": result.success,
                "pushed": result.pushed,
                "deleted": result.deleted,
                "foldersCreated": result.folders_created,
                "conflicts": result.conflicts,
                "errors": result.errors,
            })
        else:
            body["success"] = False
        return jsonify(body), 200

    @app.route("/api/status", methods=["GET"])
    @api_endpoint
    def get_status() -> tuple[Response, int]:
        """Get the sync status."""
        return jsonify(store.status()), 200

    @app.route("/api/current-note", methods=["GET"])
    @api_endpoint
    def get_current_note() -> tuple[Response, int]:
        """Get the note open in the front end."""
        note = store.current_note
        return jsonify(note.to_dict() if note else None), 200

    @app.route("/api/current-note", methods=["PUT"])
    @api_endpoint
    def set_current_note() -> tuple[Response, int]:
        """Set (or clear, with id null) the open note."""
        data = request.get_json(silent=True)
        if data is None or "id" not in data:
            return jsonify({"error": "Field 'id' is required"}), 400

        note_id = data["id"]
        if note_id is None:
            store.set_current_note(None)
            return jsonify(None), 200

        note = store.get_note(note_id)
        if not note:
            return jsonify({"error": f"Note {note_id} not found"}), 404
        store.set_current_note(note.id)
        return jsonify(note.to_dict()), 200

    @app.route("/api/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        """Liveness probe; never touches the repository."""
        return jsonify({"status": "ok"}), 200

    return app


def add_web_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Register the ``web`` subcommand and its server options."""
    web_parser = subparsers.add_parser(
        "web",
        help="Start web API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    web_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )

    web_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind to (default: 5000)"
    )

    web_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    web_parser.add_argument(
        "--no-fetch",
        action="store_true",
        help="Do not fetch notes on startup"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Serve the API until interrupted, then close the store.

    Unless ``--no-fetch`` is given the repository is fetched once before
    the first request so the cache starts current.
    """
    logger.info("Starting CommitPad Web API")
    if config_dir:
        logger.info(f"Using custom config directory: {config_dir}")

    app = create_app(config_dir=config_dir)
    if not getattr(args, "no_fetch", False):
        store.fetch_notes()

    app.run(
        host=args.host,
        port=args.port,
        debug=args.debug,
        threaded=True,
    )

    store.close()
    return 0
