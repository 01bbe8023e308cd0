"""Fixtures for the web API tests: a Flask client over the in-memory repository."""

from __future__ import annotations

import pytest
from flask.testing import FlaskClient

from commitpad.core.note_store import NoteStore
from commitpad.web import create_app


@pytest.fixture
def client(note_store: NoteStore) -> FlaskClient:
    """Test client for an app serving ``note_store``."""
    app = create_app(note_store=note_store)
    app.config.update(TESTING=True)
    return app.test_client()
