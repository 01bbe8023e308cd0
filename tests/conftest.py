"""Pytest fixtures for CommitPad tests.

This module provides fixtures for test configuration, an in-memory remote
repository and reconciliation engines wired to it.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from commitpad.core.cache import LocalCache
from commitpad.core.config import Config
from commitpad.core.connectivity import ConnectivityMonitor
from commitpad.core.models import Repository, Session
from commitpad.core.note_store import NoteStore
from commitpad.core.sync import ReconciliationEngine

from tests.helpers import FakeClock, FakeContentStore

TEST_TOKEN = "gho_testtoken"
TEST_REPOSITORY = Repository(owner="alice", name="notes")

EngineFactory = Callable[..., ReconciliationEngine]


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "commitpad_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    """Create test configuration with a token and repository selected.

    Args:
        test_config_dir: Temporary config directory

    Returns:
        Config instance for testing.
    """
    config = Config(config_dir=test_config_dir)
    config.set_token(TEST_TOKEN)
    config.set_repository(TEST_REPOSITORY.full_name)
    return config


@pytest.fixture
def remote() -> FakeContentStore:
    """Empty in-memory repository."""
    return FakeContentStore()


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    """Connectivity monitor driven by set_online() only."""
    return ConnectivityMonitor(probe=None, initial=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session() -> Session:
    return Session(token=TEST_TOKEN, repository=TEST_REPOSITORY)


@pytest.fixture
def make_engine(
    test_config_dir: Path,
    remote: FakeContentStore,
    monitor: ConnectivityMonitor,
    clock: FakeClock,
    session: Session,
) -> Generator[EngineFactory, None, None]:
    """Build engines sharing the remote, monitor and clock.

    Each engine gets its own cache file unless cache_name is repeated, so
    a second engine simulates a second device (or a restart, when the
    cache is shared).
    """
    engines = []
    counter = itertools.count(1)

    def factory(
        cache_name: str = "cache.json",
        session_override: Optional[Session] = None,
    ) -> ReconciliationEngine:
        ids = (f"{n:032x}" for n in counter)
        engine = ReconciliationEngine(
            session=session_override or session,
            cache=LocalCache(test_config_dir / cache_name),
            monitor=monitor,
            store_factory=lambda s: remote,
            clock=clock,
            id_factory=lambda: next(ids),
        )
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine: EngineFactory) -> ReconciliationEngine:
    """Engine for alice/notes backed by the in-memory repository."""
    return make_engine()


@pytest.fixture
def note_store(engine: ReconciliationEngine) -> NoteStore:
    """NoteStore facade over the test engine."""
    return NoteStore(engine)
