"""Pytest fixtures for integration tests.

Runs the fake GitHub API on a local port and builds "devices":
independent config directories whose NoteStores talk to it over real
HTTP.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Generator

import pytest

from commitpad.core.config import Config
from commitpad.core.note_store import NoteStore

from tests.fake_github import REPOSITORY, Device, FakeGitHub

DeviceFactory = Callable[[str], Device]


@pytest.fixture
def github() -> Generator[FakeGitHub, None, None]:
    """Running fake GitHub API."""
    server = FakeGitHub()
    server.start()
    if not server.is_running():
        pytest.fail("Failed to start fake GitHub server")
    yield server
    server.stop()


def configure_device(config_dir: Path, github: FakeGitHub) -> Config:
    """Write a config pointing at the fake API with alice/notes selected."""
    config = Config(config_dir=config_dir)
    config.set("api_url", github.url)
    config.set("oauth_url", f"{github.url}/login/oauth/access_token")
    config.set("client_id", "test-client")
    config.set("client_secret", "test-secret")
    config.set("request_timeout", 2.0)
    config.set("connectivity_timeout", 1.0)
    config.set_token(github.token)
    config.set_repository(REPOSITORY)
    return config


@pytest.fixture
def make_device(
    tmp_path: Path, github: FakeGitHub
) -> Generator[DeviceFactory, None, None]:
    """Build devices sharing the fake GitHub repository."""
    devices = []

    def factory(name: str) -> Device:
        config_dir = tmp_path / name
        config = configure_device(config_dir, github)
        device = Device(
            name=name,
            config_dir=config_dir,
            config=config,
            store=NoteStore.from_config(config),
        )
        devices.append(device)
        return device

    yield factory

    for device in devices:
        device.store.close()


@pytest.fixture
def laptop(make_device: DeviceFactory) -> Device:
    return make_device("laptop")


@pytest.fixture
def phone(make_device: DeviceFactory) -> Device:
    return make_device("phone")
