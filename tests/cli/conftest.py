"""Pytest fixtures for CLI tests.

Provides an in-process CLI runner over the test NoteStore.
"""

from __future__ import annotations

import argparse
from typing import Callable

import pytest

from commitpad import cli
from commitpad.core.config import Config
from commitpad.core.note_store import NoteStore

CliRunner = Callable[..., int]


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="commitpad")
    subparsers = parser.add_subparsers(dest="interface")
    cli.add_cli_subparser(subparsers)
    return parser


@pytest.fixture
def run_cli(
    test_config: Config,
    note_store: NoteStore,
    cli_parser: argparse.ArgumentParser,
) -> CliRunner:
    """Run a CLI command in-process against the test NoteStore.

    Arguments are what follows ``cli`` on the command line; the exit code
    is returned and output is left for capsys.
    """

    def run_command(*argv: str) -> int:
        args = cli_parser.parse_args(["cli", *argv])
        return cli.run(test_config.get_config_dir(), args, store=note_store)

    return run_command
