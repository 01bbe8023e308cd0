#!/usr/bin/env python3
"""CommitPad application entry point.

Both front ends hang off one parser: ``cli`` for terminal use and ``web``
for the JSON API that a browser or desktop shell talks to.

Usage:
    python -m commitpad                          # Show help
    python -m commitpad cli repo select me/notes # Select the notes repository
    python -m commitpad cli list-notes           # Use CLI
    python -m commitpad web [--port 8080]        # Start web server
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the process."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level parser with one subcommand per front end."""
    parser = argparse.ArgumentParser(
        prog="commitpad",
        description="CommitPad - Markdown notes synced to a GitHub repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  commitpad cli repo select me/notes       Select the repository notes live in
  commitpad cli auth set-token <token>     Store a GitHub access token
  commitpad cli fetch                      Fetch notes from the repository
  commitpad cli new-note "# Idea" --folder Ideas
  commitpad cli sync now                   Push pending changes, then fetch
  commitpad web --port 8080                Start web server on port 8080
""",
    )
    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Directory holding config.json and the note cache (default: ~/.config/commitpad/)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")

    frontends = parser.add_subparsers(dest="interface", help="Front end to start")

    # Kept local so importing commitpad.main stays cheap.
    from commitpad.cli import add_cli_subparser
    from commitpad.web import add_web_subparser

    add_cli_subparser(frontends)
    add_web_subparser(frontends)
    return parser


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """Run the front end named on the command line and exit with its status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.interface is None:
        parser.print_help()
        sys.exit(1)

    if args.interface == "web":
        from commitpad.web import run
    else:
        from commitpad.cli import run
    sys.exit(run(args.config_dir, args))


if __name__ == "__main__":
    main()
