#!/usr/bin/env python3
"""Command-line interface for CommitPad.

This module provides CLI commands for working with notes stored in a
GitHub repository. Uses only core/ modules.

Commands:
    list-notes              List all notes (from the local cache)
    show-note <id>          Show details of a specific note
    new-note [content]      Create a new note
    edit-note <id> [content] Edit (and optionally move) a note
    delete-note <id>        Delete a note
    list-folders            List folders
    new-folder <name>       Create a folder
    delete-folder <ref>     Delete a folder and its notes
    fetch                   Fetch notes from the repository
    sync ...                Push pending changes, status, conflicts
    repo ...                Show or select the repository
    auth ...                Manage the access token

IDs may be given as unique prefixes.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from commitpad.core.config import Config
from commitpad.core.conflicts import ResolutionChoice
from commitpad.core.errors import SyncError
from commitpad.core.github_client import GitHubIdentityProvider
from commitpad.core.models import Folder, Note
from commitpad.core.note_store import AmbiguousIdError, NoteStore
from commitpad.core.timestamp_utils import format_timestamp
from commitpad.core.validation import ValidationError

NO_REPOSITORY_MESSAGE = "Error: No repository selected. Use 'repo select <owner/name>'."


def format_note(note: Note, format_type: str = "text") -> str:
    """Format a single note for display.

    Args:
        note: Note to format
        format_type: Output format (text or json)

    Returns:
        Formatted note string
    """
    if format_type == "json":
        return json.dumps(note.to_dict(), indent=2, ensure_ascii=False)

    lines = [
        f"ID: {note.id}",
        f"Title: {note.title}",
        f"Path: {note.path}",
        f"State: {note.state.value}",
        f"Modified: {format_timestamp(note.last_modified)}",
    ]
    if note.folder:
        lines.append(f"Folder: {note.folder}")
    if note.previous_path:
        lines.append(f"Moving from: {note.previous_path}")
    lines.append(f"\n{note.content}")
    return "\n".join(lines)


def format_folder(folder: Folder, note_count: int) -> str:
    marker = "" if folder.synced else " (not pushed)"
    return f"{folder.name} (ID: {folder.id[:8]}) - {note_count} note(s){marker}"


def read_content(content: Optional[str]) -> Optional[str]:
    """Get content from the argument, or from stdin if piped."""
    if content is not None:
        return content
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return None


def report_error(store: NoteStore) -> None:
    """Print the store's last error, if any, as a warning."""
    if store.error:
        print(f"Warning: {store.error}", file=sys.stderr)


def find_note(store: NoteStore, note_id: str) -> Optional[Note]:
    try:
        note = store.get_note(note_id)
    except AmbiguousIdError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None
    if note is None:
        print(f"Error: Note with ID {note_id} not found.", file=sys.stderr)
    return note


def cmd_list_notes(store: NoteStore, args: argparse.Namespace) -> int:
    """List all notes.

    Args:
        store: NoteStore instance
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    notes = store.notes
    if args.folder:
        notes = [n for n in notes if n.folder == args.folder]

    if args.format == "json":
        print(json.dumps([n.to_dict() for n in notes], indent=2, ensure_ascii=False))
        return 0

    if not notes:
        print("No notes found.")
        return 0

    for note in notes:
        flag = "" if note.synced else f" [{note.state.value}]"
        print(f"{note.id[:12]}  {note.path}  {note.title}{flag}")
    return 0


def cmd_show_note(store: NoteStore, args: argparse.Namespace) -> int:
    """Show details of a specific note.

    Returns:
        Exit code (0 for success, 1 for not found)
    """
    note = find_note(store, args.note_id)
    if note is None:
        return 1
    print(format_note(note, args.format))
    return 0


def cmd_new_note(store: NoteStore, args: argparse.Namespace) -> int:
    """Create a new note.

    Returns:
        Exit code (0 for success)
    """
    content = read_content(args.content) or ""
    note = store.create_note(args.title or "", content, args.folder)
    if note is None:
        print(NO_REPOSITORY_MESSAGE, file=sys.stderr)
        return 1

    report_error(store)
    if args.format == "json":
        print(format_note(note, "json"))
    else:
        status = "synced" if note.synced else "pending"
        print(f"Created note {note.id} at {note.path} ({status})")
    return 0


def cmd_edit_note(store: NoteStore, args: argparse.Namespace) -> int:
    """Edit an existing note.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    note = find_note(store, args.note_id)
    if note is None:
        return 1

    title = args.title
    if args.content is None and args.folder is not None:
        # Move only
        content = note.content
        title = title or note.title
    else:
        content = read_content(args.content)
    if content is None:
        print(
            "Error: No content provided. Pass content or pipe it to stdin.",
            file=sys.stderr,
        )
        return 1

    updated = store.update_note(note.id, content, args.folder, title=title)
    if updated is None:
        print(f"Error: Could not update note {args.note_id}.", file=sys.stderr)
        return 1

    report_error(store)
    if args.format == "json":
        print(format_note(updated, "json"))
    else:
        print(f"Updated note {updated.id} at {updated.path} ({updated.state.value})")
    return 0


def cmd_delete_note(store: NoteStore, args: argparse.Namespace) -> int:
    """Delete a note."""
    note = find_note(store, args.note_id)
    if note is None:
        return 1

    store.delete_note(note.id)
    report_error(store)
    if args.format == "json":
        print(json.dumps({"id": note.id, "path": note.path, "deleted": True}))
    else:
        print(f"Deleted note {note.id} ({note.path})")
    return 0


def cmd_list_folders(store: NoteStore, args: argparse.Namespace) -> int:
    """List folders with their note counts."""
    folders = store.folders

    if args.format == "json":
        output = []
        for folder in folders:
            data = folder.to_dict()
            data["notes"] = [n.id for n in store.folder_notes(folder)]
            output.append(data)
        print(json.dumps(output, indent=2, ensure_ascii=False))
        return 0

    if not folders:
        print("No folders found.")
        return 0

    for folder in sorted(folders, key=lambda f: f.name):
        print(format_folder(folder, len(store.folder_notes(folder))))
    return 0


def cmd_new_folder(store: NoteStore, args: argparse.Namespace) -> int:
    """Create a folder."""
    folder = store.create_folder(args.name)
    if folder is None:
        print(NO_REPOSITORY_MESSAGE, file=sys.stderr)
        return 1

    report_error(store)
    if args.format == "json":
        print(json.dumps(folder.to_dict(), indent=2))
    else:
        print(f"Created folder {folder.name} (ID: {folder.id})")
    return 0


def cmd_delete_folder(store: NoteStore, args: argparse.Namespace) -> int:
    """Delete a folder and every note in it."""
    try:
        folder = store.get_folder(args.folder)
    except AmbiguousIdError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if folder is None:
        print(f"Error: Folder {args.folder} not found.", file=sys.stderr)
        return 1

    note_count = len(store.folder_notes(folder))
    store.delete_folder(folder.id)
    report_error(store)
    if args.format == "json":
        print(json.dumps({"id": folder.id, "name": folder.name, "notes_deleted": note_count}))
    else:
        print(f"Deleted folder {folder.name} and {note_count} note(s)")
    return 0


def cmd_fetch(store: NoteStore, args: argparse.Namespace) -> int:
    """Fetch notes from the repository."""
    notes = store.fetch_notes()
    if notes is None and store.error is None:
        print(NO_REPOSITORY_MESSAGE, file=sys.stderr)
        return 1

    if store.error:
        print(f"Error: {store.error}", file=sys.stderr)
        return 1

    status = store.status()
    if args.format == "json":
        print(json.dumps(status, indent=2))
    else:
        print(f"Fetched {status['notes']} note(s); status: {status['status']}")
        if status["conflicts"]:
            print(f"  Conflicts: {status['conflicts']} (see 'sync conflicts')")
    return 0


def cmd_sync_now(store: NoteStore, args: argparse.Namespace) -> int:
    """Push pending changes, then fetch.

    Returns:
        Exit code (0 for success, 1 for any failures)
    """
    result = store.sync_notes()
    if result is None:
        if store.error:
            print(f"Error: {store.error}", file=sys.stderr)
        else:
            print(NO_REPOSITORY_MESSAGE, file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps({
            "success": result.success,
            "pushed": result.pushed,
            "deleted": result.deleted,
            "folders_created": result.folders_created,
            "conflicts": result.conflicts,
            "errors": result.errors,
        }, indent=2))
    elif result.success:
        print("Sync completed:")
        print(f"  Pushed: {result.pushed} note(s)")
        print(f"  Deleted: {result.deleted} file(s)")
        print(f"  Folders created: {result.folders_created}")
        if result.conflicts > 0:
            print(f"  Conflicts: {result.conflicts} (see 'sync conflicts')")
    else:
        print("Sync failed:")
        for error in result.errors:
            print(f"  - {error}")

    return 0 if result.success else 1


def cmd_sync_status(store: NoteStore, args: argparse.Namespace) -> int:
    """Show sync status."""
    status = store.status()
    if args.format == "json":
        print(json.dumps(status, indent=2))
        return 0

    print(f"Repository: {status['repository'] or '(none)'}")
    print(f"Status: {status['status']}")
    print(f"Notes: {status['notes']} ({status['unsynced']} not pushed)")
    print(f"Pending deletions: {status['pending_deletions']}")
    if status["conflicts"]:
        print(f"\nUnresolved Conflicts: {status['conflicts']}")
    return 0


def cmd_sync_conflicts(store: NoteStore, args: argparse.Namespace) -> int:
    """List conflicted notes."""
    conflicts = store.conflict_manager.get_conflicts()

    if args.format == "json":
        print(json.dumps([
            {
                "note_id": c.note_id,
                "path": c.path,
                "title": c.title,
                "local_modified_at": c.local_modified_at,
                "remote_sha": c.remote_sha,
                "diff": c.diff(),
            }
            for c in conflicts
        ], indent=2, ensure_ascii=False))
        return 0

    if not conflicts:
        print("No unresolved conflicts.")
        return 0

    print(f"Unresolved Conflicts ({len(conflicts)}):\n")
    for c in conflicts:
        print(f"  [{c.note_id[:8]}] {c.path} - {c.title}")
        if args.diff:
            print(c.diff())
    return 0


def cmd_sync_resolve(store: NoteStore, args: argparse.Namespace) -> int:
    """Resolve a conflicted note.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    choice_map = {
        "local": ResolutionChoice.KEEP_LOCAL,
        "remote": ResolutionChoice.KEEP_REMOTE,
    }
    if args.choice not in choice_map:
        print(f"Error: Invalid choice '{args.choice}'. Use: local or remote", file=sys.stderr)
        return 1

    success, error = store.conflict_manager.find_and_resolve_conflict(
        args.note_id, choice_map[args.choice]
    )
    if success:
        print(f"Resolved conflict with {args.choice}")
        return 0
    print(f"Error: {error}", file=sys.stderr)
    return 1


def cmd_repo_show(config: Config, args: argparse.Namespace) -> int:
    repository = config.get_repository()
    if args.format == "json":
        print(json.dumps(repository.to_dict() if repository else None))
    elif repository is None:
        print("No repository selected.")
    else:
        print(f"{repository.full_name} (branch: {repository.default_branch})")
    return 0


def cmd_repo_select(config: Config, args: argparse.Namespace) -> int:
    """Select the repository notes are stored in."""
    repository = config.set_repository(args.repository, args.branch)
    if args.format == "json":
        print(json.dumps(repository.to_dict()))
    else:
        print(f"Selected {repository.full_name} (branch: {repository.default_branch})")
    return 0


def cmd_auth_set_token(config: Config, args: argparse.Namespace) -> int:
    config.set_token(args.token)
    print("Token saved.")
    return 0


def cmd_auth_logout(config: Config, args: argparse.Namespace) -> int:
    config.set_token(None)
    print("Token removed.")
    return 0


def cmd_auth_login(config: Config, args: argparse.Namespace) -> int:
    """Exchange an OAuth authorization code for a token and store it."""
    settings = config.get_oauth_settings()
    provider = GitHubIdentityProvider(
        client_id=settings["client_id"],
        client_secret=settings["client_secret"],
        oauth_url=settings["oauth_url"],
        api_url=config.get_api_url(),
        timeout=config.get_request_timeout(),
    )
    result = provider.exchange_code(args.code)
    if result["error"] or not result["access_token"]:
        print(f"Error: {result['error'] or 'No token returned'}", file=sys.stderr)
        return 1

    config.set_token(result["access_token"])
    print("Logged in; token saved.")
    return 0


def cmd_auth_whoami(config: Config, args: argparse.Namespace) -> int:
    """Show the user the stored token belongs to."""
    token = config.get_token()
    if not token:
        print("Error: Not logged in. Use 'auth set-token' or 'auth login'.", file=sys.stderr)
        return 1

    provider = GitHubIdentityProvider(
        api_url=config.get_api_url(), timeout=config.get_request_timeout()
    )
    try:
        user = provider.get_authenticated_user(token)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps(user, indent=2))
    else:
        name = f" ({user['name']})" if user.get("name") else ""
        print(f"{user['login']}{name}")
    return 0


def add_cli_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Register ``cli`` with its note, folder, sync, repo and auth commands."""
    cli_parser = subparsers.add_parser(
        "cli",
        help="Command-line interface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    cli_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )

    cli_subparsers = cli_parser.add_subparsers(dest="cli_command", help="CLI commands")

    list_parser = cli_subparsers.add_parser("list-notes", help="List all notes")
    list_parser.add_argument("--folder", type=str, help="Only notes in this folder")

    show_parser = cli_subparsers.add_parser("show-note", help="Show details of a specific note")
    show_parser.add_argument("note_id", type=str, help="ID (or prefix) of the note to show")

    new_note_parser = cli_subparsers.add_parser("new-note", help="Create a new note")
    new_note_parser.add_argument(
        "content",
        nargs="?",
        type=str,
        help="Note content (reads from stdin if not provided)"
    )
    new_note_parser.add_argument(
        "--title",
        type=str,
        help="Note title (default: the content's leading heading)"
    )
    new_note_parser.add_argument("--folder", type=str, help="Folder to create the note in")

    edit_note_parser = cli_subparsers.add_parser("edit-note", help="Edit an existing note")
    edit_note_parser.add_argument("note_id", type=str, help="ID (or prefix) of the note to edit")
    edit_note_parser.add_argument(
        "content",
        nargs="?",
        type=str,
        help="New content (reads from stdin if not provided)"
    )
    edit_note_parser.add_argument(
        "--folder",
        type=str,
        default=None,
        help="Move the note to this folder ('' for the root)"
    )
    edit_note_parser.add_argument(
        "--title",
        type=str,
        default=None,
        help="New title (content is then stored as given)"
    )

    delete_note_parser = cli_subparsers.add_parser("delete-note", help="Delete a note")
    delete_note_parser.add_argument("note_id", type=str, help="ID (or prefix) of the note")

    cli_subparsers.add_parser("list-folders", help="List folders")

    new_folder_parser = cli_subparsers.add_parser("new-folder", help="Create a folder")
    new_folder_parser.add_argument("name", type=str, help="Folder name")

    delete_folder_parser = cli_subparsers.add_parser(
        "delete-folder", help="Delete a folder and all its notes"
    )
    delete_folder_parser.add_argument("folder", type=str, help="Folder name or ID (or prefix)")

    cli_subparsers.add_parser("fetch", help="Fetch notes from the repository")

    # sync now | status | conflicts | resolve
    sync_parser = cli_subparsers.add_parser(
        "sync",
        help="Sync operations (now, status, conflicts)"
    )
    sync_subparsers = sync_parser.add_subparsers(dest="sync_command", help="Sync commands")
    sync_subparsers.add_parser("now", help="Push pending changes, then fetch")
    sync_subparsers.add_parser("status", help="Show sync status")
    conflicts_parser = sync_subparsers.add_parser("conflicts", help="List conflicted notes")
    conflicts_parser.add_argument("--diff", action="store_true", help="Show a diff per conflict")
    resolve_parser = sync_subparsers.add_parser("resolve", help="Resolve a conflicted note")
    resolve_parser.add_argument("note_id", type=str, help="Note ID (or prefix) to resolve")
    resolve_parser.add_argument(
        "choice",
        type=str,
        choices=["local", "remote"],
        help="Resolution choice: local (overwrite remote) or remote (discard local)"
    )

    # repo command with subcommands
    repo_parser = cli_subparsers.add_parser("repo", help="Repository selection")
    repo_subparsers = repo_parser.add_subparsers(dest="repo_command", help="Repository commands")
    repo_subparsers.add_parser("show", help="Show the selected repository")
    select_parser = repo_subparsers.add_parser("select", help="Select the repository")
    select_parser.add_argument("repository", type=str, help="Repository as owner/name")
    select_parser.add_argument("--branch", type=str, default=None, help="Branch (default: main)")

    # auth command with subcommands
    auth_parser = cli_subparsers.add_parser("auth", help="Access token management")
    auth_subparsers = auth_parser.add_subparsers(dest="auth_command", help="Auth commands")
    set_token_parser = auth_subparsers.add_parser("set-token", help="Store an access token")
    set_token_parser.add_argument("token", type=str, help="GitHub access token")
    login_parser = auth_subparsers.add_parser(
        "login", help="Exchange an OAuth authorization code for a token"
    )
    login_parser.add_argument("--code", type=str, required=True, help="Authorization code")
    auth_subparsers.add_parser("whoami", help="Show the authenticated user")
    auth_subparsers.add_parser("logout", help="Remove the stored token")


def run_config_command(config: Config, args: argparse.Namespace) -> int:
    """Run repo/auth commands, which only touch the configuration."""
    if args.cli_command == "repo":
        repo_cmd = getattr(args, "repo_command", None)
        if repo_cmd == "show":
            return cmd_repo_show(config, args)
        elif repo_cmd == "select":
            return cmd_repo_select(config, args)
        print("Error: No repo command specified. Use 'repo --help'.", file=sys.stderr)
        return 1

    auth_cmd = getattr(args, "auth_command", None)
    if auth_cmd == "set-token":
        return cmd_auth_set_token(config, args)
    elif auth_cmd == "login":
        return cmd_auth_login(config, args)
    elif auth_cmd == "whoami":
        return cmd_auth_whoami(config, args)
    elif auth_cmd == "logout":
        return cmd_auth_logout(config, args)
    print("Error: No auth command specified. Use 'auth --help'.", file=sys.stderr)
    return 1


def run(
    config_dir: Optional[Path],
    args: argparse.Namespace,
    store: Optional[NoteStore] = None,
) -> int:
    """Dispatch one CLI command.

    Args:
        config_dir: Directory holding config.json and the cache, or None
        args: Parsed arguments; ``cli_command`` picks the handler
        store: NoteStore to use instead of one built from the configuration
            (left open; the caller owns it)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not hasattr(args, "cli_command") or not args.cli_command:
        print("Error: No CLI command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    config = Config(config_dir=config_dir)
    owns_store = store is None

    try:
        if args.cli_command in ("repo", "auth"):
            return run_config_command(config, args)

        if store is None:
            store = NoteStore.from_config(config)
        if store.session.repository is None and args.cli_command != "sync":
            print(NO_REPOSITORY_MESSAGE, file=sys.stderr)
            return 1

        commands: Dict[str, Any] = {
            "list-notes": cmd_list_notes,
            "show-note": cmd_show_note,
            "new-note": cmd_new_note,
            "edit-note": cmd_edit_note,
            "delete-note": cmd_delete_note,
            "list-folders": cmd_list_folders,
            "new-folder": cmd_new_folder,
            "delete-folder": cmd_delete_folder,
            "fetch": cmd_fetch,
        }
        if args.cli_command in commands:
            return commands[args.cli_command](store, args)

        if args.cli_command == "sync":
            sync_cmd = getattr(args, "sync_command", None)
            if not sync_cmd:
                print("Error: No sync command specified. Use 'sync --help'.", file=sys.stderr)
                return 1
            if sync_cmd == "status":
                return cmd_sync_status(store, args)
            if store.session.repository is None:
                print(NO_REPOSITORY_MESSAGE, file=sys.stderr)
                return 1
            if sync_cmd == "now":
                return cmd_sync_now(store, args)
            elif sync_cmd == "conflicts":
                return cmd_sync_conflicts(store, args)
            elif sync_cmd == "resolve":
                return cmd_sync_resolve(store, args)
            print(f"Error: Unknown sync command '{sync_cmd}'", file=sys.stderr)
            return 1

        print(f"Error: Unknown command '{args.cli_command}'", file=sys.stderr)
        return 1
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    finally:
        if owns_store and store is not None:
            store.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI standalone (``python -m commitpad.cli``)."""
    argv = sys.argv[1:] if argv is None else argv

    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("-d", "--config-dir", type=Path, default=None)
    known, remaining = pre_parser.parse_known_args(argv)

    parser = argparse.ArgumentParser(prog="commitpad-cli")
    subparsers = parser.add_subparsers(dest="interface")
    add_cli_subparser(subparsers)
    args = parser.parse_args(["cli", *remaining])
    return run(known.config_dir, args)


if __name__ == "__main__":
    sys.exit(main())
