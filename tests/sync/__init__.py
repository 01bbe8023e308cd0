"""Reconciliation engine tests.

This package contains scenario tests for the sync engine:
- Note create/update/move/delete against the fake remote
- Folder markers and folder deletion
- Offline work, tombstones and replay
- Conflict detection and resolution
- Session and repository switching
"""
