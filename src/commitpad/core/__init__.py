"""Core sync engine for CommitPad. No UI dependencies."""
