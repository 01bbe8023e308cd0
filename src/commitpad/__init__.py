"""CommitPad: local-first Markdown notes stored in a GitHub repository."""

__version__ = "0.1.0"
