"""Configuration management for CommitPad.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .models import Repository
from .validation import (
    ValidationError,
    validate_branch_name,
    validate_repository_name,
    validate_token,
)

logger = logging.getLogger(__name__)

__all__ = ["Config", "DEFAULT_COMMIT_MESSAGE_TEMPLATES"]

DEFAULT_COMMIT_MESSAGE_TEMPLATES: Dict[str, str] = {
    "create": "Create note: {{title}}",
    "update": "Update note: {{title}}",
    "delete": "Delete note: {{title}}",
    "folder_create": "Create folder: {{folder}}",
    "folder_delete": "Delete folder: {{folder}}",
}


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "commitpad"


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
        config_data: The loaded configuration
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses
                ~/.config/commitpad/
        """
        self.config_dir = Path(config_dir) if config_dir else _default_config_dir()
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_data = self.load_config()

    @property
    def config_file(self) -> Path:
        """Get the config file path."""
        return self.config_dir / "config.json"

    def _default_config(self) -> Dict[str, Any]:
        return {
            "cache_file": str(self.config_dir / "cache.json"),
            "api_url": "https://api.github.com",
            "oauth_url": "https://github.com/login/oauth/access_token",
            "client_id": None,
            "client_secret": None,
            "token": None,
            "repository": None,
            "request_timeout": 10.0,
            "connectivity_timeout": 3.0,
            "commit_message_templates": dict(DEFAULT_COMMIT_MESSAGE_TEMPLATES),
        }

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating it with defaults if missing.

        Invalid JSON falls back to the defaults.
        """
        config = self._default_config()

        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    stored = json.load(f)
                if isinstance(stored, dict):
                    templates = stored.pop("commit_message_templates", None)
                    config.update(stored)
                    if isinstance(templates, dict):
                        config["commit_message_templates"].update(templates)
                else:
                    logger.warning(
                        f"Ignoring {self.config_file}: top level is not an object"
                    )
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not load {self.config_file}, using defaults: {e}")
        else:
            self.save_config(config)

        return config

    def save_config(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Save configuration to file."""
        if config is not None:
            self.config_data = config
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.config_data, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        value = self.config_data.get(key)
        return copy.deepcopy(value) if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file."""
        self.config_data[key] = value
        self.save_config()

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    def get_cache_file(self) -> Path:
        """Get the path of the local note cache."""
        return Path(self.get("cache_file", str(self.config_dir / "cache.json")))

    def get_api_url(self) -> str:
        """Get the GitHub API base URL (without trailing slash)."""
        return str(self.get("api_url", "https://api.github.com")).rstrip("/")

    def get_request_timeout(self) -> float:
        return float(self.get("request_timeout", 10.0))

    def get_connectivity_timeout(self) -> float:
        return float(self.get("connectivity_timeout", 3.0))

    # ===== Session Configuration Methods =====

    def get_token(self) -> Optional[str]:
        """Get the stored access token."""
        return self.get("token")

    def set_token(self, token: Optional[str]) -> None:
        """Store (or clear, with None) the access token."""
        self.set("token", validate_token(token) if token is not None else None)

    def get_repository(self) -> Optional[Repository]:
        """Get the selected repository, or None if none is selected."""
        data = self.get("repository")
        if not data:
            return None
        try:
            return Repository.from_dict(data)
        except (KeyError, TypeError) as e:
            logger.warning(f"Ignoring malformed repository in config: {e}")
            return None

    def set_repository(self, full_name: str, branch: Optional[str] = None) -> Repository:
        """Select the repository notes are stored in.

        Args:
            full_name: "owner/name"
            branch: Default branch (defaults to "main")

        Returns:
            The selected Repository
        """
        parts = validate_repository_name(full_name)
        repository = Repository(
            owner=parts["owner"],
            name=parts["name"],
            default_branch=validate_branch_name(branch),
        )
        self.set("repository", repository.to_dict())
        return repository

    def get_commit_message_template(self, kind: str) -> str:
        """Get the commit message template for an operation kind."""
        if kind not in DEFAULT_COMMIT_MESSAGE_TEMPLATES:
            raise ValidationError("commit_message_template", f"unknown kind '{kind}'")
        templates = self.get("commit_message_templates", {})
        return templates.get(kind) or DEFAULT_COMMIT_MESSAGE_TEMPLATES[kind]

    def get_commit_message_templates(self) -> Dict[str, str]:
        """Get all commit message templates, defaults filled in."""
        return {kind: self.get_commit_message_template(kind) for kind in DEFAULT_COMMIT_MESSAGE_TEMPLATES}

    def get_oauth_settings(self) -> Dict[str, Optional[str]]:
        """Get the OAuth app settings used to exchange authorization codes."""
        return {
            "oauth_url": self.get("oauth_url"),
            "client_id": self.get("client_id") or os.environ.get("GITHUB_CLIENT_ID"),
            "client_secret": self.get("client_secret") or os.environ.get("GITHUB_CLIENT_SECRET"),
        }
