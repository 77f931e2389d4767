"""
Host configuration -- loaded from ``<home>/config.yaml``.

Everything has a default, so a fresh install runs without a config
file. Environment variables override the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import WEBTAGS_HOME

logger = logging.getLogger("webtags.config")

CONFIG_FILE = "config.yaml"


def webtags_home() -> Path:
    return Path(os.environ.get("WEBTAGS_HOME", WEBTAGS_HOME)).expanduser()


class HostConfig(BaseModel):
    """Settings for the native messaging host."""

    home: Path = Field(default_factory=webtags_home)
    repo_base: Optional[Path] = None
    default_repo: str = "bookmarks"
    bookmarks_file: str = "bookmarks.json"
    remote: str = "origin"
    branch: str = "main"
    git_user_name: Optional[str] = None
    git_user_email: Optional[str] = None
    log_level: str = "INFO"

    @property
    def allowed_base(self) -> Path:
        """Directory every repository path must resolve into."""
        base = self.repo_base or (self.home / "repos")
        return Path(base).expanduser()

    @property
    def default_repo_path(self) -> Path:
        return self.allowed_base / self.default_repo

    @property
    def log_file(self) -> Path:
        return self.home / "logs" / "host.log"


def load_config(home: Optional[Path] = None) -> HostConfig:
    """Load configuration from disk, applying environment overrides.

    A missing or unreadable file yields defaults.
    """
    home = (home or webtags_home()).expanduser()
    data: dict = {}

    config_file = home / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, OSError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
            data = {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: not a mapping", config_file)
            data = {}

    overrides = {
        "repo_base": os.environ.get("WEBTAGS_REPO_BASE"),
        "git_user_name": os.environ.get("WEBTAGS_GIT_NAME"),
        "git_user_email": os.environ.get("WEBTAGS_GIT_EMAIL"),
        "log_level": os.environ.get("WEBTAGS_LOG_LEVEL"),
    }
    data.update({k: v for k, v in overrides.items() if v})
    data["home"] = home

    try:
        return HostConfig(**data)
    except ValueError as exc:
        logger.warning("Invalid config values, using defaults: %s", exc)
        return HostConfig(home=home)


def save_config(config: HostConfig) -> Path:
    """Persist configuration to ``<home>/config.yaml``."""
    config.home.mkdir(parents=True, exist_ok=True)
    config_file = config.home / CONFIG_FILE
    data = config.model_dump(mode="json", exclude={"home"}, exclude_none=True)
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
