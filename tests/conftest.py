"""Shared test fixtures for webtags."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional

import pytest

from webtags.config import HostConfig
from webtags.encryption import SecretStore
from webtags.errors import KeyUnavailableError

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


class MemorySecretStore(SecretStore):
    """Secret store that keeps the key in memory."""

    def __init__(self) -> None:
        self.key: Optional[bytes] = None

    @property
    def supported(self) -> bool:
        return True

    def store_key(self, key: bytes) -> None:
        self.key = key

    def get_key(self) -> bytes:
        if self.key is None:
            raise KeyUnavailableError("No key stored")
        return self.key

    def delete_key(self) -> None:
        self.key = None


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's WebTags settings out of the tests."""
    for var in (
        "WEBTAGS_HOME",
        "WEBTAGS_REPO_BASE",
        "WEBTAGS_GIT_NAME",
        "WEBTAGS_GIT_EMAIL",
        "WEBTAGS_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def webtags_home(tmp_path: Path) -> Path:
    """Provide a temporary WebTags home directory."""
    home = tmp_path / ".webtags"
    home.mkdir()
    return home


@pytest.fixture
def config(webtags_home: Path) -> HostConfig:
    return HostConfig(home=webtags_home)


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def sample_data() -> dict:
    """One bookmark tagged with one tag, as the extension sends it."""
    return {
        "jsonapi": {"version": "1.1"},
        "data": [
            {
                "type": "bookmark",
                "id": "bm-1",
                "attributes": {
                    "url": "https://example.com/",
                    "title": "Example",
                    "created": "2024-01-01T00:00:00Z",
                },
                "relationships": {
                    "tags": {"data": [{"type": "tag", "id": "tag-1"}]},
                },
            }
        ],
        "included": [
            {
                "type": "tag",
                "id": "tag-1",
                "attributes": {"name": "reading", "color": "#3366ff"},
            }
        ],
    }


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """Create an empty bare repository whose HEAD points at main."""
    remote = tmp_path / "remote.git"
    subprocess.run(["git", "init", "-q", "--bare", str(remote)], check=True)
    subprocess.run(
        ["git", "symbolic-ref", "HEAD", "refs/heads/main"],
        cwd=str(remote), check=True,
    )
    return remote


@pytest.fixture
def master_remote(tmp_path: Path) -> Path:
    """Create an empty bare repository whose default branch is master."""
    remote = tmp_path / "master-remote.git"
    subprocess.run(
        ["git", "-c", "init.defaultBranch=master", "init", "-q", "--bare", str(remote)],
        check=True,
    )
    subprocess.run(
        ["git", "symbolic-ref", "HEAD", "refs/heads/master"],
        cwd=str(remote), check=True,
    )
    return remote
