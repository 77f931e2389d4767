"""
Tests for the git working tree driver -- commits, push, pull outcomes.

Every test runs against real repositories in tmp_path, with a bare
repository standing in for the remote.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from conftest import requires_git
from webtags.errors import GitCommandError, NoRemoteError, NonFastForwardError
from webtags.git import NO_MESSAGE, GitIdentity, GitRepo, PullOutcome, _auth_rejected

pytestmark = requires_git

IDENTITY = GitIdentity("Test User", "test@webtags.local")


def _commit_file(repo: GitRepo, name: str, content: str, message: str) -> str:
    (repo.path / name).write_text(content)
    return repo.stage_and_commit(name, message)


@pytest.fixture
def local(tmp_path: Path) -> GitRepo:
    return GitRepo.open(tmp_path / "local", IDENTITY)


@pytest.fixture
def published(local: GitRepo, bare_remote: Path) -> GitRepo:
    """A local repository with one commit pushed to the bare remote."""
    local.add_remote("origin", str(bare_remote))
    _commit_file(local, "bookmarks.json", "one\n", "first")
    local.push("origin", "main")
    return local


@pytest.fixture
def other(published: GitRepo, bare_remote: Path, tmp_path: Path) -> GitRepo:
    """A second clone of the remote, standing in for another machine."""
    return GitRepo.clone_from(str(bare_remote), tmp_path / "other", IDENTITY)


class TestLocalRepo:
    """Tests for open, commit, and status queries."""

    def test_open_initializes(self, local: GitRepo):
        assert (local.path / ".git").is_dir()
        assert local.is_clean() is True
        assert local.last_commit_message() == NO_MESSAGE
        assert local.head_parents() == []

    def test_open_is_idempotent(self, local: GitRepo):
        sha = _commit_file(local, "a.txt", "a", "add a")
        again = GitRepo.open(local.path, IDENTITY)
        assert again.last_commit_message() == "add a"
        assert again._rev("HEAD") == sha

    def test_branch_is_main(self, local: GitRepo):
        _commit_file(local, "a.txt", "a", "add a")
        result = local._git(["rev-parse", "--abbrev-ref", "HEAD"])
        assert result.stdout.strip() == "main"

    def test_commit_identity(self, local: GitRepo):
        _commit_file(local, "a.txt", "a", "add a")
        result = local._git(["log", "-1", "--format=%an <%ae>"])
        assert result.stdout.strip() == "Test User <test@webtags.local>"

    def test_first_commit_has_no_parent(self, local: GitRepo):
        _commit_file(local, "a.txt", "a", "add a")
        assert local.head_parents() == []
        _commit_file(local, "a.txt", "b", "change a")
        assert len(local.head_parents()) == 1

    def test_empty_commit_allowed(self, local: GitRepo):
        first = _commit_file(local, "a.txt", "a", "add a")
        second = local.commit("nothing changed")
        assert first != second
        assert local.last_commit_message() == "nothing changed"

    def test_is_clean_tracks_untracked_files(self, local: GitRepo):
        (local.path / "a.txt").write_text("a")
        assert local.is_clean() is False
        local.stage_and_commit("a.txt", "add a")
        assert local.is_clean() is True

    def test_add_absolute_path(self, local: GitRepo):
        path = local.path / "a.txt"
        path.write_text("a")
        local.add_file(path)
        local.commit("add a")
        assert local.is_clean() is True

    def test_add_outside_repo(self, local: GitRepo, tmp_path: Path):
        outside = tmp_path / "outside.txt"
        outside.write_text("x")
        with pytest.raises(GitCommandError) as exc_info:
            local.add_file(outside)
        assert exc_info.value.code == "ERR_GIT_ADD"

    def test_remote_queries(self, local: GitRepo, bare_remote: Path):
        assert local.has_remote("origin") is False
        assert local.remote_url("origin") is None
        local.add_remote("origin", str(bare_remote))
        assert local.has_remote("origin") is True
        assert local.remote_url("origin") == str(bare_remote)


class TestPushPull:
    """Tests for push and the three pull outcomes."""

    def test_push_without_remote(self, local: GitRepo):
        _commit_file(local, "a.txt", "a", "add a")
        with pytest.raises(NoRemoteError):
            local.push("origin", "main")
        with pytest.raises(NoRemoteError):
            local.pull("origin", "main")

    def test_pull_from_empty_remote(self, local: GitRepo, bare_remote: Path):
        local.add_remote("origin", str(bare_remote))
        assert local.pull("origin", "main") == PullOutcome.UP_TO_DATE

    def test_clone_has_history(self, other: GitRepo):
        assert (other.path / "bookmarks.json").read_text() == "one\n"
        assert other.last_commit_message() == "first"

    def test_up_to_date(self, published: GitRepo, other: GitRepo):
        assert published.pull("origin", "main") == PullOutcome.UP_TO_DATE

    def test_local_ahead_is_up_to_date(self, published: GitRepo):
        _commit_file(published, "bookmarks.json", "two\n", "second")
        assert published.pull("origin", "main") == PullOutcome.UP_TO_DATE
        assert (published.path / "bookmarks.json").read_text() == "two\n"

    def test_fast_forward(self, published: GitRepo, other: GitRepo):
        _commit_file(other, "bookmarks.json", "from other\n", "other edit")
        other.push("origin", "main")

        assert published.pull("origin", "main") == PullOutcome.FAST_FORWARD
        assert (published.path / "bookmarks.json").read_text() == "from other\n"
        assert published.last_commit_message() == "other edit"
        assert published.is_clean() is True

    def test_non_fast_forward_push(self, published: GitRepo, other: GitRepo):
        _commit_file(other, "bookmarks.json", "from other\n", "other edit")
        other.push("origin", "main")

        _commit_file(published, "bookmarks.json", "local edit\n", "local edit")
        with pytest.raises(NonFastForwardError) as exc_info:
            published.push("origin", "main")
        assert exc_info.value.code == "ERR_NON_FAST_FORWARD"

    def test_diverged_conflict_takes_remote(self, published: GitRepo, other: GitRepo):
        _commit_file(other, "bookmarks.json", "from other\n", "other edit")
        other.push("origin", "main")
        _commit_file(published, "bookmarks.json", "local edit\n", "local edit")

        assert published.pull("origin", "main") == PullOutcome.MERGED
        assert (published.path / "bookmarks.json").read_text() == "from other\n"
        assert len(published.head_parents()) == 2
        assert published.last_commit_message() == "Merge from origin/main"
        assert published.is_clean() is True

        published.push("origin", "main")
        assert other.pull("origin", "main") == PullOutcome.FAST_FORWARD

    def test_diverged_without_conflict_keeps_both(self, published: GitRepo, other: GitRepo):
        _commit_file(other, "remote.txt", "r", "remote file")
        other.push("origin", "main")
        _commit_file(published, "local.txt", "l", "local file")

        assert published.pull("origin", "main") == PullOutcome.MERGED
        assert (published.path / "remote.txt").read_text() == "r"
        assert (published.path / "local.txt").read_text() == "l"

    def test_remote_deletion_wins(self, published: GitRepo, other: GitRepo):
        other._git(["rm", "-q", "bookmarks.json"])
        other.commit("remove bookmarks")
        other.push("origin", "main")
        _commit_file(published, "bookmarks.json", "local edit\n", "local edit")

        assert published.pull("origin", "main") == PullOutcome.MERGED
        assert not (published.path / "bookmarks.json").exists()


class TestCloneBranch:
    """Clones always work on main, whatever the remote default branch is."""

    def _current_branch(self, repo: GitRepo) -> str:
        return repo._git(["symbolic-ref", "--short", "HEAD"]).stdout.strip()

    def test_empty_master_remote(self, master_remote: Path, tmp_path: Path):
        clone = GitRepo.clone_from(str(master_remote), tmp_path / "clone", IDENTITY)
        assert self._current_branch(clone) == "main"

        _commit_file(clone, "bookmarks.json", "one\n", "first")
        clone.push("origin", "main")
        assert clone.pull("origin", "main") == PullOutcome.UP_TO_DATE

    def test_master_remote_with_history(self, master_remote: Path, tmp_path: Path):
        seed = tmp_path / "seed"
        git = ["git", "-c", "user.name=Seed", "-c", "user.email=seed@example.com"]
        subprocess.run(
            git + ["-c", "init.defaultBranch=master", "init", "-q", str(seed)], check=True
        )
        (seed / "bookmarks.json").write_text("seeded\n")
        subprocess.run(git + ["add", "bookmarks.json"], cwd=str(seed), check=True)
        subprocess.run(
            git + ["-c", "commit.gpgsign=false", "commit", "-q", "-m", "seed"],
            cwd=str(seed), check=True,
        )
        subprocess.run(
            git + ["push", "-q", str(master_remote), "HEAD:refs/heads/master"],
            cwd=str(seed), check=True,
        )

        clone = GitRepo.clone_from(str(master_remote), tmp_path / "clone", IDENTITY)
        assert self._current_branch(clone) == "main"
        assert (clone.path / "bookmarks.json").read_text() == "seeded\n"
        assert clone.last_commit_message() == "seed"

        _commit_file(clone, "bookmarks.json", "edited\n", "edit")
        clone.push("origin", "main")


class TestAuthDetection:
    """Classification of git output as rejected credentials."""

    @pytest.mark.parametrize(
        "output",
        [
            "fatal: Authentication failed for 'https://example.com/r.git'",
            "remote: Permission denied (publickey).",
            "fatal: unable to access: The requested URL returned error: 403",
            "error: RPC failed; HTTP 401 curl 22",
        ],
    )
    def test_rejected(self, output):
        assert _auth_rejected(output) is True

    @pytest.mark.parametrize(
        "output",
        [
            "!\trefs/heads/main:refs/heads/main\t[remote rejected] (pre-receive hook declined)\n"
            "To /tmp/r.git 4015a3b..9403c21",
            "error: failed to push some refs; object a401f2e missing",
        ],
    )
    def test_commit_ids_are_not_status_codes(self, output):
        assert _auth_rejected(output) is False


class TestIdentity:
    """Tests for commit identity resolution."""

    def test_fallback(self, tmp_path: Path):
        identity = GitIdentity.from_env(repo_path=tmp_path / "missing")
        assert identity.name
        assert identity.email

    def test_explicit_values(self):
        identity = GitIdentity.from_env("Alice", "alice@example.com")
        assert (identity.name, identity.email) == ("Alice", "alice@example.com")

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("WEBTAGS_GIT_NAME", "Env Name")
        monkeypatch.setenv("WEBTAGS_GIT_EMAIL", "env@example.com")
        identity = GitIdentity.from_env("Alice", "alice@example.com")
        assert (identity.name, identity.email) == ("Env Name", "env@example.com")
