"""
Git working tree driver -- where the bookmarks travel.

Wraps the ``git`` executable. One remote ("origin"), one branch
("main"). Credentials are never handled here: git asks the ssh-agent
or the platform credential helper, and interactive prompts are
disabled so a missing credential fails instead of hanging.

Pull policy on divergence is fixed: merge, and for every conflicting
path keep the remote's version. Local edits to a conflicting file are
lost; that is the price of a sync that never needs a human.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .errors import (
    AuthenticationError,
    GitCommandError,
    MergeError,
    NoRemoteError,
    NonFastForwardError,
)

logger = logging.getLogger("webtags.git")

DEFAULT_REMOTE = "origin"
DEFAULT_BRANCH = "main"
FALLBACK_NAME = "WebTags User"
FALLBACK_EMAIL = "webtags@localhost"
NO_MESSAGE = "(no message)"

_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "permission denied",
    "invalid username or password",
)
_HTTP_AUTH_STATUS = re.compile(r"\b40[13]\b")
_NON_FF_MARKERS = (
    "non-fast-forward",
    "fetch first",
    "[rejected]",
    "updates were rejected",
)


class PullOutcome(str, Enum):
    """What a pull did to the local branch."""

    UP_TO_DATE = "up_to_date"
    FAST_FORWARD = "fast_forward"
    MERGED = "merged"


class GitIdentity:
    """Author/committer identity used for every commit.

    Attributes:
        name: Author name.
        email: Author email.
    """

    def __init__(self, name: str = FALLBACK_NAME, email: str = FALLBACK_EMAIL):
        self.name = name
        self.email = email

    @classmethod
    def from_env(
        cls,
        name: Optional[str] = None,
        email: Optional[str] = None,
        repo_path: Optional[Path] = None,
    ) -> "GitIdentity":
        """Resolve identity: environment, then explicit values, then git config.

        Falls back to the fixed WebTags identity for anything unset.
        """
        resolved_name = os.environ.get("WEBTAGS_GIT_NAME") or name
        resolved_email = os.environ.get("WEBTAGS_GIT_EMAIL") or email

        missing = not resolved_name or not resolved_email
        if missing and repo_path is not None and repo_path.is_dir():
            resolved_name = resolved_name or _git_config(repo_path, "user.name")
            resolved_email = resolved_email or _git_config(repo_path, "user.email")

        return cls(resolved_name or FALLBACK_NAME, resolved_email or FALLBACK_EMAIL)

    def __repr__(self) -> str:
        return f"GitIdentity({self.name!r}, {self.email!r})"


def _git_env(extra: Optional[dict[str, str]] = None) -> dict[str, str]:
    env = os.environ.copy()
    if extra:
        env.update(extra)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_ASKPASS", "")
    return env


def _git_config(repo_path: Path, key: str) -> Optional[str]:
    if shutil.which("git") is None:
        return None
    result = subprocess.run(
        ["git", "config", "--get", key],
        capture_output=True, text=True, check=False,
        cwd=str(repo_path), env=_git_env(),
    )
    value = result.stdout.strip()
    return value if result.returncode == 0 and value else None


def git_available() -> bool:
    return shutil.which("git") is not None


class GitRepo:
    """A version-controlled directory holding the bookmarks file.

    Holds nothing but the path and the commit identity; every query
    goes to git.
    """

    def __init__(self, path: Path, identity: Optional[GitIdentity] = None):
        self.path = Path(path)
        self.identity = identity or GitIdentity.from_env(repo_path=self.path)

    # -- construction -------------------------------------------------------

    @classmethod
    def open(cls, path: Path, identity: Optional[GitIdentity] = None) -> "GitRepo":
        """Open the repository at ``path``, initialising it if absent.

        Idempotent: opening an existing repository changes nothing.
        """
        path = Path(path)
        if not (path / ".git").exists():
            path.mkdir(parents=True, exist_ok=True)
            _run_git(path, ["init", "-q"], code="ERR_INIT",
                     failure="Failed to initialize repository")
            _run_git(path, ["symbolic-ref", "HEAD", f"refs/heads/{DEFAULT_BRANCH}"],
                     code="ERR_INIT", failure="Failed to initialize repository")
            logger.info("Initialized repository at %s", path)
        return cls(path, identity)

    @classmethod
    def clone_from(
        cls, url: str, path: Path, identity: Optional[GitIdentity] = None
    ) -> "GitRepo":
        """Clone ``url`` into ``path`` with its full history.

        The local branch is always ``main``, whatever the remote calls
        its default branch.

        Raises:
            AuthenticationError: Credentials were rejected.
            GitCommandError: Any other clone failure, including a
                non-empty target directory.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        result = subprocess.run(
            ["git", "clone", "-q", url, str(path)],
            capture_output=True, text=True, check=False, env=_git_env(),
        )
        if result.returncode != 0:
            logger.debug("git clone stderr: %s", result.stderr.strip())
            if _auth_rejected(result.stderr):
                raise AuthenticationError("Authentication rejected by remote")
            raise GitCommandError("Failed to clone repository", code="ERR_CLONE")
        logger.info("Cloned repository into %s", path)
        repo = cls(path, identity)
        repo._pin_branch(DEFAULT_BRANCH)
        return repo

    # -- plumbing -----------------------------------------------------------

    def _git(
        self,
        args: list[str],
        code: str = "ERR_GIT",
        failure: str = "Git command failed",
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        env = {
            "GIT_AUTHOR_NAME": self.identity.name,
            "GIT_AUTHOR_EMAIL": self.identity.email,
            "GIT_COMMITTER_NAME": self.identity.name,
            "GIT_COMMITTER_EMAIL": self.identity.email,
        }
        return _run_git(self.path, ["-c", "commit.gpgsign=false", *args], code=code,
                        failure=failure, check=check, extra_env=env)

    def _pin_branch(self, branch: str) -> None:
        if self._rev("HEAD") is None:
            self._git(["symbolic-ref", "HEAD", f"refs/heads/{branch}"],
                      code="ERR_CLONE", failure="Failed to set up cloned branch")
        else:
            self._git(["branch", "-M", branch],
                      code="ERR_CLONE", failure="Failed to set up cloned branch")

    def _rev(self, ref: str) -> Optional[str]:
        result = self._git(["rev-parse", "--verify", "-q", f"{ref}^{{commit}}"],
                           check=False)
        sha = result.stdout.strip()
        return sha if result.returncode == 0 and sha else None

    def _is_ancestor(self, ancestor: str, descendant: str) -> bool:
        result = self._git(["merge-base", "--is-ancestor", ancestor, descendant],
                           check=False)
        return result.returncode == 0

    # -- remotes ------------------------------------------------------------

    def has_remote(self, name: str = DEFAULT_REMOTE) -> bool:
        return self.remote_url(name) is not None

    def remote_url(self, name: str = DEFAULT_REMOTE) -> Optional[str]:
        result = self._git(["remote", "get-url", name], check=False)
        url = result.stdout.strip()
        return url if result.returncode == 0 and url else None

    def add_remote(self, name: str, url: str) -> None:
        self._git(["remote", "add", name, url], code="ERR_GIT_REMOTE",
                  failure="Failed to add remote")
        logger.info("Added remote %s", name)

    # -- commits ------------------------------------------------------------

    def add_file(self, file_path: Union[str, Path]) -> None:
        """Stage exactly one file, given relative to the tree or absolute."""
        file_path = Path(file_path)
        if file_path.is_absolute():
            try:
                file_path = file_path.resolve().relative_to(self.path.resolve())
            except ValueError:
                raise GitCommandError(
                    "File path is not within repository", code="ERR_GIT_ADD"
                ) from None
        self._git(["add", "--", str(file_path)], code="ERR_GIT_ADD",
                  failure="Failed to stage file")

    def commit(self, message: str) -> str:
        """Commit the index on top of the branch tip.

        The very first commit has no parent. Commits with no changes
        are allowed.

        Returns:
            The new commit id.
        """
        self._git(["commit", "-q", "--allow-empty", "--no-verify", "-m", message],
                  code="ERR_GIT_COMMIT", failure="Failed to commit")
        sha = self._rev("HEAD")
        logger.info("Committed %s: %s", sha[:8] if sha else "?", message)
        return sha or ""

    def stage_and_commit(self, file_path: Union[str, Path], message: str) -> str:
        self.add_file(file_path)
        return self.commit(message)

    def last_commit_message(self) -> str:
        if self._rev("HEAD") is None:
            return NO_MESSAGE
        result = self._git(["log", "-1", "--format=%B"], check=False)
        message = result.stdout.strip()
        return message or NO_MESSAGE

    def head_parents(self) -> list[str]:
        """Parent commit ids of the branch tip (two for a merge)."""
        if self._rev("HEAD") is None:
            return []
        result = self._git(["rev-list", "--parents", "-n", "1", "HEAD"])
        return result.stdout.split()[1:]

    def is_clean(self) -> bool:
        """True iff nothing is staged, modified, or untracked."""
        result = self._git(["status", "--porcelain"], code="ERR_GIT_STATUS",
                           failure="Failed to get repository status")
        return result.stdout.strip() == ""

    # -- network ------------------------------------------------------------

    def push(self, remote: str = DEFAULT_REMOTE, branch: str = DEFAULT_BRANCH) -> None:
        """Push ``branch`` to ``remote``. No retry.

        Raises:
            NoRemoteError: The remote is not configured.
            AuthenticationError: Credentials were rejected.
            NonFastForwardError: The remote has diverged.
            GitCommandError: Any other push failure.
        """
        if not self.has_remote(remote):
            raise NoRemoteError("No remote configured")

        refspec = f"refs/heads/{branch}:refs/heads/{branch}"
        result = self._git(["push", "--porcelain", remote, refspec], check=False)
        if result.returncode != 0:
            output = f"{result.stdout}\n{result.stderr}"
            logger.debug("git push output: %s", output.strip())
            if _matches(output, _NON_FF_MARKERS):
                raise NonFastForwardError(
                    "Push rejected: remote history has diverged (non-fast-forward)"
                )
            if _auth_rejected(output):
                raise AuthenticationError("Authentication rejected by remote")
            raise GitCommandError("Failed to push to remote", code="ERR_GIT_PUSH")
        logger.info("Pushed %s to %s", branch, remote)

    def fetch(self, remote: str = DEFAULT_REMOTE, branch: str = DEFAULT_BRANCH) -> Optional[str]:
        """Fetch ``branch`` from ``remote``.

        Returns:
            The fetched commit id, or None if the remote has no such branch.
        """
        if not self.has_remote(remote):
            raise NoRemoteError("No remote configured")

        result = self._git(["fetch", "-q", remote, branch], check=False)
        if result.returncode != 0:
            logger.debug("git fetch stderr: %s", result.stderr.strip())
            if "couldn't find remote ref" in result.stderr.lower():
                return None
            if _auth_rejected(result.stderr):
                raise AuthenticationError("Authentication rejected by remote")
            raise GitCommandError("Failed to fetch from remote", code="ERR_GIT_PULL")
        return self._rev("FETCH_HEAD")

    def pull(self, remote: str = DEFAULT_REMOTE, branch: str = DEFAULT_BRANCH) -> PullOutcome:
        """Fetch and integrate the remote branch.

        Exactly one outcome applies: already up to date, fast-forward,
        or a merge commit where every conflicting path takes the
        remote's version.
        """
        theirs = self.fetch(remote, branch)
        if theirs is None:
            logger.info("Remote %s has no branch %s yet", remote, branch)
            return PullOutcome.UP_TO_DATE

        ours = self._rev("HEAD")
        if ours == theirs or (ours is not None and self._is_ancestor(theirs, ours)):
            logger.info("Already up to date with %s/%s", remote, branch)
            return PullOutcome.UP_TO_DATE

        if ours is None or self._is_ancestor(ours, theirs):
            self._fast_forward(branch, theirs)
            logger.info("Fast-forwarded %s to %s", branch, theirs[:8])
            return PullOutcome.FAST_FORWARD

        self._merge_theirs(theirs, f"Merge from {remote}/{branch}")
        logger.info("Merged %s/%s preferring remote on conflicts", remote, branch)
        return PullOutcome.MERGED

    def _fast_forward(self, branch: str, target: str) -> None:
        self._git(["update-ref", f"refs/heads/{branch}", target],
                  code="ERR_GIT_PULL", failure="Failed to fast-forward")
        self._git(["symbolic-ref", "HEAD", f"refs/heads/{branch}"],
                  code="ERR_GIT_PULL", failure="Failed to fast-forward")
        self._git(["reset", "-q", "--hard", target],
                  code="ERR_GIT_PULL", failure="Failed to update working tree")

    def _merge_theirs(self, theirs: str, message: str) -> None:
        merge = self._git(
            ["merge", "--no-ff", "--no-commit", "--allow-unrelated-histories", theirs],
            check=False,
        )
        try:
            conflicted = self._conflicted_paths()
            if merge.returncode != 0 and not conflicted:
                logger.debug("git merge stderr: %s", merge.stderr.strip())
                raise MergeError("Merge could not be completed")

            for rel_path in conflicted:
                checkout = self._git(["checkout", "--theirs", "--", rel_path],
                                     check=False)
                if checkout.returncode == 0:
                    self._git(["add", "--", rel_path], code="ERR_MERGE",
                              failure="Merge could not be completed")
                else:
                    # deleted on the remote side
                    self._git(["rm", "-q", "--", rel_path], code="ERR_MERGE",
                              failure="Merge could not be completed")

            self._git(["commit", "-q", "--no-verify", "-m", message],
                      code="ERR_MERGE", failure="Merge could not be completed")
        except (GitCommandError, MergeError) as exc:
            self._git(["merge", "--abort"], check=False)
            if isinstance(exc, MergeError):
                raise
            raise MergeError("Merge could not be completed") from exc

    def _conflicted_paths(self) -> list[str]:
        result = self._git(["diff", "--name-only", "--diff-filter=U"], check=False)
        return [line for line in result.stdout.splitlines() if line.strip()]


def _matches(output: str, markers: tuple[str, ...]) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in markers)


def _auth_rejected(output: str) -> bool:
    return _matches(output, _AUTH_MARKERS) or _HTTP_AUTH_STATUS.search(output) is not None


def _run_git(
    cwd: Path,
    args: list[str],
    code: str = "ERR_GIT",
    failure: str = "Git command failed",
    check: bool = True,
    extra_env: Optional[dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    cmd = ["git", *args]
    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, check=False,
            cwd=str(cwd), env=_git_env(extra_env),
        )
    except OSError as exc:
        raise GitCommandError(f"{failure}: git is not available", code=code) from exc

    if check and result.returncode != 0:
        logger.error("Git command failed: git %s", _subcommand(args))
        logger.debug("git stderr: %s", result.stderr.strip())
        raise GitCommandError(failure, code=code)
    return result


def _subcommand(args: list[str]) -> str:
    """First git subcommand in ``args``, skipping ``-c key=value`` pairs."""
    it = iter(args)
    for arg in it:
        if arg == "-c":
            next(it, None)
            continue
        return arg
    return ""
