"""
Session orchestrator -- one request in, one response out.

Each action runs a fixed pipeline over the document model, the
storage layer, and the git working tree. The first failing step
aborts the rest (a failed commit never pushes) and is reported as an
ErrorResponse carrying a stable code.

    write   ->  decode -> validate -> write file -> stage+commit -> push
    read    ->  read file -> decrypt -> decode -> validate
    sync    ->  pull (fast-forward or merge, remote wins) -> push

The session holds only the open repository path and the encryption
flag. Requests are handled strictly one at a time.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from .config import HostConfig, load_config
from .encryption import (
    SecretStore,
    default_secret_store,
    generate_and_store_key,
    is_encrypted,
)
from .errors import (
    EncryptionStateError,
    NoRemoteError,
    NotInitializedError,
    PathNotAllowedError,
    WebTagsError,
)
from .git import GitIdentity, GitRepo
from .git_url import parse_git_url
from .models import Document
from .storage import decrypt_in_place, read_document, write_document

logger = logging.getLogger("webtags.session")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class InitAction(BaseModel):
    type: Literal["init"] = "init"
    repo_path: Optional[str] = None
    repo_url: Optional[str] = None


class WriteAction(BaseModel):
    type: Literal["write"] = "write"
    data: dict[str, Any]


class ReadAction(BaseModel):
    type: Literal["read"] = "read"


class SyncAction(BaseModel):
    type: Literal["sync"] = "sync"


class StatusAction(BaseModel):
    type: Literal["status"] = "status"


class EnableEncryptionAction(BaseModel):
    type: Literal["enableencryption"] = "enableencryption"


class DisableEncryptionAction(BaseModel):
    type: Literal["disableencryption"] = "disableencryption"


class EncryptionStatusAction(BaseModel):
    type: Literal["encryptionstatus"] = "encryptionstatus"


class AuthAction(BaseModel):
    """Opaque to the core; forwarded to the AuthProvider."""

    type: Literal["auth"] = "auth"
    method: str
    token: Optional[str] = None


Action = Annotated[
    Union[
        InitAction,
        WriteAction,
        ReadAction,
        SyncAction,
        StatusAction,
        EnableEncryptionAction,
        DisableEncryptionAction,
        EncryptionStatusAction,
        AuthAction,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class SuccessResponse(BaseModel):
    type: Literal["success"] = "success"
    message: str
    data: Optional[Any] = None


class ErrorResponse(BaseModel):
    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None


class AuthFlowResponse(BaseModel):
    type: Literal["authflow"] = "authflow"
    user_code: str
    verification_uri: str
    device_code: str


Response = Union[SuccessResponse, ErrorResponse, AuthFlowResponse]


class AuthProvider(ABC):
    """Collaborator that handles OAuth device flow and token storage."""

    @abstractmethod
    def handle(self, action: AuthAction) -> Response:
        """Run the auth step and return its response."""


# ---------------------------------------------------------------------------
# Path confinement
# ---------------------------------------------------------------------------


def confine_path(base: Path, candidate: Union[str, Path]) -> Path:
    """Resolve ``candidate`` and require it to stay inside ``base``.

    Relative paths are taken relative to ``base``. For paths that do
    not exist yet, the nearest existing ancestor is resolved (following
    symlinks) and the remainder is normalised on top of it.

    Raises:
        PathNotAllowedError: If the resolved path escapes ``base``.
    """
    base_resolved = Path(base).expanduser().resolve()
    path = Path(candidate).expanduser()
    if not path.is_absolute():
        path = base_resolved / path
    path = Path(os.path.normpath(str(path)))

    existing = path
    remainder: list[str] = []
    while not existing.exists():
        if existing.parent == existing:
            break
        remainder.insert(0, existing.name)
        existing = existing.parent

    resolved = existing.resolve().joinpath(*remainder)
    try:
        resolved.relative_to(base_resolved)
    except ValueError:
        raise PathNotAllowedError(
            f"Repository path is outside the allowed directory {base_resolved}"
        ) from None
    return resolved


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class Session:
    """Per-host mutable state plus the action handlers.

    Args:
        config: Host configuration. Defaults to ``load_config()``.
        store: Secret store for the encryption key.
        auth_provider: Handler for ``auth`` actions.
    """

    def __init__(
        self,
        config: Optional[HostConfig] = None,
        store: Optional[SecretStore] = None,
        auth_provider: Optional[AuthProvider] = None,
    ) -> None:
        self.config = config or load_config()
        self.store = store or default_secret_store()
        self.auth_provider = auth_provider
        self.repo_path: Optional[Path] = None
        self.encryption_enabled = False

    # -- helpers ------------------------------------------------------------

    def _require_repo_path(self) -> Path:
        if self.repo_path is None:
            raise NotInitializedError("Repository not initialized")
        return self.repo_path

    def _open_repo(self) -> GitRepo:
        identity = GitIdentity.from_env(
            self.config.git_user_name,
            self.config.git_user_email,
            repo_path=self._require_repo_path(),
        )
        return GitRepo.open(self._require_repo_path(), identity)

    @property
    def bookmarks_path(self) -> Path:
        return self._require_repo_path() / self.config.bookmarks_file

    def _commit_and_push(self, repo: GitRepo, message: str) -> bool:
        repo.stage_and_commit(self.config.bookmarks_file, message)
        if repo.has_remote(self.config.remote):
            repo.push(self.config.remote, self.config.branch)
            return True
        return False

    # -- dispatch -----------------------------------------------------------

    def handle(self, action: BaseModel) -> Response:
        """Run one action to completion and reduce it to a response."""
        handlers = {
            InitAction: self.handle_init,
            WriteAction: self.handle_write,
            ReadAction: self.handle_read,
            SyncAction: self.handle_sync,
            StatusAction: self.handle_status,
            EnableEncryptionAction: self.handle_enable_encryption,
            DisableEncryptionAction: self.handle_disable_encryption,
            EncryptionStatusAction: self.handle_encryption_status,
            AuthAction: self.handle_auth,
        }
        handler = handlers.get(type(action))
        if handler is None:
            return ErrorResponse(
                message=f"Unsupported action: {type(action).__name__}",
                code="ERR_UNKNOWN_ACTION",
            )

        try:
            return handler(action)
        except WebTagsError as exc:
            logger.error("%s failed [%s]: %s", action.type, exc.code, exc.message)
            return ErrorResponse(message=exc.message, code=exc.code)
        except OSError as exc:
            logger.error("%s failed with I/O error: %s", action.type, exc)
            return ErrorResponse(message=f"I/O error: {exc.strerror or exc}", code="ERR_IO")

    # -- handlers -----------------------------------------------------------

    def handle_init(self, action: InitAction) -> Response:
        base = self.config.allowed_base
        base.mkdir(parents=True, exist_ok=True)

        requested = action.repo_path or self.config.default_repo_path
        path = confine_path(base, requested)

        identity = GitIdentity.from_env(
            self.config.git_user_name, self.config.git_user_email
        )
        if action.repo_url:
            parse_git_url(action.repo_url)
            if (path / ".git").exists():
                repo = GitRepo.open(path, identity)
                if not repo.has_remote(self.config.remote):
                    repo.add_remote(self.config.remote, action.repo_url)
            else:
                logger.info("Cloning repository into %s", path)
                repo = GitRepo.clone_from(action.repo_url, path, identity)
        else:
            logger.info("Initializing local repository at %s", path)
            repo = GitRepo.open(path, identity)

        self.repo_path = repo.path
        if is_encrypted(self.bookmarks_path):
            self.encryption_enabled = True
            logger.info("Existing bookmarks file is encrypted; encryption enabled")

        return SuccessResponse(
            message=f"Repository initialized at {repo.path}",
            data={
                "repo_path": str(repo.path),
                "encryption_enabled": self.encryption_enabled,
            },
        )

    def handle_write(self, action: WriteAction) -> Response:
        self._require_repo_path()
        document = Document.from_dict(action.data)
        document.validate()

        write_document(
            self.bookmarks_path, document, self.encryption_enabled, self.store
        )
        repo = self._open_repo()
        pushed = self._commit_and_push(repo, f"Update bookmarks: {document.summary()}")

        return SuccessResponse(
            message="Bookmarks saved and synced" if pushed else "Bookmarks saved",
            data={"pushed": pushed},
        )

    def handle_read(self, action: ReadAction) -> Response:
        path = self.bookmarks_path
        if not path.exists():
            return SuccessResponse(
                message="No bookmarks file found, returning empty data",
                data=Document.empty().to_dict(),
            )

        document = read_document(path, self.encryption_enabled, self.store)
        return SuccessResponse(message="Bookmarks loaded", data=document.to_dict())

    def handle_sync(self, action: SyncAction) -> Response:
        self._require_repo_path()
        repo = self._open_repo()
        if not repo.has_remote(self.config.remote):
            raise NoRemoteError("No remote configured")

        outcome = repo.pull(self.config.remote, self.config.branch)
        repo.push(self.config.remote, self.config.branch)
        if is_encrypted(self.bookmarks_path):
            self.encryption_enabled = True

        return SuccessResponse(
            message="Synced with remote",
            data={"outcome": outcome.value},
        )

    def handle_status(self, action: StatusAction) -> Response:
        if self.repo_path is None:
            return SuccessResponse(
                message="Not initialized", data={"initialized": False}
            )

        repo = self._open_repo()
        return SuccessResponse(
            message="Status retrieved",
            data={
                "initialized": True,
                "repo_path": str(self.repo_path),
                "is_clean": repo.is_clean(),
                "has_remote": repo.has_remote(self.config.remote),
                "last_commit": repo.last_commit_message(),
                "encryption_enabled": self.encryption_enabled,
                "file_encrypted": is_encrypted(self.bookmarks_path),
            },
        )

    def handle_enable_encryption(self, action: EnableEncryptionAction) -> Response:
        path = self.bookmarks_path
        if self.encryption_enabled:
            raise EncryptionStateError("Encryption is already enabled")

        changed = False
        if is_encrypted(path):
            # the stored key already protects this file
            logger.info("Bookmarks file already encrypted; reusing stored key")
        else:
            document = read_document(path) if path.exists() else None
            generate_and_store_key(self.store)
            if document is not None:
                write_document(path, document, True, self.store)
                self._commit_and_push(self._open_repo(), "Enable encryption")
                changed = True

        self.encryption_enabled = True
        logger.info("Encryption enabled (file re-encrypted: %s)", changed)
        return SuccessResponse(
            message="Encryption enabled", data={"file_changed": changed}
        )

    def handle_disable_encryption(self, action: DisableEncryptionAction) -> Response:
        path = self.bookmarks_path
        if not self.encryption_enabled:
            raise EncryptionStateError("Encryption is already disabled")

        changed = decrypt_in_place(path, self.store)
        if changed:
            self._commit_and_push(self._open_repo(), "Disable encryption")

        try:
            self.store.delete_key()
        except WebTagsError as exc:
            logger.warning("Failed to delete encryption key: %s", exc.message)
        except OSError as exc:
            logger.warning("Failed to delete encryption key: %s", exc)

        self.encryption_enabled = False
        logger.info("Encryption disabled (file decrypted: %s)", changed)
        return SuccessResponse(
            message="Encryption disabled", data={"file_changed": changed}
        )

    def handle_encryption_status(self, action: EncryptionStatusAction) -> Response:
        return SuccessResponse(
            message="Encryption status retrieved",
            data={
                "enabled": self.encryption_enabled,
                "supported": self.store.supported,
            },
        )

    def handle_auth(self, action: AuthAction) -> Response:
        if self.auth_provider is None:
            return ErrorResponse(
                message="Authentication is not available in this host",
                code="ERR_AUTH_UNAVAILABLE",
            )
        logger.info("Forwarding auth action (method=%s)", action.method)
        return self.auth_provider.handle(action)
