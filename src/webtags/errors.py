"""
Error taxonomy shared by every layer of the host.

Each error carries a stable ``code`` so the session can report
failures to the extension as a (message, code) pair without
leaking anything else.
"""

from __future__ import annotations

from typing import Optional


class WebTagsError(Exception):
    """Base class for all host failures."""

    code = "ERR_INTERNAL"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(WebTagsError):
    """Document content violates a validation rule.

    Attributes:
        rule: Short stable name of the violated rule (e.g. ``url_scheme``).
    """

    code = "ERR_VALIDATE"

    def __init__(self, rule: str, message: str) -> None:
        super().__init__(message)
        self.rule = rule


class KindMismatchError(WebTagsError):
    """A bookmark was passed where a tag was expected, or the reverse."""

    code = "ERR_KIND_MISMATCH"


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class NotInitializedError(WebTagsError):
    """An action needs a repository but ``init`` has not succeeded yet."""

    code = "ERR_NOT_INITIALIZED"


class EncryptionStateError(WebTagsError):
    """Encryption is already in the requested state."""

    code = "ERR_ENCRYPTION_STATE"


class PathNotAllowedError(WebTagsError):
    """A repository path resolves outside the allowed base directory."""

    code = "ERR_PATH_NOT_ALLOWED"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(WebTagsError):
    """Reading, writing, or renaming the bookmarks file failed."""

    code = "ERR_STORAGE"


class DecodeError(StorageError):
    """Stored or received bytes are not a well-formed document."""

    code = "ERR_PARSE"


# ---------------------------------------------------------------------------
# Cryptography
# ---------------------------------------------------------------------------


class EncryptionError(WebTagsError):
    """Base class for cryptographic failures."""

    code = "ERR_ENCRYPTION"


class EncryptionDisabledError(EncryptionError):
    code = "ERR_ENCRYPTION_DISABLED"


class NotEncryptedError(EncryptionError):
    code = "ERR_NOT_ENCRYPTED"


class UnsupportedAlgorithmError(EncryptionError):
    code = "ERR_UNSUPPORTED_ALGORITHM"


class InvalidNonceError(EncryptionError):
    code = "ERR_INVALID_NONCE"


class KeyUnavailableError(EncryptionError):
    code = "ERR_KEY_UNAVAILABLE"


class PlatformNotSupportedError(EncryptionError):
    code = "ERR_ENCRYPTION_NOT_SUPPORTED"


class DecryptionError(EncryptionError):
    """Ciphertext failed authentication or could not be decoded."""

    code = "ERR_DECRYPT"


# ---------------------------------------------------------------------------
# Synchronization
# ---------------------------------------------------------------------------


class GitError(WebTagsError):
    """Base class for version-control failures."""

    code = "ERR_GIT"


class GitCommandError(GitError):
    """A git subprocess exited non-zero."""


class NoRemoteError(GitError):
    code = "ERR_NO_REMOTE"


class AuthenticationError(GitError):
    code = "ERR_AUTH_REJECTED"


class NonFastForwardError(GitError):
    code = "ERR_NON_FAST_FORWARD"


class MergeError(GitError):
    code = "ERR_MERGE"


class InvalidRemoteUrlError(GitError):
    code = "ERR_INVALID_REMOTE_URL"
