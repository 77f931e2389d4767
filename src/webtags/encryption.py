"""
At-rest encryption for the bookmarks file.

AES-256-GCM with a 96-bit random nonce per encryption. The key never
touches the repository: it lives in a platform secret store that can
demand user presence (Touch ID on macOS) before handing it out.

Envelope written to disk:

    {
      "version": "1",
      "encrypted": true,
      "algorithm": "AES-256-GCM",
      "nonce": "<base64>",
      "ciphertext": "<base64>"
    }

Platforms without a supported secret store fail fast with
PlatformNotSupportedError instead of silently writing plaintext.
"""

from __future__ import annotations

import base64
import binascii
import logging
import platform
import secrets
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, StrictBool
from pydantic import ValidationError as SchemaError

from .errors import (
    DecryptionError,
    EncryptionDisabledError,
    InvalidNonceError,
    KeyUnavailableError,
    NotEncryptedError,
    PlatformNotSupportedError,
    StorageError,
    UnsupportedAlgorithmError,
)

logger = logging.getLogger("webtags.encryption")

ALGORITHM = "AES-256-GCM"
ENVELOPE_VERSION = "1"
NONCE_SIZE = 12
KEY_SIZE = 32

KEYCHAIN_SERVICE = "com.webtags.encryption"
KEYCHAIN_ACCOUNT = "master-key"


class Envelope(BaseModel):
    """On-disk wrapper carrying encryption metadata and ciphertext."""

    version: str = ENVELOPE_VERSION
    encrypted: StrictBool
    algorithm: str
    nonce: str
    ciphertext: str

    def nonce_bytes(self) -> bytes:
        return _b64decode(self.nonce, "nonce")

    def ciphertext_bytes(self) -> bytes:
        return _b64decode(self.ciphertext, "ciphertext")


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionError(f"Invalid base64 in envelope {field}") from exc


def parse_envelope(text: Union[str, bytes]) -> Optional[Envelope]:
    """Parse envelope JSON, or return None if the text has another shape."""
    try:
        return Envelope.model_validate_json(text)
    except SchemaError:
        return None


def is_encrypted(path: Path) -> bool:
    """Report whether ``path`` holds an encrypted envelope.

    Never raises: a missing, unreadable, or non-envelope file is
    simply not encrypted.
    """
    path = Path(path)
    if not path.is_file():
        return False
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Could not read %s for envelope check: %s", path, exc)
        return False

    envelope = parse_envelope(content)
    return envelope is not None and envelope.encrypted


# ---------------------------------------------------------------------------
# Secret stores
# ---------------------------------------------------------------------------


class SecretStore(ABC):
    """Where the encryption key lives outside the process."""

    @abstractmethod
    def store_key(self, key: bytes) -> None:
        """Persist ``key``, replacing any existing one."""

    @abstractmethod
    def get_key(self) -> bytes:
        """Return the stored key.

        Raises:
            KeyUnavailableError: If no key is stored.
        """

    @abstractmethod
    def delete_key(self) -> None:
        """Remove the stored key. Absent keys are not an error."""

    @property
    @abstractmethod
    def supported(self) -> bool:
        """Whether this platform can hold keys at all."""


class KeychainSecretStore(SecretStore):
    """macOS Keychain via the ``security`` command line tool.

    The item is created with an empty trusted-application list, so
    every read prompts for user presence.
    """

    def __init__(
        self,
        service: str = KEYCHAIN_SERVICE,
        account: str = KEYCHAIN_ACCOUNT,
    ) -> None:
        self.service = service
        self.account = account

    @property
    def supported(self) -> bool:
        return True

    def _security(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["security", *args],
            capture_output=True,
            text=True,
            check=False,
        )

    def store_key(self, key: bytes) -> None:
        key_b64 = base64.b64encode(key).decode("ascii")
        self.delete_key()
        result = self._security(
            "add-generic-password",
            "-a", self.account,
            "-s", self.service,
            "-w", key_b64,
            "-T", "",
            "-U",
        )
        if result.returncode != 0:
            logger.debug("security add-generic-password: %s", result.stderr.strip())
            raise KeyUnavailableError("Failed to store key in Keychain")
        logger.info("Encryption key stored in Keychain with user-presence requirement")

    def get_key(self) -> bytes:
        result = self._security(
            "find-generic-password",
            "-a", self.account,
            "-s", self.service,
            "-w",
        )
        if result.returncode != 0:
            raise KeyUnavailableError(
                "Encryption key not found in Keychain. Please enable encryption first."
            )
        try:
            key = base64.b64decode(result.stdout.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise KeyUnavailableError("Failed to decode encryption key") from exc
        if len(key) != KEY_SIZE:
            raise KeyUnavailableError("Invalid encryption key size")
        return key

    def delete_key(self) -> None:
        result = self._security(
            "delete-generic-password",
            "-a", self.account,
            "-s", self.service,
        )
        if result.returncode == 0:
            logger.info("Encryption key deleted from Keychain")


class UnsupportedSecretStore(SecretStore):
    """Stand-in for platforms without a user-presence secret store."""

    MESSAGE = "Encryption with biometric authentication is only supported on macOS"

    @property
    def supported(self) -> bool:
        return False

    def store_key(self, key: bytes) -> None:
        raise PlatformNotSupportedError(self.MESSAGE)

    def get_key(self) -> bytes:
        raise PlatformNotSupportedError(self.MESSAGE)

    def delete_key(self) -> None:
        pass


def default_secret_store() -> SecretStore:
    """Pick the secret store for the running platform."""
    if platform.system() == "Darwin":
        return KeychainSecretStore()
    return UnsupportedSecretStore()


# ---------------------------------------------------------------------------
# Key lifecycle
# ---------------------------------------------------------------------------


def generate_and_store_key(store: SecretStore) -> None:
    """Create a fresh 256-bit key and hand it to ``store``."""
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    if not store.supported:
        raise PlatformNotSupportedError(UnsupportedSecretStore.MESSAGE)
    store.store_key(AESGCM.generate_key(bit_length=KEY_SIZE * 8))


# ---------------------------------------------------------------------------
# EncryptionManager
# ---------------------------------------------------------------------------


class EncryptionManager:
    """Encrypts and decrypts bookmark bytes with the stored key.

    Args:
        enabled: Session encryption flag; operations refuse to run when False.
        store: Secret store holding the key. Defaults to the platform store.
    """

    def __init__(self, enabled: bool, store: Optional[SecretStore] = None) -> None:
        self.enabled = enabled
        self.store = store or default_secret_store()

    def _cipher(self):
        from cryptography.hazmat.primitives.ciphers.aead import AESGCM

        key = self.store.get_key()
        if len(key) != KEY_SIZE:
            raise KeyUnavailableError("Invalid encryption key size")
        return AESGCM(key)

    def encrypt(self, plaintext: bytes) -> Envelope:
        if not self.enabled:
            raise EncryptionDisabledError("Encryption is not enabled")

        cipher = self._cipher()
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = cipher.encrypt(nonce, plaintext, None)

        return Envelope(
            version=ENVELOPE_VERSION,
            encrypted=True,
            algorithm=ALGORITHM,
            nonce=base64.b64encode(nonce).decode("ascii"),
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
        )

    def decrypt(self, envelope: Envelope) -> bytes:
        """Decrypt an envelope.

        Metadata is checked before the key is fetched, so a malformed
        envelope never triggers a secret-store prompt.
        """
        from cryptography.exceptions import InvalidTag

        if not self.enabled:
            raise EncryptionDisabledError("Encryption is not enabled")
        if not envelope.encrypted:
            raise NotEncryptedError("Data is not encrypted")
        if envelope.algorithm != ALGORITHM:
            raise UnsupportedAlgorithmError(
                f"Unsupported encryption algorithm: {envelope.algorithm}"
            )

        nonce = envelope.nonce_bytes()
        if len(nonce) != NONCE_SIZE:
            raise InvalidNonceError("Invalid nonce size")
        ciphertext = envelope.ciphertext_bytes()

        cipher = self._cipher()
        try:
            return cipher.decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            raise DecryptionError("Decryption failed: authentication tag mismatch") from exc

    def read_encrypted_file(self, path: Path) -> bytes:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Failed to read encrypted file: {exc}") from exc

        envelope = parse_envelope(content)
        if envelope is None:
            raise DecryptionError("Failed to parse encrypted file")
        return self.decrypt(envelope)

    def encrypt_to_text(self, data: bytes) -> str:
        return self.encrypt(data).model_dump_json(indent=2)
