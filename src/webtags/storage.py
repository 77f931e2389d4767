"""
Bookmarks file persistence.

Two on-disk shapes exist: the plain document JSON, or the encryption
envelope wrapping it. Readers probe for the envelope first and treat
anything else as plaintext.

Writes are atomic: the new content goes to a sibling ``.tmp`` file
which is then renamed over the target, so no reader ever sees a
partially written document.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .encryption import EncryptionManager, SecretStore, is_encrypted
from .errors import DecodeError, EncryptionDisabledError, StorageError
from .models import Document

logger = logging.getLogger("webtags.storage")

BOOKMARKS_FILE = "bookmarks.json"


def _atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` through a sibling temp file."""
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise StorageError(f"Failed to write bookmarks file: {exc}") from exc


def read_document(
    path: Path,
    encryption_enabled: bool = False,
    store: Optional[SecretStore] = None,
) -> Document:
    """Load and validate the document stored at ``path``.

    Args:
        path: Bookmarks file.
        encryption_enabled: Session encryption flag.
        store: Secret store for the key when the file is encrypted.

    Returns:
        The validated Document.

    Raises:
        EncryptionDisabledError: File is encrypted but the flag is off.
        EncryptionError: Decryption failed.
        StorageError: The file could not be read.
        DecodeError: The content is not a document.
        ValidationError: The document breaks a validation rule.
    """
    path = Path(path)

    if is_encrypted(path):
        if not encryption_enabled:
            raise EncryptionDisabledError(
                "Bookmarks file is encrypted but encryption is not enabled. "
                "Enable encryption to access your bookmarks."
            )
        manager = EncryptionManager(True, store)
        raw = manager.read_encrypted_file(path)
        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Decrypted data is not valid UTF-8") from exc
    else:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Failed to read bookmarks file: {exc}") from exc

    document = Document.decode(content)
    document.validate()
    return document


def write_document(
    path: Path,
    document: Document,
    encryption_enabled: bool = False,
    store: Optional[SecretStore] = None,
) -> None:
    """Validate, serialize, optionally encrypt, and atomically write.

    Raises:
        ValidationError: Before anything touches the disk.
        EncryptionError: Encryption was requested and failed.
        StorageError: The write or rename failed.
    """
    path = Path(path)
    document.validate()
    content = document.encode()

    if encryption_enabled:
        manager = EncryptionManager(True, store)
        content = manager.encrypt_to_text(content.encode("utf-8"))

    _atomic_write(path, content)
    logger.info(
        "Bookmarks written (%s)", "encrypted" if encryption_enabled else "plain text"
    )


def decrypt_in_place(path: Path, store: Optional[SecretStore] = None) -> bool:
    """Turn an encrypted bookmarks file back into plaintext.

    Returns:
        True if the file was rewritten, False if it was absent or
        already plaintext.
    """
    path = Path(path)
    if not is_encrypted(path):
        return False
    document = read_document(path, encryption_enabled=True, store=store)
    write_document(path, document, encryption_enabled=False)
    return True
