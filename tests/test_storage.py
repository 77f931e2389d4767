"""Tests for reading and writing the bookmarks file."""

from __future__ import annotations

from pathlib import Path

import pytest

from webtags.encryption import generate_and_store_key, is_encrypted
from webtags.errors import (
    DecodeError,
    EncryptionDisabledError,
    StorageError,
    ValidationError,
)
from webtags.models import Document, create_bookmark
from webtags.storage import BOOKMARKS_FILE, decrypt_in_place, read_document, write_document


@pytest.fixture
def path(tmp_path: Path) -> Path:
    return tmp_path / BOOKMARKS_FILE


class TestPlaintext:
    """Tests for unencrypted persistence."""

    def test_round_trip(self, path: Path, sample_data):
        doc = Document.from_dict(sample_data)
        write_document(path, doc)
        assert read_document(path) == doc
        assert is_encrypted(path) is False

    def test_no_temp_file_left(self, path: Path, sample_data):
        write_document(path, Document.from_dict(sample_data))
        assert not path.with_name(path.name + ".tmp").exists()
        assert [p.name for p in path.parent.iterdir()] == [BOOKMARKS_FILE]

    def test_invalid_document_never_written(self, path: Path):
        doc = Document.empty()
        doc.add_bookmark(create_bookmark("ftp://example.com", "t"))
        with pytest.raises(ValidationError):
            write_document(path, doc)
        assert not path.exists()

    def test_overwrite_replaces_content(self, path: Path, sample_data):
        write_document(path, Document.from_dict(sample_data))
        write_document(path, Document.empty())
        assert read_document(path).summary() == "0 bookmark(s), 0 tag(s)"

    def test_missing_file(self, path: Path):
        with pytest.raises(StorageError):
            read_document(path)

    def test_corrupt_file(self, path: Path):
        path.write_text("{not json")
        with pytest.raises(DecodeError):
            read_document(path)

    def test_unwritable_target(self, tmp_path: Path):
        with pytest.raises(StorageError):
            write_document(tmp_path / "missing-dir" / BOOKMARKS_FILE, Document.empty())


class TestEncrypted:
    """Tests for encrypted persistence."""

    @pytest.fixture(autouse=True)
    def key(self, secret_store):
        generate_and_store_key(secret_store)

    def test_round_trip(self, path: Path, sample_data, secret_store):
        doc = Document.from_dict(sample_data)
        write_document(path, doc, encryption_enabled=True, store=secret_store)
        assert is_encrypted(path) is True
        assert "example.com" not in path.read_text()
        assert read_document(path, True, secret_store) == doc

    def test_encrypted_but_disabled(self, path: Path, sample_data, secret_store):
        write_document(path, Document.from_dict(sample_data), True, secret_store)
        with pytest.raises(EncryptionDisabledError):
            read_document(path, encryption_enabled=False, store=secret_store)

    def test_plaintext_read_while_enabled(self, path: Path, sample_data, secret_store):
        """An enabled flag still reads a file that is not yet encrypted."""
        write_document(path, Document.from_dict(sample_data))
        assert read_document(path, True, secret_store).summary() == "1 bookmark(s), 1 tag(s)"

    def test_decrypt_in_place(self, path: Path, sample_data, secret_store):
        doc = Document.from_dict(sample_data)
        write_document(path, doc, True, secret_store)

        assert decrypt_in_place(path, secret_store) is True
        assert is_encrypted(path) is False
        assert read_document(path) == doc

        assert decrypt_in_place(path, secret_store) is False

    def test_decrypt_in_place_missing(self, path: Path, secret_store):
        assert decrypt_in_place(path, secret_store) is False
