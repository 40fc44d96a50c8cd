"""Tests for rich documents and document stores."""

from __future__ import annotations

from pathlib import Path

import pytest

from quillcheck.editor.document_model import (
    DocumentMetadata,
    DocumentNotFoundError,
    FileDocumentStore,
    InMemoryDocumentStore,
    RichDocument,
)


def test_update_rich_bumps_version_and_hash() -> None:
    document = RichDocument(rich="<p>draft</p>")
    original_hash = document.content_hash
    original_signature = document.version_signature()

    changed = document.update_rich("<p>final</p>")

    assert changed is True
    assert document.dirty is True
    assert document.version_id == 2
    assert document.content_hash != original_hash
    assert document.version_signature() != original_signature


def test_update_rich_with_same_content_is_noop() -> None:
    document = RichDocument(rich="<p>same</p>")

    assert document.update_rich("<p>same</p>") is False
    assert document.version_id == 1
    assert document.dirty is False


def test_snapshot_includes_path_when_known(tmp_path: Path) -> None:
    document = RichDocument(rich="<p>x</p>", metadata=DocumentMetadata(title="Memo", path=tmp_path / "memo.html"))

    snapshot = document.snapshot()

    assert snapshot["title"] == "Memo"
    assert snapshot["path"] == str(tmp_path / "memo.html")
    assert snapshot["version_id"] == 1


def test_in_memory_store_roundtrip() -> None:
    store = InMemoryDocumentStore()
    created = store.create("<p>hello</p>", title="Greeting")

    assert created.document_id in store
    assert len(store) == 1

    created.update_rich("<p>hello again</p>")
    store.save(created)
    loaded = store.load(created.document_id)

    assert created.dirty is False
    assert loaded.rich == "<p>hello again</p>"
    assert loaded.metadata.title == "Greeting"
    assert loaded.document_id == created.document_id


def test_in_memory_store_unknown_document() -> None:
    with pytest.raises(DocumentNotFoundError):
        InMemoryDocumentStore().load("missing")


def test_file_store_load_path_uses_stem(tmp_path: Path) -> None:
    target = tmp_path / "letter.html"
    target.write_text("<p>Dear team</p>", encoding="utf-8")

    document = FileDocumentStore.load_path(target)

    assert document.rich == "<p>Dear team</p>"
    assert document.metadata.title == "letter"
    assert document.metadata.path == target
    assert document.document_id == "letter"


def test_file_store_save_and_reload(tmp_path: Path) -> None:
    store = FileDocumentStore(tmp_path / "docs")
    document = RichDocument(rich="<p>body</p>", document_id="notes")

    store.save(document)
    reloaded = store.load("notes")

    assert (tmp_path / "docs" / "notes.html").read_text(encoding="utf-8") == "<p>body</p>"
    assert document.metadata.path == tmp_path / "docs" / "notes.html"
    assert reloaded.rich == "<p>body</p>"
    assert not list((tmp_path / "docs").glob("*.tmp"))


def test_file_store_missing_document(tmp_path: Path) -> None:
    with pytest.raises(DocumentNotFoundError):
        FileDocumentStore(tmp_path).load("absent")
