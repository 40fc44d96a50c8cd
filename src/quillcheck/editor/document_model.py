"""Rich documents and the stores that load and save them."""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


class DocumentNotFoundError(KeyError):
    """Raised by a :class:`DocumentStore` when ``document_id`` is unknown."""


@dataclass(slots=True)
class DocumentMetadata:
    """Metadata describing a loaded document."""

    title: str = "Untitled"
    path: Optional[Path] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class RichDocument:
    """A formatted document body plus version bookkeeping."""

    rich: str = ""
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    dirty: bool = False
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    version_id: int = 1
    content_hash: str = field(default_factory=str)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = _hash_text(self.rich)

    def update_rich(self, new_rich: str) -> bool:
        """Replace the body; returns ``False`` when nothing changed."""

        if new_rich == self.rich:
            return False
        self.rich = new_rich
        self.dirty = True
        self.metadata.updated_at = _utcnow()
        self.version_id += 1
        self.content_hash = _hash_text(new_rich)
        return True

    def version_signature(self) -> str:
        return f"{self.document_id}:{self.version_id}:{self.content_hash}"

    def snapshot(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "document_id": self.document_id,
            "title": self.metadata.title,
            "rich": self.rich,
            "version_id": self.version_id,
            "content_hash": self.content_hash,
            "dirty": self.dirty,
        }
        if self.metadata.path:
            payload["path"] = str(self.metadata.path)
        return payload


class DocumentStore(Protocol):
    """Supplies rich content and accepts the mutated content on save."""

    def load(self, document_id: str) -> RichDocument:  # pragma: no cover - protocol stub
        ...

    def save(self, document: RichDocument) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryDocumentStore:
    """Dictionary-backed store used by tests and the demo window."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}
        self._titles: dict[str, str] = {}

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def create(self, rich: str = "", *, title: str = "Untitled") -> RichDocument:
        document = RichDocument(rich=rich, metadata=DocumentMetadata(title=title))
        self.save(document)
        return document

    def load(self, document_id: str) -> RichDocument:
        try:
            rich = self._documents[document_id]
        except KeyError as exc:
            raise DocumentNotFoundError(document_id) from exc
        title = self._titles.get(document_id, "Untitled")
        return RichDocument(rich=rich, metadata=DocumentMetadata(title=title), document_id=document_id)

    def save(self, document: RichDocument) -> None:
        self._documents[document.document_id] = document.rich
        self._titles[document.document_id] = document.metadata.title
        document.dirty = False


class FileDocumentStore:
    """Stores each document as an ``.html`` file inside ``root``."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, document_id: str) -> Path:
        return self._root / f"{document_id}.html"

    def load(self, document_id: str) -> RichDocument:
        return self.load_path(self.path_for(document_id), document_id=document_id)

    @staticmethod
    def load_path(path: Path, *, document_id: str | None = None) -> RichDocument:
        try:
            rich = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(str(path)) from exc
        metadata = DocumentMetadata(title=path.stem, path=path)
        return RichDocument(rich=rich, metadata=metadata, document_id=document_id or path.stem)

    def save(self, document: RichDocument) -> None:
        path = document.metadata.path or self.path_for(document.document_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(document.rich, encoding="utf-8")
        tmp_path.replace(path)
        document.metadata.path = path
        document.dirty = False
        LOGGER.debug("Saved document %s to %s", document.document_id, path)


__all__ = [
    "DocumentMetadata",
    "DocumentNotFoundError",
    "DocumentStore",
    "FileDocumentStore",
    "InMemoryDocumentStore",
    "RichDocument",
]
