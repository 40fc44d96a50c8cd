"""Editing surfaces and document persistence."""

from .document_model import (
    DocumentMetadata,
    DocumentNotFoundError,
    DocumentStore,
    FileDocumentStore,
    InMemoryDocumentStore,
    RichDocument,
)
from .surface import EditingSurface, HtmlEditingSurface, Mark, MarkAttributes

__all__ = [
    "DocumentMetadata",
    "DocumentNotFoundError",
    "DocumentStore",
    "EditingSurface",
    "FileDocumentStore",
    "HtmlEditingSurface",
    "InMemoryDocumentStore",
    "Mark",
    "MarkAttributes",
    "RichDocument",
]
