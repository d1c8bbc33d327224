"""
Knowledge documents and the ingestion contract.

A document is accepted into the collection only with a non-empty title,
content and source, and an embedding whose length matches the configured
dimensionality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from truelive_chat.errors import DocumentValidationError
from truelive_chat.knowledge.similarity import is_well_formed_embedding


@dataclass(frozen=True)
class KnowledgeDocument:
    """A retrievable document with its embedding."""

    id: str
    title: str
    content: str
    source: str  # Attribution label shown to users
    embedding: tuple[float, ...] = field(repr=False)
    url: str | None = None
    date: str | None = None
    doc_type: str = "generic"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "source": self.source,
            "embedding": list(self.embedding),
            "url": self.url,
            "date": self.date,
            "type": self.doc_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeDocument:
        """
        Build a document from a stored record without validating it.

        Stored records may carry a missing or malformed embedding; the
        retriever skips those instead of failing the whole collection.
        """
        embedding = data.get("embedding") or ()
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            content=str(data.get("content", "")),
            source=str(data.get("source", "")),
            embedding=tuple(embedding) if isinstance(embedding, (list, tuple)) else (),
            url=data.get("url"),
            date=data.get("date"),
            doc_type=data.get("type", "generic"),
        )


def validate_document(document: KnowledgeDocument, dimension: int) -> None:
    """
    Enforce the ingestion contract.

    Args:
        document: Candidate document.
        dimension: Configured embedding dimensionality.

    Raises:
        DocumentValidationError: If any required field is empty or the
            embedding is malformed.
    """
    if not document.id.strip():
        raise DocumentValidationError("Document needs a non-empty id")

    missing = [
        name
        for name in ("title", "content", "source")
        if not getattr(document, name).strip()
    ]
    if missing:
        raise DocumentValidationError(
            f"Document {document.id} is missing required fields: {', '.join(missing)}"
        )

    if not is_well_formed_embedding(list(document.embedding), dimension):
        raise DocumentValidationError(
            f"Document {document.id} embedding must be {dimension} finite numbers, "
            f"got {len(document.embedding)} values"
        )
