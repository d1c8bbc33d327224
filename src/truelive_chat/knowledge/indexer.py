"""Document ingestion: embed, validate, store."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime

from truelive_chat.config import MODELS, RETRIEVAL
from truelive_chat.errors import DocumentValidationError, EmbeddingError
from truelive_chat.knowledge.documents import KnowledgeDocument, validate_document
from truelive_chat.knowledge.repository import DocumentRepository
from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaError

logger = logging.getLogger(__name__)


def generate_document_id() -> str:
    """Generate an id for documents submitted without one."""
    return f"doc-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class DocumentIndexer:
    """
    Turns raw title/content/source triples into stored KnowledgeDocuments.

    Ingestion fails loudly: a document that cannot be embedded or that breaks
    the ingestion contract raises instead of being stored half-formed.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        client: AsyncOllamaClient | None = None,
        embedding_model: str | None = None,
        content_cap: int | None = None,
    ) -> None:
        self.repository = repository
        self.client = client or AsyncOllamaClient()
        self.embedding_model = embedding_model or MODELS.EMBEDDING_MODEL
        self.content_cap = content_cap or RETRIEVAL.INDEX_CONTENT_CAP

    async def index(
        self,
        title: str,
        content: str,
        source: str,
        document_id: str | None = None,
        url: str | None = None,
        date: str | None = None,
        doc_type: str = "generic",
    ) -> KnowledgeDocument:
        """
        Embed and store a document.

        Returns:
            The stored document.

        Raises:
            DocumentValidationError: Missing fields or malformed embedding.
            EmbeddingError: The embedding service failed.
            PersistenceError: The repository could not be written.
        """
        if not title.strip() or not content.strip() or not source.strip():
            raise DocumentValidationError("Document needs a title, content and source")

        try:
            embedding = await self.client.embed(
                content[: self.content_cap],
                model=self.embedding_model,
            )
        except OllamaError as e:
            raise EmbeddingError(f"Failed to embed document: {e}") from e

        document = KnowledgeDocument(
            id=document_id or generate_document_id(),
            title=title.strip(),
            content=content.strip(),
            source=source.strip(),
            embedding=tuple(embedding),
            url=url,
            date=date or datetime.now(UTC).isoformat(),
            doc_type=doc_type,
        )

        validate_document(document, self.repository.dimension)
        await self.repository.add(document)

        logger.info(f"Document indexed: {document.id}")
        return document
