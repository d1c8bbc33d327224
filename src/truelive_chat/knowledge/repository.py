"""
Document repository with an explicit in-process cache.

The collection is read from a JSON file (a list of document records, or an
object with a "documents" list) and cached for the lifetime of the TTL.
`refresh()` drops the cache immediately; there is no module-level state.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Iterable
from pathlib import Path

from truelive_chat.config import MODELS, PATHS, RETRIEVAL
from truelive_chat.errors import PersistenceError
from truelive_chat.knowledge.documents import KnowledgeDocument, validate_document

logger = logging.getLogger(__name__)


class DocumentRepository:
    """
    Read-mostly store of knowledge documents.

    Features:
    - JSON file persistence
    - TTL-based cache with explicit refresh
    - Ingestion-time validation on add()
    - Collection order preserved (it is the ranking tie-break)
    """

    def __init__(
        self,
        path: Path | None = None,
        documents: Iterable[KnowledgeDocument] | None = None,
        ttl_seconds: int | None = None,
        dimension: int | None = None,
    ) -> None:
        """
        Initialize repository.

        Args:
            path: JSON file backing the collection. Defaults to config when no
                documents are given.
            documents: Initial in-memory collection (no file involved).
            ttl_seconds: Cache lifetime; 0 re-reads the file on every call.
            dimension: Embedding dimensionality enforced on add().
        """
        self.dimension = dimension or MODELS.EMBEDDING_DIMENSION
        self.ttl_seconds = RETRIEVAL.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds

        if documents is not None:
            self.path = path
            self._documents: list[KnowledgeDocument] | None = list(documents)
            self._loaded_at: float | None = float("inf") if path is None else time.time()
        else:
            self.path = path or PATHS.DOCUMENTS_FILE
            self._documents = None
            self._loaded_at = None

        self._lock = asyncio.Lock()

    def _is_stale(self) -> bool:
        if self._documents is None or self._loaded_at is None:
            return True
        return time.time() - self._loaded_at >= self.ttl_seconds

    def _load_from_disk(self) -> list[KnowledgeDocument]:
        """Read the collection file. Missing or unreadable files yield []."""
        if self.path is None or not self.path.exists():
            logger.warning(f"Document file not found: {self.path}")
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load documents from {self.path}: {e}")
            return []

        records = data.get("documents", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            logger.error(f"Unexpected document file layout in {self.path}")
            return []

        documents = [
            KnowledgeDocument.from_dict(record)
            for record in records
            if isinstance(record, dict)
        ]
        logger.info(f"Loaded {len(documents)} documents from {self.path}")
        return documents

    async def list_documents(self) -> list[KnowledgeDocument]:
        """Return the collection in stored order, reloading if the cache is stale."""
        async with self._lock:
            if self._is_stale():
                self._documents = self._load_from_disk()
                self._loaded_at = time.time()
            return list(self._documents or [])

    async def get(self, document_id: str) -> KnowledgeDocument | None:
        """Look up a document by id."""
        for document in await self.list_documents():
            if document.id == document_id:
                return document
        return None

    async def refresh(self) -> int:
        """
        Drop the cache and reload from disk.

        Returns:
            Number of documents now cached.
        """
        async with self._lock:
            if self.path is not None:
                self._documents = self._load_from_disk()
                self._loaded_at = time.time()
            return len(self._documents or [])

    async def add(self, document: KnowledgeDocument) -> None:
        """
        Validate and store a document, replacing any with the same id.

        Raises:
            DocumentValidationError: If the document breaks the ingestion contract.
            PersistenceError: If the collection file cannot be written.
        """
        validate_document(document, self.dimension)

        # Load outside the write lock so the stale check can run
        current = await self.list_documents()

        async with self._lock:
            replaced = False
            for index, existing in enumerate(current):
                if existing.id == document.id:
                    current[index] = document
                    replaced = True
                    break
            if not replaced:
                current.append(document)

            if self.path is not None:
                self._save(current)

            self._documents = current
            if self._loaded_at is None:
                self._loaded_at = time.time()

        logger.info(f"Document {'updated' if replaced else 'stored'}: {document.id}")

    def _save(self, documents: list[KnowledgeDocument]) -> None:
        """Write the collection file. Called with lock held."""
        assert self.path is not None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump([d.to_dict() for d in documents], f, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to write documents to {self.path}: {e}") from e

    def get_stats(self) -> dict[str, object]:
        """Get repository statistics."""
        return {
            "cached_documents": len(self._documents or []),
            "ttl_seconds": self.ttl_seconds,
            "path": str(self.path) if self.path else None,
        }
