"""
Semantic Retriever

Embeds the question and ranks the document collection by cosine similarity.
Returns nothing at all unless the best match clears the similarity
threshold, so callers see one kind of miss whether the store is empty, the
embedding service is down, or no document is close enough.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from truelive_chat.config import MODELS, RETRIEVAL
from truelive_chat.errors import EmbeddingError, RetrievalError, policy_for
from truelive_chat.knowledge.documents import KnowledgeDocument
from truelive_chat.knowledge.repository import DocumentRepository
from truelive_chat.knowledge.similarity import cosine_similarity, is_well_formed_embedding
from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaError
from truelive_chat.utils.logging import audit_logger, request_id_var
from truelive_chat.utils.metrics import TOP_SIMILARITY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalResult:
    """A document and its similarity to the query."""

    document: KnowledgeDocument
    similarity: float


class SemanticRetriever:
    """
    Top-K cosine retriever over a DocumentRepository.

    Ranking is deterministic: stable descending sort, so equal scores keep
    the collection order.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        client: AsyncOllamaClient | None = None,
        embedding_model: str | None = None,
        dimension: int | None = None,
        top_k: int | None = None,
        threshold: float | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Initialize semantic retriever.

        Args:
            repository: Document collection.
            client: Ollama client used for query embeddings.
            embedding_model: Embedding model name.
            dimension: Expected embedding length.
            top_k: Default number of results.
            threshold: Minimum best similarity (inclusive).
            timeout: Seconds to wait for the query embedding.
        """
        self.repository = repository
        self.client = client or AsyncOllamaClient()
        self.embedding_model = embedding_model or MODELS.EMBEDDING_MODEL
        self.dimension = dimension or MODELS.EMBEDDING_DIMENSION
        self.top_k = RETRIEVAL.TOP_K if top_k is None else max(0, top_k)
        self.threshold = RETRIEVAL.SIMILARITY_THRESHOLD if threshold is None else threshold
        self.timeout = timeout or MODELS.EMBEDDING_TIMEOUT

    async def embed_query(self, query: str) -> list[float]:
        """
        Embed a query.

        Raises:
            EmbeddingError: Service failure, timeout, or wrong vector shape.
        """
        try:
            embedding = await asyncio.wait_for(
                self.client.embed(query, model=self.embedding_model, timeout=self.timeout),
                timeout=self.timeout,
            )
        except (OllamaError, asyncio.TimeoutError) as e:
            raise EmbeddingError(str(e) or "embedding timed out") from e

        if not is_well_formed_embedding(embedding, self.dimension):
            raise EmbeddingError(
                f"Query embedding has {len(embedding)} dimensions, expected {self.dimension}"
            )
        return embedding

    def rank(
        self,
        query_embedding: list[float],
        documents: list[KnowledgeDocument],
    ) -> tuple[list[RetrievalResult], int]:
        """
        Score and sort documents.

        Documents with a missing or malformed embedding are skipped.

        Returns:
            Results sorted by descending similarity, and the number skipped.
        """
        scored: list[RetrievalResult] = []
        skipped = 0
        for document in documents:
            if not is_well_formed_embedding(document.embedding, self.dimension):
                logger.warning(f"Skipping document with malformed embedding: {document.id!r}")
                skipped += 1
                continue
            similarity = cosine_similarity(query_embedding, document.embedding)
            scored.append(RetrievalResult(document=document, similarity=similarity))

        # sorted() is stable: ties keep collection order
        scored = sorted(scored, key=lambda r: r.similarity, reverse=True)
        return scored, skipped

    async def retrieve(self, query: str, k: int | None = None) -> list[RetrievalResult]:
        """
        Retrieve the documents most similar to a query.

        Args:
            query: The (resolved) question.
            k: Maximum number of results; defaults to top_k.

        Returns:
            Up to k results, best first, or [] when there is no confident match.
            Never raises.
        """
        limit = self.top_k if k is None else max(0, k)

        try:
            documents = await self.repository.list_documents()
            if not documents:
                logger.warning("Document store is empty")
                return []

            query_embedding = await self.embed_query(query)

            try:
                ranked, skipped = self.rank(query_embedding, documents)
            except ValueError as e:
                raise RetrievalError(str(e)) from e

        except (EmbeddingError, RetrievalError) as e:
            logger.error(f"Retrieval failed ({policy_for('retriever').policy.value}): {e}")
            return []

        except Exception as e:
            logger.error(f"Unexpected error in retrieval: {e}")
            return []

        top_similarity = ranked[0].similarity if ranked else None
        if top_similarity is not None:
            TOP_SIMILARITY.observe(top_similarity)

        if top_similarity is None or top_similarity < self.threshold:
            results: list[RetrievalResult] = []
            logger.info(
                f"Best similarity {top_similarity} below threshold {self.threshold}"
            )
        else:
            results = ranked[:limit]

        audit_logger.log_retrieval(
            request_id=request_id_var.get(),
            documents_scored=len(ranked),
            documents_skipped=skipped,
            top_similarity=top_similarity,
            returned=len(results),
            threshold=self.threshold,
        )
        return results
