"""Knowledge base: documents, similarity and storage."""

from truelive_chat.knowledge.documents import KnowledgeDocument, validate_document
from truelive_chat.knowledge.indexer import DocumentIndexer
from truelive_chat.knowledge.repository import DocumentRepository
from truelive_chat.knowledge.similarity import cosine_similarity, is_well_formed_embedding

__all__ = [
    "KnowledgeDocument",
    "validate_document",
    "DocumentIndexer",
    "DocumentRepository",
    "cosine_similarity",
    "is_well_formed_embedding",
]
