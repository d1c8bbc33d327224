"""
Pytest configuration and shared fixtures.

Provides fixtures for unit, integration, and E2E testing of the
truelive_chat application. No fixture talks to a real Ollama server.
"""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.utils.factories import DIMENSION, DocumentFactory

# ============================================================================
# Mock Ollama Client Fixtures
# ============================================================================


@pytest.fixture
def mock_ollama_client() -> MagicMock:
    """Create a mock Ollama client for testing without real LLM calls."""
    from truelive_chat.models.ollama_client import AsyncOllamaClient

    mock_client = MagicMock(spec=AsyncOllamaClient)
    mock_client.chat_text = AsyncMock(return_value="Mock response content")
    mock_client.embed = AsyncMock(return_value=[1.0, 0.0, 0.0])
    mock_client.health_check = AsyncMock(return_value=True)
    mock_client.close = AsyncMock()

    return mock_client


@pytest.fixture
def mock_ollama_client_error() -> MagicMock:
    """Mock client that raises errors for testing error handling."""
    from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaConnectionError

    mock_client = MagicMock(spec=AsyncOllamaClient)
    mock_client.chat_text = AsyncMock(side_effect=OllamaConnectionError("Connection failed"))
    mock_client.embed = AsyncMock(side_effect=OllamaConnectionError("Connection failed"))
    mock_client.health_check = AsyncMock(return_value=False)
    mock_client.close = AsyncMock()

    return mock_client


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def temp_storage_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for storage testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def conversation_store():
    """Create a conversation store with a short history for testing."""
    from truelive_chat.conversation.store import ConversationStore

    return ConversationStore(max_turns=5)


@pytest.fixture
def sample_documents():
    """Three documents pointing along different axes of a 3-d space."""
    return DocumentFactory.sample_collection()


@pytest.fixture
def document_repository(sample_documents):
    """In-memory repository holding the sample documents."""
    from truelive_chat.knowledge.repository import DocumentRepository

    return DocumentRepository(documents=sample_documents, dimension=DIMENSION)


@pytest.fixture
def file_repository(temp_storage_dir: Path, sample_documents):
    """Repository backed by a JSON file in a temporary directory."""
    import json

    from truelive_chat.knowledge.repository import DocumentRepository

    path = temp_storage_dir / "documents.json"
    path.write_text(json.dumps([d.to_dict() for d in sample_documents]))
    return DocumentRepository(path=path, ttl_seconds=300, dimension=DIMENSION)


# ============================================================================
# Pipeline Component Fixtures
# ============================================================================


@pytest.fixture
def domain_gate(mock_ollama_client):
    """Create a domain gate with mock client."""
    from truelive_chat.pipeline.domain_gate import DomainGate

    return DomainGate(client=mock_ollama_client, timeout=5.0)


@pytest.fixture
def context_resolver(mock_ollama_client):
    """Create a context resolver with mock client."""
    from truelive_chat.pipeline.context_resolver import ContextResolver

    return ContextResolver(client=mock_ollama_client, window=3, timeout=5.0)


@pytest.fixture
def retriever(mock_ollama_client, document_repository):
    """Create a semantic retriever over the sample documents."""
    from truelive_chat.pipeline.retriever import SemanticRetriever

    return SemanticRetriever(
        repository=document_repository,
        client=mock_ollama_client,
        dimension=DIMENSION,
        top_k=2,
        threshold=0.3,
        timeout=5.0,
    )


@pytest.fixture
def synthesizer(mock_ollama_client):
    """Create an answer synthesizer with mock client."""
    from truelive_chat.pipeline.synthesizer import AnswerSynthesizer

    return AnswerSynthesizer(
        client=mock_ollama_client,
        excerpt_cap=1500,
        relevance_floor=0.0,
        timeout=5.0,
    )


@pytest.fixture
def fallback_generator(mock_ollama_client):
    """Create a fallback generator with mock client."""
    from truelive_chat.pipeline.fallback import FallbackGenerator

    return FallbackGenerator(client=mock_ollama_client, timeout=5.0)


# ============================================================================
# Orchestrator Fixtures
# ============================================================================


@pytest.fixture
def mock_orchestrator(mock_ollama_client, document_repository, conversation_store):
    """Create a turn orchestrator with all collaborators mocked or in memory."""
    from truelive_chat.pipeline.orchestrator import TurnOrchestrator
    from truelive_chat.pipeline.retriever import SemanticRetriever

    return TurnOrchestrator(
        repository=document_repository,
        store=conversation_store,
        ollama_client=mock_ollama_client,
        retriever=SemanticRetriever(
            repository=document_repository,
            client=mock_ollama_client,
            dimension=DIMENSION,
            threshold=0.3,
        ),
    )
