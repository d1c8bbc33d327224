"""
FastAPI Server

HTTP surface for the True Live chat pipeline.
Provides /chat, /documents, /health, and /metrics endpoints.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from pydantic import BaseModel, Field

from truelive_chat.config import SERVER
from truelive_chat.conversation.commands import apply_config_command, is_config_command
from truelive_chat.errors import DocumentValidationError, EmbeddingError, PersistenceError
from truelive_chat.knowledge.indexer import DocumentIndexer
from truelive_chat.pipeline.orchestrator import TurnOrchestrator
from truelive_chat.utils.logging import (
    generate_request_id,
    hash_identity,
    request_id_var,
    setup_logging,
)

logger = logging.getLogger(__name__)


# Request/Response models
class ChatRequest(BaseModel):
    """Chat request body."""

    message: str = Field(..., min_length=1, max_length=5000)
    sender: str = Field(..., min_length=1, max_length=100)


class ChatResponseModel(BaseModel):
    """Chat API response."""

    response_text: str
    used_fallback: bool
    status: str
    sources_used: list[str] = Field(default_factory=list)
    documents_used: list[str] = Field(default_factory=list)
    request_id: str
    response_time_ms: float


class DocumentRequest(BaseModel):
    """Document ingestion body."""

    title: str = Field(..., max_length=500)
    content: str
    source: str = Field(..., max_length=500)
    id: str | None = Field(None, max_length=100)
    url: str | None = None
    date: str | None = None
    type: str = "generic"


class DocumentResponseModel(BaseModel):
    """Stored document summary."""

    id: str
    title: str
    source: str
    dimension: int


# Global orchestrator instance
orchestrator: TurnOrchestrator | None = None


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global orchestrator

    # Startup
    setup_logging(level=SERVER.LOG_LEVEL)
    logger.info("Starting True Live chat server...")

    orchestrator = TurnOrchestrator()

    health = await orchestrator.health_check()
    if health.get("ollama"):
        logger.info("Ollama connection verified")
    else:
        logger.warning(f"Ollama not available: {health.get('ollama_error', 'unknown')}")
    logger.info(f"{health.get('documents', 0)} documents loaded")

    logger.info(f"Server ready on {SERVER.HOST}:{SERVER.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down True Live chat server...")
    if orchestrator:
        await orchestrator.close()


app = FastAPI(
    title="True Live Chat API",
    description="Retrieval-grounded question answering on Israel, Judaism and Middle East geopolitics",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_middleware(request: Request, call_next: Any) -> Any:
    """Add request ID and timing to all requests."""
    request_id = generate_request_id()
    request_id_var.set(request_id)

    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration:.3f}s"

    return response


def _require_orchestrator() -> TurnOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return orchestrator


@app.post("/chat", response_model=ChatResponseModel)
async def chat(body: ChatRequest) -> ChatResponseModel:
    """
    Main chat endpoint.

    /config messages change the sender's settings; everything else is
    answered by the pipeline.
    """
    pipeline = _require_orchestrator()
    start_time = time.time()

    if is_config_command(body.message):
        try:
            reply = await apply_config_command(pipeline.store, body.sender, body.message)
        except PersistenceError as e:
            logger.error(f"Settings update failed for {hash_identity(body.sender)}: {e}")
            raise HTTPException(status_code=500, detail="Settings could not be saved") from e

        return ChatResponseModel(
            response_text=reply,
            used_fallback=False,
            status="command",
            request_id=request_id_var.get(),
            response_time_ms=(time.time() - start_time) * 1000,
        )

    outcome = await pipeline.handle_message(body.sender, body.message)
    data = outcome.to_dict()

    return ChatResponseModel(
        response_text=data["response_text"],
        used_fallback=data["used_fallback"],
        status=data["status"],
        sources_used=data["sources_used"],
        documents_used=data["documents_used"],
        request_id=data["request_id"],
        response_time_ms=(time.time() - start_time) * 1000,
    )


@app.post("/documents", response_model=DocumentResponseModel, status_code=201)
async def add_document(body: DocumentRequest) -> DocumentResponseModel:
    """Embed and store a document."""
    pipeline = _require_orchestrator()
    indexer = DocumentIndexer(repository=pipeline.repository, client=pipeline.ollama_client)

    try:
        document = await indexer.index(
            title=body.title,
            content=body.content,
            source=body.source,
            document_id=body.id,
            url=body.url,
            date=body.date,
            doc_type=body.type,
        )
    except DocumentValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except EmbeddingError as e:
        raise HTTPException(status_code=503, detail=f"Embedding service unavailable: {e}") from e
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail="Document could not be saved") from e

    return DocumentResponseModel(
        id=document.id,
        title=document.title,
        source=document.source,
        dimension=len(document.embedding),
    )


@app.post("/documents/refresh")
async def refresh_documents() -> dict[str, int]:
    """Reload the document collection from disk."""
    pipeline = _require_orchestrator()
    count = await pipeline.repository.refresh()
    return {"documents": count}


@app.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Returns status of the pipeline collaborators.
    """
    if orchestrator is None:
        return {
            "status": "unhealthy",
            "reason": "Service not initialized",
        }

    health = await orchestrator.health_check()

    return {
        "status": "healthy" if health.get("healthy") else "unhealthy",
        "components": health,
    }


@app.get("/metrics")
async def metrics() -> PlainTextResponse:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    if not SERVER.METRICS_ENABLED:
        raise HTTPException(status_code=404, detail="Metrics disabled")
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {
        "name": "True Live Chat API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


def main() -> None:
    """Run the server using uvicorn."""
    import uvicorn

    uvicorn.run(
        "truelive_chat.server:app",
        host=SERVER.HOST,
        port=SERVER.PORT,
        reload=SERVER.DEBUG,
        log_level=SERVER.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
