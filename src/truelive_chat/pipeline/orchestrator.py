"""
Turn Orchestrator

Runs one conversational turn through the pipeline:

    RECEIVED -> GATING -> IN_DOMAIN_PATH | FALLBACK_PATH -> SYNTHESIZED -> PERSISTED

The in-domain path resolves references, retrieves documents and synthesizes a
grounded answer; an empty retrieval or an empty grounding block drops to the
fallback path. Every component recovers from its own failures, so a turn
always ends with a well-formed PipelineOutcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from truelive_chat.config import CONVERSATION, MESSAGES, PIPELINE
from truelive_chat.conversation.store import (
    ConversationStore,
    ConversationTurn,
    UserSettings,
    format_transcript,
    last_turns,
)
from truelive_chat.errors import PersistenceError, policy_for
from truelive_chat.knowledge.repository import DocumentRepository
from truelive_chat.language import resolve_output_language
from truelive_chat.models.ollama_client import AsyncOllamaClient
from truelive_chat.pipeline.context_resolver import ContextResolver
from truelive_chat.pipeline.domain_gate import DomainGate
from truelive_chat.pipeline.fallback import FallbackGenerator
from truelive_chat.pipeline.retriever import SemanticRetriever
from truelive_chat.pipeline.synthesizer import AnswerSynthesizer, SynthesisStatus
from truelive_chat.utils.logging import (
    audit_logger,
    generate_request_id,
    hash_identity,
    request_id_var,
)
from truelive_chat.utils.metrics import FALLBACKS, STATE_DURATION, TURNS

logger = logging.getLogger(__name__)


class TurnState(Enum):
    """States a turn passes through."""

    RECEIVED = "received"
    GATING = "gating"
    IN_DOMAIN_PATH = "in_domain_path"
    FALLBACK_PATH = "fallback_path"
    SYNTHESIZED = "synthesized"
    PERSISTED = "persisted"


class TurnStatus(Enum):
    """How a turn was answered."""

    ANSWERED = "answered"  # Grounded answer
    FALLBACK = "fallback"  # Fallback generator
    FAILED = "failed"  # Apology after a terminal failure


@dataclass
class InboundTurn:
    """A question together with everything the pipeline needs to answer it."""

    question: str
    sender_identity: str
    recent_history: list[ConversationTurn] = field(default_factory=list)
    settings: UserSettings = field(default_factory=UserSettings)


@dataclass
class PipelineOutcome:
    """Result of one turn."""

    response_text: str
    used_fallback: bool
    status: TurnStatus
    sources_used: tuple[str, ...] = ()
    documents_used: tuple[str, ...] = ()
    request_id: str = ""
    states: list[TurnState] = field(default_factory=list)
    state_timings: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.used_fallback and self.documents_used:
            raise ValueError("A fallback answer cannot cite documents")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON transport."""
        return {
            "response_text": self.response_text,
            "used_fallback": self.used_fallback,
            "status": self.status.value,
            "sources_used": list(self.sources_used),
            "documents_used": list(self.documents_used),
            "request_id": self.request_id,
            "states": [state.value for state in self.states],
            "state_timings": {k: round(v, 4) for k, v in self.state_timings.items()},
        }


class TurnOrchestrator:
    """
    Coordinates the pipeline components for each turn.

    Components default to instances built from configuration and sharing one
    Ollama client; any of them can be injected.
    """

    def __init__(
        self,
        repository: DocumentRepository | None = None,
        store: ConversationStore | None = None,
        ollama_client: AsyncOllamaClient | None = None,
        gate: DomainGate | None = None,
        resolver: ContextResolver | None = None,
        retriever: SemanticRetriever | None = None,
        synthesizer: AnswerSynthesizer | None = None,
        fallback: FallbackGenerator | None = None,
        resolve_references: bool | None = None,
        window: int | None = None,
    ) -> None:
        """
        Initialize orchestrator with all pipeline components.

        Args:
            repository: Document collection.
            store: Conversation history and settings.
            ollama_client: Shared Ollama client.
            gate: Domain gate.
            resolver: Context resolver.
            retriever: Semantic retriever.
            synthesizer: Answer synthesizer.
            fallback: Fallback generator.
            resolve_references: Whether follow-up questions are rewritten.
            window: Number of recent turns used as context.
        """
        self.ollama_client = ollama_client or AsyncOllamaClient()
        self.repository = repository or DocumentRepository()
        self.store = store or ConversationStore()

        self.gate = gate or DomainGate(client=self.ollama_client)
        self.resolver = resolver or ContextResolver(client=self.ollama_client)
        self.retriever = retriever or SemanticRetriever(
            repository=self.repository, client=self.ollama_client
        )
        self.synthesizer = synthesizer or AnswerSynthesizer(client=self.ollama_client)
        self.fallback = fallback or FallbackGenerator(client=self.ollama_client)

        self.resolve_references = (
            PIPELINE.RESOLVE_REFERENCES if resolve_references is None else resolve_references
        )
        self.window = CONVERSATION.CONTEXT_WINDOW if window is None else window

    async def process_turn(self, inbound: InboundTurn) -> PipelineOutcome:
        """
        Answer one question. Reads and writes nothing outside the pipeline.

        Args:
            inbound: Question, recent history and settings.

        Returns:
            PipelineOutcome; never raises.
        """
        start_time = time.time()
        request_id = request_id_var.get()
        if not request_id:
            request_id = generate_request_id()
            request_id_var.set(request_id)

        question = inbound.question
        settings = inbound.settings
        history = last_turns(inbound.recent_history, self.window)
        states = [TurnState.RECEIVED]
        timings: dict[str, float] = {}
        outcome: PipelineOutcome | None = None
        fallback_reason: str | None = None

        try:
            context_text = format_transcript(history) or None

            # ===== GATING =====
            states.append(TurnState.GATING)
            t0 = time.time()
            in_domain = await self.gate.is_in_domain(question, context_text)
            timings["gating"] = time.time() - t0

            if not in_domain:
                fallback_reason = "out_of_domain"
            else:
                # ===== IN-DOMAIN PATH =====
                states.append(TurnState.IN_DOMAIN_PATH)
                query = question

                if self.resolve_references:
                    t0 = time.time()
                    query = await self.resolver.resolve_reference(question, history)
                    timings["resolution"] = time.time() - t0

                t0 = time.time()
                results = await self.retriever.retrieve(query)
                timings["retrieval"] = time.time() - t0

                if not results:
                    fallback_reason = "no_documents"
                else:
                    t0 = time.time()
                    synthesis = await self.synthesizer.synthesize(query, results, history, settings)
                    timings["synthesis"] = time.time() - t0

                    if synthesis.status == SynthesisStatus.SUCCESS:
                        outcome = PipelineOutcome(
                            response_text=synthesis.text,
                            used_fallback=False,
                            status=TurnStatus.ANSWERED,
                            sources_used=synthesis.sources_used,
                            documents_used=synthesis.documents_used,
                        )
                    elif synthesis.status == SynthesisStatus.ERROR:
                        # Terminal for the turn: no retry, no fallback
                        logger.warning(
                            f"Turn ends with apology ({policy_for('synthesizer').policy.value})"
                        )
                        outcome = PipelineOutcome(
                            response_text=synthesis.text,
                            used_fallback=False,
                            status=TurnStatus.FAILED,
                        )
                    else:
                        fallback_reason = "no_grounding"

            # ===== FALLBACK PATH =====
            if outcome is None:
                states.append(TurnState.FALLBACK_PATH)
                audit_logger.log_fallback_used(request_id=request_id, reason=fallback_reason or "unknown")
                FALLBACKS.labels(reason=fallback_reason or "unknown").inc()

                t0 = time.time()
                text = await self.fallback.fallback(
                    question,
                    context_text,
                    language=resolve_output_language(settings.language, question),
                )
                timings["fallback"] = time.time() - t0

                outcome = PipelineOutcome(
                    response_text=text,
                    used_fallback=True,
                    status=TurnStatus.FALLBACK,
                )

        except Exception as e:
            logger.error(f"Unexpected error in pipeline: {e}", exc_info=True)
            outcome = PipelineOutcome(
                response_text=MESSAGES.SYNTHESIS_APOLOGY,
                used_fallback=False,
                status=TurnStatus.FAILED,
            )

        states.append(TurnState.SYNTHESIZED)
        outcome.request_id = request_id
        outcome.states = states
        outcome.state_timings = timings

        total_time_ms = (time.time() - start_time) * 1000
        audit_logger.log_state_timings(
            request_id=request_id,
            state_timings=timings,
            total_time_ms=total_time_ms,
        )
        for state, duration in timings.items():
            STATE_DURATION.labels(state=state).observe(duration)
        TURNS.labels(status=outcome.status.value).inc()

        return outcome

    async def _load_context(self, identity: str) -> tuple[list[ConversationTurn], UserSettings]:
        try:
            history, settings = await asyncio.gather(
                self.store.get_recent_turns(identity, self.window),
                self.store.get_settings(identity),
            )
        except Exception as e:
            logger.error(f"Could not load conversation context: {e}")
            return [], UserSettings()
        return history, settings

    async def _persist(self, identity: str, question: str, outcome: PipelineOutcome) -> None:
        turn = ConversationTurn(
            question=question,
            answer=outcome.response_text,
            document_ids=outcome.documents_used,
        )
        try:
            await self.store.append_turn(identity, turn)
        except PersistenceError as e:
            logger.warning(f"Turn not persisted ({policy_for('persistence').policy.value}): {e}")
            audit_logger.log_persistence_failed(
                request_id=outcome.request_id,
                identity_hash=hash_identity(identity),
                error=str(e),
            )
            return
        except Exception as e:
            logger.error(f"Unexpected error persisting turn: {e}")
            audit_logger.log_persistence_failed(
                request_id=outcome.request_id,
                identity_hash=hash_identity(identity),
                error=str(e),
            )
            return
        outcome.states.append(TurnState.PERSISTED)

    async def handle_message(self, identity: str, question: str) -> PipelineOutcome:
        """
        Answer a question from a sender and record the turn.

        Turns of the same sender run one at a time; different senders run
        concurrently.

        Args:
            identity: Sender identity.
            question: The question text.

        Returns:
            PipelineOutcome; never raises.
        """
        start_time = time.time()
        request_id = generate_request_id()
        request_id_var.set(request_id)

        logger.info(f"Processing request {request_id}: sender={hash_identity(identity)}")

        async with self.store.lock_for(identity):
            history, settings = await self._load_context(identity)
            outcome = await self.process_turn(
                InboundTurn(
                    question=question,
                    sender_identity=identity,
                    recent_history=history,
                    settings=settings,
                )
            )
            # Apologies are not kept as conversation context
            if outcome.status != TurnStatus.FAILED:
                await self._persist(identity, question, outcome)

        audit_logger.log_turn_complete(
            request_id=request_id,
            identity_hash=hash_identity(identity),
            status=outcome.status.value,
            used_fallback=outcome.used_fallback,
            documents_used=list(outcome.documents_used),
            response_time_ms=(time.time() - start_time) * 1000,
        )
        return outcome

    async def health_check(self) -> dict[str, bool | str | int]:
        """
        Check health of the pipeline collaborators.

        Returns:
            Dictionary with component health status.
        """
        health: dict[str, bool | str | int] = {}

        try:
            health["ollama"] = await self.ollama_client.health_check()
        except Exception as e:
            health["ollama"] = False
            health["ollama_error"] = str(e)

        try:
            health["documents"] = len(await self.repository.list_documents())
        except Exception as e:
            health["documents"] = 0
            health["documents_error"] = str(e)

        health["conversation_store"] = True
        health["healthy"] = bool(health["ollama"])

        return health

    async def close(self) -> None:
        """Clean up resources."""
        await self.ollama_client.close()
