"""Retrieval-and-synthesis turn pipeline."""

from truelive_chat.pipeline.context_resolver import ContextResolver, has_anaphora
from truelive_chat.pipeline.domain_gate import (
    DomainGate,
    GateResult,
    GateStatus,
    parse_classifier_output,
)
from truelive_chat.pipeline.fallback import FallbackGenerator
from truelive_chat.pipeline.orchestrator import (
    InboundTurn,
    PipelineOutcome,
    TurnOrchestrator,
    TurnState,
    TurnStatus,
)
from truelive_chat.pipeline.retriever import RetrievalResult, SemanticRetriever
from truelive_chat.pipeline.synthesizer import (
    AnswerSynthesizer,
    SynthesisResult,
    SynthesisStatus,
)

__all__ = [
    "ContextResolver",
    "has_anaphora",
    "DomainGate",
    "GateResult",
    "GateStatus",
    "parse_classifier_output",
    "FallbackGenerator",
    "InboundTurn",
    "PipelineOutcome",
    "TurnOrchestrator",
    "TurnState",
    "TurnStatus",
    "RetrievalResult",
    "SemanticRetriever",
    "AnswerSynthesizer",
    "SynthesisResult",
    "SynthesisStatus",
]
