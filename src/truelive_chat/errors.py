"""
Pipeline error taxonomy and the per-component failure policy table.

Each component of the turn pipeline recovers from its own failures in one
fixed way. The table below is the single place that says which way; the
components look their policy up here instead of deciding ad hoc.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PipelineError(RuntimeError):
    """Base exception for pipeline component failures."""

    recoverable: bool = True


class ClassificationError(PipelineError):
    """Domain classifier unavailable or returned malformed output."""


class ResolutionError(PipelineError):
    """Reference rewriting failed."""


class EmbeddingError(PipelineError):
    """Embedding service failed or returned a vector of the wrong shape."""


class RetrievalError(PipelineError):
    """Document collection could not be ranked."""


class SynthesisError(PipelineError):
    """Grounded answer generation failed - terminal for the turn."""

    recoverable: bool = False


class FallbackError(PipelineError):
    """Open-domain generation failed."""


class PersistenceError(PipelineError):
    """Conversation history or settings could not be written."""


class DocumentValidationError(ValueError):
    """A document was rejected at ingestion time."""


class FailurePolicy(Enum):
    """How a component turns a failure into a result."""

    FAIL_OPEN = "fail_open"  # treat the check as passed
    USE_ORIGINAL = "use_original"  # keep the unmodified input
    EMPTY_RESULT = "empty_result"  # behave as if nothing was found
    APOLOGY = "apology"  # answer with a fixed, safe apology
    LOG_AND_CONTINUE = "log_and_continue"  # never block the answer


@dataclass(frozen=True)
class ComponentPolicy:
    """One row of the failure policy table."""

    component: str
    error: type[PipelineError]
    policy: FailurePolicy
    terminal: bool = False


FAILURE_POLICIES: dict[str, ComponentPolicy] = {
    "domain_gate": ComponentPolicy(
        component="domain_gate",
        error=ClassificationError,
        policy=FailurePolicy.FAIL_OPEN,
    ),
    "context_resolver": ComponentPolicy(
        component="context_resolver",
        error=ResolutionError,
        policy=FailurePolicy.USE_ORIGINAL,
    ),
    "retriever": ComponentPolicy(
        component="retriever",
        error=EmbeddingError,
        policy=FailurePolicy.EMPTY_RESULT,
    ),
    "synthesizer": ComponentPolicy(
        component="synthesizer",
        error=SynthesisError,
        policy=FailurePolicy.APOLOGY,
        terminal=True,
    ),
    "fallback": ComponentPolicy(
        component="fallback",
        error=FallbackError,
        policy=FailurePolicy.APOLOGY,
    ),
    "persistence": ComponentPolicy(
        component="persistence",
        error=PersistenceError,
        policy=FailurePolicy.LOG_AND_CONTINUE,
    ),
}


def policy_for(component: str) -> ComponentPolicy:
    """Look up the failure policy of a pipeline component."""
    return FAILURE_POLICIES[component]
