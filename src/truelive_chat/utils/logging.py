"""
Structured logging utilities.

Provides JSON logging with request ID propagation and anonymized sender
identities (phone numbers never reach the logs in clear text).
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from truelive_chat.config import SERVER

# Context variable for request ID propagation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


def hash_identity(identity: str) -> str:
    """
    Hash a sender identity for anonymized logging.

    Args:
        identity: Raw sender identity (e.g. a phone number).

    Returns:
        SHA256 hash of the identity (first 16 chars).
    """
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        json_format: Whether to use JSON formatting. Defaults to config.
    """
    log_level = getattr(logging, (level or SERVER.LOG_LEVEL).upper(), logging.INFO)
    use_json = SERVER.LOG_JSON if json_format is None else json_format

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if use_json:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    root_logger.addHandler(console_handler)

    # Set third-party loggers to WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Configured logger instance.
    """
    return logging.getLogger(name)


class AuditLogger:
    """
    Logger for pipeline decision events.

    Every branch the turn orchestrator takes is recorded here so a single
    turn can be replayed from the logs.
    """

    def __init__(self) -> None:
        """Initialize audit logger."""
        self._logger = logging.getLogger("truelive_chat.audit")

    def _emit(self, message: str, event: str, level: int = logging.INFO, **fields: Any) -> None:
        self._logger.log(
            level,
            message,
            extra={"extra_data": {"event": event, **fields}},
        )

    def log_gate_decision(
        self,
        request_id: str,
        in_domain: bool,
        status: str,
        raw_output: str | None,
        with_context: bool,
    ) -> None:
        """
        Log the domain gate verdict.

        Args:
            request_id: Unique request ID.
            in_domain: Final verdict after parsing and failure policy.
            status: Gate status code (in_domain, out_of_domain, unrecognized, error).
            raw_output: Classifier output before parsing.
            with_context: Whether conversation context was supplied.
        """
        self._emit(
            "Domain gate decided",
            "gate_decision",
            request_id=request_id,
            in_domain=in_domain,
            status=status,
            raw_output=raw_output[:50] if raw_output else None,
            with_context=with_context,
        )

    def log_reference_resolved(
        self,
        request_id: str,
        original_query: str,
        resolved_query: str,
    ) -> None:
        """Log a query rewritten by the context resolver."""
        self._emit(
            "Reference resolved",
            "reference_resolved",
            request_id=request_id,
            original_query=original_query,
            resolved_query=resolved_query,
        )

    def log_retrieval(
        self,
        request_id: str,
        documents_scored: int,
        documents_skipped: int,
        top_similarity: float | None,
        returned: int,
        threshold: float,
    ) -> None:
        """
        Log the outcome of a semantic retrieval.

        Args:
            request_id: Unique request ID.
            documents_scored: Documents with a usable embedding.
            documents_skipped: Documents skipped for malformed embeddings.
            top_similarity: Best score, or None when nothing was scored.
            returned: Number of results handed to the synthesizer.
            threshold: Threshold in effect.
        """
        self._emit(
            "Documents retrieved",
            "retrieval",
            request_id=request_id,
            documents_scored=documents_scored,
            documents_skipped=documents_skipped,
            top_similarity=round(top_similarity, 4) if top_similarity is not None else None,
            returned=returned,
            threshold=threshold,
        )

    def log_synthesis(
        self,
        request_id: str,
        status: str,
        sources_used: list[str],
        grounding_length: int,
    ) -> None:
        """Log answer synthesis details."""
        self._emit(
            "Answer synthesized",
            "synthesis",
            request_id=request_id,
            status=status,
            sources_used=sources_used,
            grounding_length=grounding_length,
        )

    def log_fallback_used(self, request_id: str, reason: str) -> None:
        """
        Log that a turn was answered by the fallback generator.

        Args:
            request_id: Unique request ID.
            reason: Why the in-domain path was not used (out_of_domain, no_documents, no_grounding).
        """
        self._emit(
            "Fallback generator used",
            "fallback_used",
            request_id=request_id,
            reason=reason,
        )

    def log_llm_call(
        self,
        request_id: str,
        component: str,
        model: str,
        purpose: str,
        prompt_tokens_approx: int,
        response_tokens_approx: int,
        duration_ms: float,
        success: bool,
        error: str | None = None,
    ) -> None:
        """
        Log an LLM call with full details.

        Args:
            request_id: Unique request ID.
            component: Which pipeline component made the call.
            model: Model name used.
            purpose: Purpose of the call (classify, resolve, synthesize, ...).
            prompt_tokens_approx: Approximate prompt token count.
            response_tokens_approx: Approximate response token count.
            duration_ms: Call duration in milliseconds.
            success: Whether call succeeded.
            error: Error message if failed.
        """
        self._emit(
            "LLM call completed",
            "llm_call",
            request_id=request_id,
            component=component,
            model=model,
            purpose=purpose,
            prompt_tokens_approx=prompt_tokens_approx,
            response_tokens_approx=response_tokens_approx,
            duration_ms=round(duration_ms, 2),
            success=success,
            error=error,
        )

    def log_turn_complete(
        self,
        request_id: str,
        identity_hash: str,
        status: str,
        used_fallback: bool,
        documents_used: list[str],
        response_time_ms: float,
    ) -> None:
        """Log completion of a turn."""
        self._emit(
            "Turn completed",
            "turn_complete",
            request_id=request_id,
            identity_hash=identity_hash,
            status=status,
            used_fallback=used_fallback,
            documents_used=documents_used,
            response_time_ms=round(response_time_ms, 2),
        )

    def log_state_timings(
        self,
        request_id: str,
        state_timings: dict[str, float],
        total_time_ms: float,
    ) -> None:
        """
        Log per-state timings for a turn.

        Args:
            request_id: Unique request ID.
            state_timings: Dict of state name to timing in seconds.
            total_time_ms: Total turn time in milliseconds.
        """
        timings_ms = {k: round(v * 1000, 2) for k, v in state_timings.items()}
        self._emit(
            "State timings",
            "state_timings",
            request_id=request_id,
            timings_ms=timings_ms,
            total_time_ms=round(total_time_ms, 2),
        )

    def log_persistence_failed(self, request_id: str, identity_hash: str, error: str) -> None:
        """Log a history write that failed after the answer was produced."""
        self._emit(
            "Conversation turn not persisted",
            "persistence_failed",
            level=logging.WARNING,
            request_id=request_id,
            identity_hash=identity_hash,
            error=error,
        )


# Module-level audit logger instance
audit_logger = AuditLogger()
