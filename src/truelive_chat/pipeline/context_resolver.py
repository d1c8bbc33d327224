"""
Context Resolver

Rewrites follow-up questions that lean on earlier turns ("when was he
born?") into self-contained questions before retrieval. Only questions
containing a third-person or possessive pronoun are touched; everything
else passes through unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import re

from truelive_chat.config import CONVERSATION, MODELS
from truelive_chat.conversation.store import ConversationTurn, format_transcript, last_turns
from truelive_chat.errors import ResolutionError, policy_for
from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaError
from truelive_chat.utils.logging import audit_logger, request_id_var

logger = logging.getLogger(__name__)

# Closed set of anaphoric markers, per language. Articles and words that
# double as common nouns are left out on purpose.
ANAPHORIC_MARKERS: dict[str, frozenset[str]] = {
    "pt": frozenset({
        "ele", "ela", "eles", "elas",
        "dele", "dela", "deles", "delas",
        "nele", "nela", "neles", "nelas",
        "seu", "sua", "seus", "suas",
        "lhe", "lhes",
        "isso", "disso", "nisso", "esse", "essa", "desse", "dessa",
    }),
    "es": frozenset({
        "él", "ella", "ellos", "ellas",
        "su", "sus", "suyo", "suya", "suyos", "suyas",
        "le", "les", "eso", "ese", "esa",
    }),
    "en": frozenset({
        "he", "she", "him", "his", "her", "hers",
        "they", "them", "their", "theirs",
        "it", "its", "that", "those",
    }),
}

ALL_MARKERS: frozenset[str] = frozenset().union(*ANAPHORIC_MARKERS.values())

_TOKEN_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


def has_anaphora(query: str, markers: frozenset[str] = ALL_MARKERS) -> bool:
    """Check whether a question contains an anaphoric marker."""
    return any(token in markers for token in _TOKEN_RE.findall(query.lower()))


class ContextResolver:
    """
    Pronoun resolver using the generation model.

    The rewrite is an optimization: any failure returns the original question
    and retrieval runs on it unchanged.
    """

    DEFAULT_SYSTEM_PROMPT = """You rewrite follow-up questions so they can be understood without the conversation.

Replace every pronoun or possessive that refers to something in the conversation with the explicit name it refers to. Keep the language, meaning and wording of the question otherwise unchanged.

Return ONLY the rewritten question, with no explanation, no quotes and no prefix."""

    def __init__(
        self,
        client: AsyncOllamaClient | None = None,
        model: str | None = None,
        window: int | None = None,
        timeout: float | None = None,
        markers: frozenset[str] | None = None,
    ) -> None:
        """
        Initialize context resolver.

        Args:
            client: Ollama client instance.
            model: Model to use for rewriting.
            window: Number of recent turns shown to the model.
            timeout: Seconds to wait for the rewrite.
            markers: Anaphoric markers that trigger a rewrite.
        """
        self.client = client or AsyncOllamaClient()
        self.model = model or MODELS.GENERATOR_MODEL
        self.window = CONVERSATION.CONTEXT_WINDOW if window is None else window
        self.timeout = timeout or MODELS.RESOLVER_TIMEOUT
        self.markers = markers or ALL_MARKERS

    def needs_resolution(self, query: str, recent_turns: list[ConversationTurn]) -> bool:
        """A rewrite is attempted only with history and an anaphoric marker."""
        return bool(last_turns(recent_turns, self.window)) and has_anaphora(query, self.markers)

    def _format_user_message(self, query: str, recent_turns: list[ConversationTurn]) -> str:
        transcript = format_transcript(last_turns(recent_turns, self.window))
        return (
            f"CONVERSATION:\n{transcript}\n\n"
            f"FOLLOW-UP QUESTION:\n{query}\n\n"
            "REWRITTEN QUESTION:"
        )

    @staticmethod
    def _clean_output(output: str) -> str:
        """Keep the first non-empty line, without wrapping quotes or labels."""
        for line in output.strip().splitlines():
            line = line.strip()
            if line:
                break
        else:
            return ""
        line = re.sub(r"^(rewritten question|pergunta reescrita)\s*:\s*", "", line, flags=re.IGNORECASE)
        return line.strip().strip("\"'“”«»").strip()

    async def resolve_reference(self, query: str, recent_turns: list[ConversationTurn]) -> str:
        """
        Make a question self-contained.

        Args:
            query: The user's question.
            recent_turns: Recent turns, oldest first.

        Returns:
            The rewritten question, or the original one when no rewrite is
            needed or the rewrite failed.
        """
        if not self.needs_resolution(query, recent_turns):
            return query

        try:
            try:
                output = await asyncio.wait_for(
                    self.client.chat_text(
                        system=self.DEFAULT_SYSTEM_PROMPT,
                        user=self._format_user_message(query, recent_turns),
                        model=self.model,
                        timeout=self.timeout,
                        temperature=0.0,
                        max_tokens=200,
                        component="context_resolver",
                        purpose="reference_resolution",
                    ),
                    timeout=self.timeout,
                )
            except (OllamaError, asyncio.TimeoutError) as e:
                raise ResolutionError(str(e) or "resolver timed out") from e

            resolved = self._clean_output(output)
            # An empty or runaway rewrite is worse than the original
            if not resolved or len(resolved) > max(4 * len(query), 300):
                raise ResolutionError(f"Implausible rewrite: {output[:80]!r}")

        except ResolutionError as e:
            logger.warning(
                f"Reference resolution failed ({policy_for('context_resolver').policy.value}): {e}"
            )
            return query

        except Exception as e:
            logger.error(f"Unexpected error in reference resolution: {e}")
            return query

        if resolved != query:
            audit_logger.log_reference_resolved(
                request_id=request_id_var.get(),
                original_query=query,
                resolved_query=resolved,
            )
        return resolved
