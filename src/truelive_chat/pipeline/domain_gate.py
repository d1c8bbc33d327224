"""
Domain Gate

LLM-based check that a question belongs to the supported topic domain.
Runs before any retrieval. Fails open: when the classifier cannot give an
answer, the question is treated as in-domain.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum

from truelive_chat.config import MODELS, PATHS, PIPELINE
from truelive_chat.errors import ClassificationError, policy_for
from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaError
from truelive_chat.utils.logging import audit_logger, request_id_var

logger = logging.getLogger(__name__)

POSITIVE_TOKENS = frozenset({"true", "sim", "yes", "verdadeiro", "si", "sí"})
NEGATIVE_TOKENS = frozenset({"false", "não", "nao", "no", "falso"})

_FIRST_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)


class GateStatus(Enum):
    """Status codes for the domain gate."""

    IN_DOMAIN = "in_domain"
    OUT_OF_DOMAIN = "out_of_domain"
    UNRECOGNIZED = "unrecognized"  # Classifier answered something else
    ERROR = "error"  # Classifier unavailable, failed open


@dataclass
class GateResult:
    """Result of a domain classification."""

    status: GateStatus
    in_domain: bool
    raw_output: str | None = None
    error_message: str | None = None


def parse_classifier_output(output: str) -> bool | None:
    """
    Read a yes/no verdict from classifier output.

    Only the first word counts, case and punctuation ignored.

    Returns:
        True/False for a recognized verdict, None otherwise.
    """
    match = _FIRST_WORD_RE.search(output.strip().lower())
    if match is None:
        return None
    token = match.group(0)
    if token in POSITIVE_TOKENS:
        return True
    if token in NEGATIVE_TOKENS:
        return False
    return None


class DomainGate:
    """
    In/out-of-domain classifier.

    Features:
    - Fixed domain instruction built from configuration
    - Context-aware variant that admits references to earlier entities
    - Lenient single-token parsing
    - Fail-open on any classifier error or timeout
    """

    DEFAULT_SYSTEM_PROMPT = """You are a classifier that decides whether a question is related to {domain}.

A question is IN the domain when it asks about any of these subjects: their people, history, politics, economy, society, culture, religion, traditions, leaders, conflicts, or the movements and prejudices tied to them.

Answer only "true" if the question is in the domain or "false" if it is not."""

    CONTEXT_ADDENDUM = """

IMPORTANT: You are looking at a conversation in progress. If the current question refers to something mentioned earlier in the conversation that is in the domain, classify it as IN the domain, even if the current question alone is ambiguous."""

    def __init__(
        self,
        client: AsyncOllamaClient | None = None,
        model: str | None = None,
        domain_description: str | None = None,
        system_prompt: str | None = None,
        timeout: float | None = None,
        unrecognized_default: bool | None = None,
    ) -> None:
        """
        Initialize domain gate.

        Args:
            client: Ollama client instance.
            model: Model to use for classification.
            domain_description: Topic area accepted by the gate.
            system_prompt: Custom system prompt ({domain} placeholder optional).
            timeout: Seconds to wait for the classifier.
            unrecognized_default: Verdict when the output is neither yes nor no.
        """
        self.client = client or AsyncOllamaClient()
        self.model = model or MODELS.CLASSIFIER_MODEL
        self.domain_description = domain_description or PIPELINE.DOMAIN_DESCRIPTION
        self.timeout = timeout or MODELS.CLASSIFIER_TIMEOUT
        self.unrecognized_default = (
            PIPELINE.GATE_UNRECOGNIZED_DEFAULT
            if unrecognized_default is None
            else unrecognized_default
        )
        self._system_prompt = system_prompt
        self._loaded_prompt: str | None = None

    def _get_system_prompt(self, with_context: bool) -> str:
        """Get the system prompt, loading from file if available."""
        if self._system_prompt:
            template = self._system_prompt
        elif self._loaded_prompt:
            template = self._loaded_prompt
        else:
            prompt_file = PATHS.PROMPTS_DIR / "domain_gate.md"
            if prompt_file.exists():
                self._loaded_prompt = prompt_file.read_text().strip()
                template = self._loaded_prompt
            else:
                template = self.DEFAULT_SYSTEM_PROMPT

        prompt = template.replace("{domain}", self.domain_description)
        if with_context:
            prompt += self.CONTEXT_ADDENDUM
        return prompt

    @staticmethod
    def _format_user_message(query: str, context_text: str | None) -> str:
        if not context_text:
            return query
        return f"PREVIOUS CONVERSATION:\n\n{context_text}\n\nCURRENT QUESTION:\nUser: {query}"

    async def classify(self, query: str, context_text: str | None = None) -> GateResult:
        """
        Classify a question.

        Args:
            query: The user's question.
            context_text: Recent conversation transcript, if any.

        Returns:
            GateResult; never raises.
        """
        with_context = bool(context_text)
        try:
            try:
                output = await asyncio.wait_for(
                    self.client.chat_text(
                        system=self._get_system_prompt(with_context),
                        user=self._format_user_message(query, context_text),
                        model=self.model,
                        timeout=self.timeout,
                        temperature=MODELS.CLASSIFIER_TEMPERATURE,
                        max_tokens=10,
                        component="domain_gate",
                        purpose="domain_classification",
                    ),
                    timeout=self.timeout,
                )
            except (OllamaError, asyncio.TimeoutError) as e:
                raise ClassificationError(str(e) or "classifier timed out") from e

            verdict = parse_classifier_output(output)
            if verdict is None:
                logger.warning(f"Unrecognized classifier output: {output[:50]!r}")
                result = GateResult(
                    status=GateStatus.UNRECOGNIZED,
                    in_domain=self.unrecognized_default,
                    raw_output=output,
                )
            else:
                result = GateResult(
                    status=GateStatus.IN_DOMAIN if verdict else GateStatus.OUT_OF_DOMAIN,
                    in_domain=verdict,
                    raw_output=output,
                )

        except ClassificationError as e:
            logger.error(
                f"Domain classification failed ({policy_for('domain_gate').policy.value}): {e}"
            )
            result = GateResult(status=GateStatus.ERROR, in_domain=True, error_message=str(e))

        except Exception as e:
            logger.error(f"Unexpected error in domain classification: {e}")
            result = GateResult(status=GateStatus.ERROR, in_domain=True, error_message=str(e))

        audit_logger.log_gate_decision(
            request_id=request_id_var.get(),
            in_domain=result.in_domain,
            status=result.status.value,
            raw_output=result.raw_output,
            with_context=with_context,
        )
        return result

    async def is_in_domain(self, query: str, context_text: str | None = None) -> bool:
        """Return True if the question belongs to the supported domain."""
        result = await self.classify(query, context_text)
        return result.in_domain
