"""
Answer Synthesizer

Grounded answer generation over retrieved documents. The model only sees
document excerpts with their attribution headers, the recent conversation and
the question. Optionally appends the list of sources that made it into the
grounding block.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from truelive_chat.config import CONVERSATION, MESSAGES, MODELS, PATHS, PIPELINE, RETRIEVAL
from truelive_chat.conversation.store import (
    ConversationTurn,
    ResponseLength,
    UserSettings,
    format_transcript,
    last_turns,
)
from truelive_chat.errors import SynthesisError, policy_for
from truelive_chat.language import LANGUAGE_INSTRUCTIONS, SOURCES_HEADERS, resolve_output_language
from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaError
from truelive_chat.pipeline.retriever import RetrievalResult
from truelive_chat.utils.logging import audit_logger, request_id_var

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "Fonte desconhecida"

# Guidance and token budget per preferred answer length
LENGTH_GUIDANCE: dict[ResponseLength, tuple[str, int]] = {
    ResponseLength.SHORT: ("Answer in at most three sentences.", 300),
    ResponseLength.MEDIUM: ("Answer in one to three short paragraphs.", 1000),
    ResponseLength.LONG: ("Give a detailed answer with context and background.", 2000),
}


class SynthesisStatus(Enum):
    """Status codes for answer synthesis."""

    SUCCESS = "success"
    NO_GROUNDING = "no_grounding"  # Nothing survived the grounding filter
    ERROR = "error"  # Generation failed, text is the apology


@dataclass
class SynthesisResult:
    """Result of answer synthesis."""

    status: SynthesisStatus
    text: str
    sources_used: tuple[str, ...] = ()
    documents_used: tuple[str, ...] = ()
    error_message: str | None = None


@dataclass
class GroundingBlock:
    """Prompt block built from retrieved documents."""

    text: str = ""
    sources: list[str] = field(default_factory=list)  # ordered, de-duplicated
    document_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.document_ids


class AnswerSynthesizer:
    """
    Grounded answer generator.

    Features:
    - Attribution header per excerpt (source, title, relevance)
    - Excerpt cap and per-document relevance floor
    - Stance, output language and answer-length instructions
    - Localized sources footer when the user asked for it
    """

    DEFAULT_SYSTEM_PROMPT = """You are {bot_name}, an assistant specialized in {domain}.

{language_instruction}

RULES:
1. This is an ongoing conversation. Resolve pronouns using the recent conversation.
2. Use ONLY the information in the documents below to answer.
3. Be precise with dates, names and facts. If the documents do not contain the answer, reply exactly: "{insufficient}"
4. {stance}
5. {length_instruction}

DOCUMENTS:
{grounding}"""

    def __init__(
        self,
        client: AsyncOllamaClient | None = None,
        model: str | None = None,
        excerpt_cap: int | None = None,
        relevance_floor: float | None = None,
        window: int | None = None,
        timeout: float | None = None,
        system_prompt: str | None = None,
        apology: str | None = None,
    ) -> None:
        """
        Initialize answer synthesizer.

        Args:
            client: Ollama client instance.
            model: Model to use for generation.
            excerpt_cap: Characters kept from each document.
            relevance_floor: Minimum similarity for a document to be used.
            window: Number of recent turns included in the prompt.
            timeout: Seconds to wait for generation.
            system_prompt: Custom system prompt template.
            apology: Text returned when generation fails.
        """
        self.client = client or AsyncOllamaClient()
        self.model = model or MODELS.GENERATOR_MODEL
        self.excerpt_cap = excerpt_cap or RETRIEVAL.EXCERPT_CAP
        self.relevance_floor = (
            RETRIEVAL.SOURCE_RELEVANCE_FLOOR if relevance_floor is None else relevance_floor
        )
        self.window = CONVERSATION.CONTEXT_WINDOW if window is None else window
        self.timeout = timeout or MODELS.GENERATOR_TIMEOUT
        self.apology = apology or MESSAGES.SYNTHESIS_APOLOGY
        self._system_prompt = system_prompt
        self._loaded_prompt: str | None = None

    def _get_template(self) -> str:
        """Get the system prompt template, loading from file if available."""
        if self._system_prompt:
            return self._system_prompt
        if self._loaded_prompt:
            return self._loaded_prompt
        prompt_file = PATHS.PROMPTS_DIR / "synthesizer.md"
        if prompt_file.exists():
            self._loaded_prompt = prompt_file.read_text().strip()
            return self._loaded_prompt
        return self.DEFAULT_SYSTEM_PROMPT

    def build_grounding(self, results: list[RetrievalResult]) -> GroundingBlock:
        """
        Build the grounding block in retrieval order.

        Documents with no content or at or below the relevance floor are left out
        of both the block and the sources list.
        """
        block = GroundingBlock()
        parts = []
        for result in results:
            document = result.document
            excerpt = document.content[: self.excerpt_cap].strip()
            if not excerpt or result.similarity <= self.relevance_floor:
                continue

            source = document.source or UNKNOWN_SOURCE
            parts.append(
                f"--- Source: {source} | Title: {document.title} "
                f"(Relevance: {result.similarity:.2f}) ---\n{excerpt}"
            )
            block.document_ids.append(document.id)
            if source not in block.sources:
                block.sources.append(source)

        block.text = "\n\n".join(parts)
        return block

    def _build_system_prompt(self, grounding: str, query: str, settings: UserSettings) -> str:
        language = resolve_output_language(settings.language, query)
        length_instruction, _ = LENGTH_GUIDANCE[settings.response_length]
        replacements = {
            "{bot_name}": PIPELINE.BOT_NAME,
            "{domain}": PIPELINE.DOMAIN_DESCRIPTION,
            "{language_instruction}": LANGUAGE_INSTRUCTIONS[language],
            "{insufficient}": MESSAGES.INSUFFICIENT_INFORMATION,
            "{stance}": PIPELINE.STANCE,
            "{length_instruction}": length_instruction,
            "{grounding}": grounding,
        }
        # str.replace keeps braces inside document text intact
        prompt = self._get_template()
        for placeholder, value in replacements.items():
            prompt = prompt.replace(placeholder, value)
        return prompt

    def _format_user_message(self, query: str, recent_turns: list[ConversationTurn]) -> str:
        turns = last_turns(recent_turns, self.window)
        if not turns:
            return query
        transcript = format_transcript(turns)
        return f"RECENT CONVERSATION:\n{transcript}\n\nCURRENT QUESTION:\n{query}"

    @staticmethod
    def format_sources(sources: list[str], query: str, settings: UserSettings) -> str:
        """Render the localized sources footer."""
        header = SOURCES_HEADERS[resolve_output_language(settings.language, query)]
        lines = [header] + [f"- {source}" for source in sources]
        return "\n".join(lines)

    async def synthesize(
        self,
        query: str,
        results: list[RetrievalResult],
        recent_turns: list[ConversationTurn],
        settings: UserSettings,
    ) -> SynthesisResult:
        """
        Generate a grounded answer.

        Args:
            query: The (resolved) question.
            results: Retrieved documents, best first.
            recent_turns: Recent turns, oldest first.
            settings: The sender's preferences.

        Returns:
            SynthesisResult; never raises.
        """
        block = self.build_grounding(results)
        if block.is_empty:
            logger.info("No document passed the grounding filter")
            return SynthesisResult(status=SynthesisStatus.NO_GROUNDING, text="")

        _, max_tokens = LENGTH_GUIDANCE[settings.response_length]

        try:
            try:
                output = await asyncio.wait_for(
                    self.client.chat_text(
                        system=self._build_system_prompt(block.text, query, settings),
                        user=self._format_user_message(query, recent_turns),
                        model=self.model,
                        timeout=self.timeout,
                        temperature=MODELS.GENERATOR_TEMPERATURE,
                        max_tokens=max_tokens,
                        component="synthesizer",
                        purpose="grounded_answer",
                    ),
                    timeout=self.timeout,
                )
            except (OllamaError, asyncio.TimeoutError) as e:
                raise SynthesisError(str(e) or "generation timed out") from e

            answer = output.strip()
            if not answer:
                raise SynthesisError("Generated empty response")

        except SynthesisError as e:
            logger.error(f"Answer synthesis failed ({policy_for('synthesizer').policy.value}): {e}")
            return self._error_result(str(e))

        except Exception as e:
            logger.error(f"Unexpected error in answer synthesis: {e}")
            return self._error_result(str(e))

        if settings.show_sources and block.sources:
            answer = f"{answer}\n\n{self.format_sources(block.sources, query, settings)}"

        audit_logger.log_synthesis(
            request_id=request_id_var.get(),
            status=SynthesisStatus.SUCCESS.value,
            sources_used=block.sources,
            grounding_length=len(block.text),
        )
        return SynthesisResult(
            status=SynthesisStatus.SUCCESS,
            text=answer,
            sources_used=tuple(block.sources),
            documents_used=tuple(block.document_ids),
        )

    def _error_result(self, message: str) -> SynthesisResult:
        audit_logger.log_synthesis(
            request_id=request_id_var.get(),
            status=SynthesisStatus.ERROR.value,
            sources_used=[],
            grounding_length=0,
        )
        return SynthesisResult(
            status=SynthesisStatus.ERROR,
            text=self.apology,
            error_message=message,
        )
