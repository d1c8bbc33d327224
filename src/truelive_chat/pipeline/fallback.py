"""
Fallback Generator

Open-domain answer used when the question is out of the domain or nothing
relevant was retrieved. No grounding constraint and no retrieval.
"""

from __future__ import annotations

import asyncio
import logging

from truelive_chat.config import MESSAGES, MODELS, PIPELINE
from truelive_chat.errors import FallbackError, policy_for
from truelive_chat.language import LANGUAGE_INSTRUCTIONS, Language
from truelive_chat.models.ollama_client import AsyncOllamaClient, OllamaError

logger = logging.getLogger(__name__)


class FallbackGenerator:
    """General-knowledge answerer with the configured stance."""

    DEFAULT_SYSTEM_PROMPT = """You are {bot_name}, an assistant specialized in {domain}.
Always answer based on reliable sources. {stance}"""

    CONTEXT_SECTION = """

Use the following conversation to better understand the user's question:

{context}"""

    def __init__(
        self,
        client: AsyncOllamaClient | None = None,
        model: str | None = None,
        timeout: float | None = None,
        apology: str | None = None,
    ) -> None:
        """
        Initialize fallback generator.

        Args:
            client: Ollama client instance.
            model: Model to use for generation.
            timeout: Seconds to wait for generation.
            apology: Text returned when generation fails.
        """
        self.client = client or AsyncOllamaClient()
        self.model = model or MODELS.GENERATOR_MODEL
        self.timeout = timeout or MODELS.GENERATOR_TIMEOUT
        self.apology = apology or MESSAGES.FALLBACK_APOLOGY

    def _build_system_prompt(self, context_text: str | None, language: Language | None) -> str:
        prompt = (
            self.DEFAULT_SYSTEM_PROMPT
            .replace("{bot_name}", PIPELINE.BOT_NAME)
            .replace("{domain}", PIPELINE.DOMAIN_DESCRIPTION)
            .replace("{stance}", PIPELINE.STANCE)
        )
        if language in LANGUAGE_INSTRUCTIONS:
            prompt += "\n" + LANGUAGE_INSTRUCTIONS[language]
        if context_text:
            prompt += self.CONTEXT_SECTION.replace("{context}", context_text)
        return prompt

    async def fallback(
        self,
        query: str,
        context_text: str | None = None,
        language: Language | None = None,
    ) -> str:
        """
        Answer from general knowledge.

        Args:
            query: The user's question.
            context_text: Recent conversation transcript, if any.
            language: Output language; omitted means the model follows the question.

        Returns:
            The answer, or the configured apology; never raises.
        """
        try:
            try:
                output = await asyncio.wait_for(
                    self.client.chat_text(
                        system=self._build_system_prompt(context_text, language),
                        user=query,
                        model=self.model,
                        timeout=self.timeout,
                        temperature=MODELS.GENERATOR_TEMPERATURE,
                        max_tokens=1000,
                        component="fallback",
                        purpose="open_domain_answer",
                    ),
                    timeout=self.timeout,
                )
            except (OllamaError, asyncio.TimeoutError) as e:
                raise FallbackError(str(e) or "generation timed out") from e

            answer = output.strip()
            if not answer:
                raise FallbackError("Generated empty response")
            return answer

        except FallbackError as e:
            logger.error(f"Fallback generation failed ({policy_for('fallback').policy.value}): {e}")
            return self.apology

        except Exception as e:
            logger.error(f"Unexpected error in fallback generation: {e}")
            return self.apology
