"""Output language selection."""

from __future__ import annotations

import re
from enum import Enum

from truelive_chat.config import LANGUAGES


class Language(Enum):
    """Languages a user can request answers in."""

    AUTO = "auto"  # Follow the language of each question
    PT = "pt"
    EN = "en"
    ES = "es"


ENGLISH_QUESTION_WORDS = frozenset({"who", "what", "when", "where", "why", "how", "which", "is", "are", "does", "did"})
SPANISH_MARKERS = frozenset({"qué", "quién", "cuándo", "dónde", "cómo", "cuál", "usted", "ustedes"})

_WORD_RE = re.compile(r"\w+", re.UNICODE)

# Instruction appended to generation prompts
LANGUAGE_INSTRUCTIONS: dict[Language, str] = {
    Language.PT: "Responda em português.",
    Language.EN: "Respond in English.",
    Language.ES: "Responde en español.",
}

SOURCES_HEADERS: dict[Language, str] = {
    Language.PT: "📚 Fontes consultadas:",
    Language.EN: "📚 Sources consulted:",
    Language.ES: "📚 Fuentes consultadas:",
}


def default_language() -> Language:
    """Configured default, falling back to Portuguese if misconfigured."""
    try:
        return Language(LANGUAGES.DEFAULT)
    except ValueError:
        return Language.PT


def detect_language(text: str) -> Language:
    """
    Guess the language of a question.

    Cheap heuristics only: Spanish punctuation or vocabulary, English
    question words, otherwise the configured default.
    """
    lowered = text.lower()
    words = _WORD_RE.findall(lowered)

    if re.search(r"¿.+\?", text) or "ñ" in lowered or any(w in SPANISH_MARKERS for w in words):
        return Language.ES

    if words and (words[0] in ENGLISH_QUESTION_WORDS or (
        lowered.rstrip().endswith("?") and any(w in ENGLISH_QUESTION_WORDS for w in words)
    )):
        # Portuguese accents override a stray English-looking token
        if not re.search(r"[ãõçâêôáéíóú]", lowered):
            return Language.EN

    return default_language()


def resolve_output_language(requested: Language, query: str) -> Language:
    """
    Pick the language an answer is written in.

    AUTO detects from the query; anything outside the supported set falls
    back to the configured default.
    """
    language = detect_language(query) if requested == Language.AUTO else requested
    if language.value not in LANGUAGES.SUPPORTED:
        return default_language()
    return language
