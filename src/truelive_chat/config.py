"""
Configuration module with frozen dataclasses and environment overrides.

Every tunable of the retrieval-and-synthesis pipeline lives here, grouped by
concern. Values come from environment variables (optionally via a .env file);
numeric settings that must not drop below a sane floor are clamped.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


def _env_str(name: str, default: str) -> str:
    """Load string from environment variable."""
    return os.getenv(name, default)


def _env_bool(name: str, default: bool) -> bool:
    """Load boolean from environment variable ("true"/"false")."""
    return _env_str(name, "true" if default else "false").strip().lower() == "true"


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Load int from env with an optional hard minimum."""
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        value = default

    if min_val is not None:
        return max(value, min_val)
    return value


def _env_float(
    name: str,
    default: float,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Load float from env with optional bounds."""
    try:
        value = float(os.getenv(name, str(default)))
    except ValueError:
        value = default

    if min_val is not None:
        value = max(value, min_val)
    if max_val is not None:
        value = min(value, max_val)
    return value


def _env_tuple(name: str, default: str) -> tuple[str, ...]:
    """Load a comma-separated list from env."""
    return tuple(
        item.strip().lower()
        for item in _env_str(name, default).split(",")
        if item.strip()
    )


@dataclass(frozen=True)
class ModelConfig:
    """Model selection and per-call timeouts."""

    OLLAMA_URL: str = _env_str("OLLAMA_URL", "http://localhost:11434")

    # Small, deterministic model for the in/out-of-domain check
    CLASSIFIER_MODEL: str = _env_str("CLASSIFIER_MODEL", "qwen2.5:1.5b")

    # Answer synthesis, fallback and reference resolution
    GENERATOR_MODEL: str = _env_str("GENERATOR_MODEL", "llama3.1:8b")

    EMBEDDING_MODEL: str = _env_str("EMBEDDING_MODEL", "nomic-embed-text")
    EMBEDDING_DIMENSION: int = _env_int("EMBEDDING_DIMENSION", 768, min_val=1)

    # Timeouts per external call (seconds)
    CLASSIFIER_TIMEOUT: float = _env_float("CLASSIFIER_TIMEOUT", 10.0, min_val=1.0)
    RESOLVER_TIMEOUT: float = _env_float("RESOLVER_TIMEOUT", 15.0, min_val=1.0)
    EMBEDDING_TIMEOUT: float = _env_float("EMBEDDING_TIMEOUT", 15.0, min_val=1.0)
    GENERATOR_TIMEOUT: float = _env_float("GENERATOR_TIMEOUT", 60.0, min_val=5.0)

    CLASSIFIER_TEMPERATURE: float = _env_float("CLASSIFIER_TEMPERATURE", 0.1, min_val=0.0)
    GENERATOR_TEMPERATURE: float = _env_float("GENERATOR_TEMPERATURE", 0.5, min_val=0.0)


@dataclass(frozen=True)
class RetrievalConfig:
    """Semantic retrieval and grounding limits."""

    # Best match must reach this score (inclusive) to count as a confident hit
    SIMILARITY_THRESHOLD: float = _env_float(
        "SIMILARITY_THRESHOLD", 0.3, min_val=-1.0, max_val=1.0
    )
    TOP_K: int = _env_int("RETRIEVAL_TOP_K", 4, min_val=1)

    # Characters of each document passed to the generator
    EXCERPT_CAP: int = _env_int("EXCERPT_CAP", 1500, min_val=100)

    # Documents must score above this floor (exclusive) to be used for
    # grounding and attribution; separate from the retrieval threshold
    SOURCE_RELEVANCE_FLOOR: float = _env_float(
        "SOURCE_RELEVANCE_FLOOR", 0.5, min_val=-1.0, max_val=1.0
    )

    CACHE_TTL_SECONDS: int = _env_int("DOCUMENT_CACHE_TTL_SECONDS", 300, min_val=0)

    # Characters of content sent to the embedding model at indexing time
    INDEX_CONTENT_CAP: int = _env_int("INDEX_CONTENT_CAP", 8000, min_val=500)


@dataclass(frozen=True)
class ConversationLimits:
    """Conversation history limits."""

    # Turns shown to the gate, resolver and synthesizer
    CONTEXT_WINDOW: int = _env_int("CONTEXT_WINDOW", 3, min_val=1)

    # Turns retained per identity
    MAX_HISTORY_TURNS: int = _env_int("MAX_HISTORY_TURNS", 10, min_val=1)

    TRANSCRIPT_ANSWER_CHARS: int = _env_int("TRANSCRIPT_ANSWER_CHARS", 400, min_val=50)


@dataclass(frozen=True)
class PipelineConfig:
    """Pipeline behaviour flags and domain framing."""

    RESOLVE_REFERENCES: bool = _env_bool("RESOLVE_REFERENCES", True)

    # Result used when the classifier answers something other than yes/no.
    # Errors and timeouts still fail open.
    GATE_UNRECOGNIZED_DEFAULT: bool = _env_bool("GATE_UNRECOGNIZED_DEFAULT", False)

    BOT_NAME: str = _env_str("BOT_NAME", "True Live")

    DOMAIN_DESCRIPTION: str = _env_str(
        "DOMAIN_DESCRIPTION",
        "Israel, Judaism, Jewish culture and history, Middle East geopolitics, "
        "Israeli leaders, Zionism and antisemitism",
    )

    STANCE: str = _env_str(
        "STANCE",
        "Keep a factual, balanced pro-Israel perspective and rely on reliable sources.",
    )


@dataclass(frozen=True)
class MessagesConfig:
    """User-facing fixed strings."""

    SYNTHESIS_APOLOGY: str = _env_str(
        "SYNTHESIS_APOLOGY",
        "Desculpe, encontrei um erro ao processar sua pergunta. "
        "Por favor, tente novamente.",
    )
    FALLBACK_APOLOGY: str = _env_str(
        "FALLBACK_APOLOGY",
        "Desculpe, não consegui encontrar uma resposta para sua pergunta. "
        "Tente reformulá-la ou perguntar sobre outro tópico relacionado a Israel.",
    )
    INSUFFICIENT_INFORMATION: str = _env_str(
        "INSUFFICIENT_INFORMATION",
        "Não tenho informações suficientes nas fontes disponíveis para responder com precisão.",
    )


@dataclass(frozen=True)
class LanguageConfig:
    """Supported output languages."""

    SUPPORTED: tuple[str, ...] = _env_tuple("SUPPORTED_LANGUAGES", "pt,en,es")
    DEFAULT: str = _env_str("DEFAULT_LANGUAGE", "pt").lower()


@dataclass(frozen=True)
class ServerConfig:
    """Server configuration."""

    HOST: str = _env_str("HOST", "127.0.0.1")
    PORT: int = _env_int("PORT", 8000)
    LOG_LEVEL: str = _env_str("LOG_LEVEL", "INFO")
    LOG_JSON: bool = _env_bool("LOG_JSON", True)
    DEBUG: bool = _env_bool("DEBUG", False)
    METRICS_ENABLED: bool = _env_bool("METRICS_ENABLED", True)


@dataclass(frozen=True)
class PathConfig:
    """Path configuration for the document collection and prompt overrides."""

    BASE_DIR: Path = Path(__file__).parent.parent.parent
    DATA_DIR: Path = Path(_env_str("DATA_DIR", str(BASE_DIR / "data")))
    DOCUMENTS_FILE: Path = Path(
        _env_str("DOCUMENTS_FILE", str(BASE_DIR / "data" / "documents.json"))
    )
    PROMPTS_DIR: Path = BASE_DIR / "prompts"


# Module-level singletons (immutable)
MODELS = ModelConfig()
RETRIEVAL = RetrievalConfig()
CONVERSATION = ConversationLimits()
PIPELINE = PipelineConfig()
MESSAGES = MessagesConfig()
LANGUAGES = LanguageConfig()
SERVER = ServerConfig()
PATHS = PathConfig()


@lru_cache(maxsize=1)
def get_all_config() -> dict[str, object]:
    """Return all configuration as a dictionary for debugging."""
    return {
        "models": MODELS,
        "retrieval": RETRIEVAL,
        "conversation": CONVERSATION,
        "pipeline": PIPELINE,
        "messages": MESSAGES,
        "languages": LANGUAGES,
        "server": SERVER,
        "paths": {
            "base_dir": str(PATHS.BASE_DIR),
            "data_dir": str(PATHS.DATA_DIR),
            "documents_file": str(PATHS.DOCUMENTS_FILE),
            "prompts_dir": str(PATHS.PROMPTS_DIR),
        },
    }
