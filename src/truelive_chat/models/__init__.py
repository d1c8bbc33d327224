"""Model clients."""

from truelive_chat.models.ollama_client import (
    AsyncOllamaClient,
    OllamaConnectionError,
    OllamaError,
    OllamaModelError,
    OllamaResponseError,
    OllamaTimeoutError,
)

__all__ = [
    "AsyncOllamaClient",
    "OllamaError",
    "OllamaConnectionError",
    "OllamaTimeoutError",
    "OllamaModelError",
    "OllamaResponseError",
]
