"""
Async Ollama client with retry logic and custom exception hierarchy.

Provides the three external capabilities the pipeline needs: text
classification and text generation (both through /api/chat) and embeddings
(/api/embeddings). Transient failures are retried with exponential backoff
via tenacity; everything else surfaces as an OllamaError subclass.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from truelive_chat.config import MODELS
from truelive_chat.utils.logging import audit_logger, request_id_var
from truelive_chat.utils.metrics import LLM_CALLS

logger = logging.getLogger(__name__)


def _approx_tokens(text: str) -> int:
    """Rough approximation of token count (4 chars per token)."""
    return len(text) // 4


# Exception hierarchy with recoverability flags
class OllamaError(RuntimeError):
    """Base exception for Ollama operations."""

    recoverable: bool = False


class OllamaConnectionError(OllamaError):
    """Network connectivity issues - recoverable."""

    recoverable: bool = True


class OllamaTimeoutError(OllamaError):
    """Request timeout - recoverable."""

    recoverable: bool = True


class OllamaModelError(OllamaError):
    """Model loading/execution error - not recoverable."""

    recoverable: bool = False


class OllamaResponseError(OllamaError):
    """Invalid response from Ollama - not recoverable."""

    recoverable: bool = False


_RETRY_TRANSIENT = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type((OllamaConnectionError, OllamaTimeoutError)),
    reraise=True,
)


class AsyncOllamaClient:
    """Async HTTP client for Ollama API with retry logic."""

    def __init__(
        self,
        url: str | None = None,
        default_model: str | None = None,
    ) -> None:
        """
        Initialize Ollama client.

        Args:
            url: Ollama server URL. Defaults to config.
            default_model: Default model to use. Falls back to config.
        """
        self.url = (url or MODELS.OLLAMA_URL).rstrip("/")
        self.default_model = default_model
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AsyncOllamaClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _resolve_model(self, model: str | None) -> str:
        """Resolve model name from explicit, default, or config."""
        if model:
            return model
        if self.default_model:
            return self.default_model
        return MODELS.GENERATOR_MODEL

    async def _post_json(
        self,
        path: str,
        payload: dict[str, Any],
        timeout: float,
        model: str,
    ) -> dict[str, Any]:
        """
        POST a payload and return the decoded JSON body.

        Raises:
            OllamaConnectionError: Network connectivity issues.
            OllamaTimeoutError: Request timeout.
            OllamaModelError: Model missing or non-200 status.
            OllamaResponseError: Body is not JSON.
        """
        client = await self._get_client()

        try:
            response = await client.post(
                f"{self.url}{path}",
                json=payload,
                timeout=timeout,
            )
        except httpx.ConnectError as e:
            logger.warning(f"Connection error to Ollama: {e}")
            raise OllamaConnectionError(f"Failed to connect to Ollama: {e}") from e
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout calling Ollama: {e}")
            raise OllamaTimeoutError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling Ollama: {e}")
            raise OllamaConnectionError(f"HTTP error: {e}") from e

        if response.status_code == 404:
            raise OllamaModelError(f"Model not found: {model}")

        if response.status_code != 200:
            error_text = response.text[:500]
            logger.error(f"Ollama error response: {response.status_code} - {error_text}")
            raise OllamaModelError(
                f"Ollama returned status {response.status_code}: {error_text}"
            )

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise OllamaResponseError(f"Invalid JSON response: {e}") from e

    @_RETRY_TRANSIENT
    async def chat_text(
        self,
        system: str,
        user: str,
        model: str | None = None,
        timeout: float | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        component: str | None = None,
        purpose: str | None = None,
    ) -> str:
        """
        Send a chat request and get a text response.

        Args:
            system: System prompt.
            user: User message.
            model: Model to use. Falls back to default/config.
            timeout: Request timeout in seconds.
            temperature: Sampling temperature.
            max_tokens: Upper bound on generated tokens (Ollama num_predict).
            component: Which pipeline component is calling (for metrics).
            purpose: Purpose of the call (for metrics).

        Returns:
            The generated text response.

        Raises:
            OllamaConnectionError: Network connectivity issues.
            OllamaTimeoutError: Request timeout.
            OllamaModelError: Model loading/execution error.
            OllamaResponseError: Invalid or empty response.
        """
        resolved_model = self._resolve_model(model)
        effective_timeout = timeout or MODELS.GENERATOR_TIMEOUT
        start_time = time.time()
        request_id = request_id_var.get()
        success = False
        error_msg = None
        content = ""

        options: dict[str, Any] = {"temperature": temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        payload = {
            "model": resolved_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
            "options": options,
        }

        try:
            data = await self._post_json("/api/chat", payload, effective_timeout, resolved_model)

            content = data.get("message", {}).get("content", "")
            if not content:
                raise OllamaResponseError("Empty response from Ollama")

            success = True
            return content

        except OllamaError as e:
            error_msg = str(e)
            raise
        finally:
            duration_ms = (time.time() - start_time) * 1000

            if component and purpose:
                LLM_CALLS.labels(
                    model=resolved_model,
                    component=component,
                    purpose=purpose,
                ).observe(duration_ms / 1000)

            if request_id and component:
                audit_logger.log_llm_call(
                    request_id=request_id,
                    component=component,
                    model=resolved_model,
                    purpose=purpose or "text_generation",
                    prompt_tokens_approx=_approx_tokens(system + user),
                    response_tokens_approx=_approx_tokens(content),
                    duration_ms=duration_ms,
                    success=success,
                    error=error_msg,
                )

    @_RETRY_TRANSIENT
    async def embed(
        self,
        text: str,
        model: str | None = None,
        timeout: float | None = None,
    ) -> list[float]:
        """
        Generate an embedding for text.

        Args:
            text: Text to embed.
            model: Embedding model to use (defaults to config).
            timeout: Request timeout in seconds.

        Returns:
            List of floats representing the embedding vector.

        Raises:
            OllamaConnectionError: Network connectivity issues.
            OllamaTimeoutError: Request timeout.
            OllamaModelError: Model loading/execution error.
            OllamaResponseError: Invalid or empty embedding.
        """
        embed_model = model or MODELS.EMBEDDING_MODEL

        payload = {
            "model": embed_model,
            "prompt": text,
        }

        data = await self._post_json(
            "/api/embeddings",
            payload,
            timeout or MODELS.EMBEDDING_TIMEOUT,
            embed_model,
        )

        embedding = data.get("embedding", [])
        if not embedding:
            raise OllamaResponseError("Empty embedding from Ollama")

        return embedding

    async def health_check(self) -> bool:
        """
        Check if Ollama is reachable.

        Returns:
            True if Ollama is reachable, False otherwise.
        """
        try:
            client = await self._get_client()
            response = await client.get(f"{self.url}/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
