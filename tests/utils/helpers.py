"""Test helper functions and utilities."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any


def scripted_chat(
    responses: dict[str, str | Exception],
    default: str = "Mock response content",
) -> Callable[..., Awaitable[str]]:
    """
    Build a chat_text side effect that answers per calling component.

    Args:
        responses: Map of component name (domain_gate, context_resolver,
            synthesizer, fallback) to a reply, or to an exception to raise.
        default: Reply for components not in the map.
    """

    async def _chat_text(*args: Any, **kwargs: Any) -> str:
        reply = responses.get(kwargs.get("component") or "", default)
        if isinstance(reply, Exception):
            raise reply
        return reply

    return _chat_text


def calls_by_component(mock_chat: Any) -> dict[str, list[Any]]:
    """Group the recorded chat_text calls of a mock by component."""
    grouped: dict[str, list[Any]] = {}
    for call in mock_chat.call_args_list:
        grouped.setdefault(call.kwargs.get("component"), []).append(call)
    return grouped


@dataclass
class OutcomeValidator:
    """Helper class to validate pipeline outcomes."""

    outcome: Any
    errors: list[str] = field(default_factory=list)

    def assert_answered(self) -> OutcomeValidator:
        """Assert a grounded answer was produced."""
        assert self.outcome.status.value == "answered", f"Expected answered, got {self.outcome.status}"
        assert not self.outcome.used_fallback
        return self

    def assert_fallback(self) -> OutcomeValidator:
        """Assert the fallback generator answered and no document is cited."""
        assert self.outcome.used_fallback, "Expected fallback"
        assert self.outcome.documents_used == ()
        assert self.outcome.sources_used == ()
        return self

    def assert_failed(self) -> OutcomeValidator:
        """Assert the turn ended with an apology."""
        assert self.outcome.status.value == "failed"
        assert not self.outcome.used_fallback
        assert self.outcome.documents_used == ()
        return self

    def assert_contains(self, text: str) -> OutcomeValidator:
        """Assert the response contains specific text."""
        assert text.lower() in self.outcome.response_text.lower(), f"Expected '{text}' in response"
        return self

    def assert_not_contains(self, text: str) -> OutcomeValidator:
        """Assert the response does not contain specific text."""
        assert text.lower() not in self.outcome.response_text.lower(), f"Unexpected '{text}' in response"
        return self
