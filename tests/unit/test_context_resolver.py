"""Unit tests for the context resolver."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tests.utils.factories import TurnFactory
from truelive_chat.pipeline.context_resolver import ContextResolver, has_anaphora


class TestHasAnaphora:
    """Tests for anaphoric marker detection."""

    @pytest.mark.parametrize(
        "query",
        [
            "Quando ela nasceu?",
            "Qual foi o partido dele?",
            "Onde ele estudou?",
            "¿Cuándo nació ella?",
            "¿Cuál fue su partido?",
            "When was she born?",
            "What was his party?",
            "Where did they live?",
        ],
    )
    def test_detects_markers(self, query):
        assert has_anaphora(query)

    @pytest.mark.parametrize(
        "query",
        [
            "Quem foi Golda Meir?",
            "O que é o Shabat?",
            "Quando foi a Guerra dos Seis Dias?",
            "Who was David Ben-Gurion?",
        ],
    )
    def test_self_contained_questions(self, query):
        assert not has_anaphora(query)

    def test_ignores_substrings(self):
        """Markers match whole words only."""
        assert not has_anaphora("Qual a capital de Israel?")  # "el" inside Israel

    def test_case_insensitive(self):
        assert has_anaphora("ELA nasceu onde?")


class TestContextResolver:
    """Tests for ContextResolver."""

    @pytest.mark.asyncio
    async def test_identity_without_history(self, context_resolver, mock_ollama_client):
        query = "Quando ela nasceu?"

        assert await context_resolver.resolve_reference(query, []) == query
        mock_ollama_client.chat_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_identity_without_markers(self, context_resolver, mock_ollama_client):
        query = "Quem foi David Ben-Gurion?"

        result = await context_resolver.resolve_reference(query, [TurnFactory.create()])

        assert result == query
        mock_ollama_client.chat_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_rewrites_pronoun(self, context_resolver, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(return_value="Quando Golda Meir nasceu?")

        result = await context_resolver.resolve_reference("Quando ela nasceu?", [TurnFactory.create()])

        assert result == "Quando Golda Meir nasceu?"
        kwargs = mock_ollama_client.chat_text.call_args.kwargs
        assert "Quem foi Golda Meir?" in kwargs["user"]
        assert kwargs["component"] == "context_resolver"

    @pytest.mark.asyncio
    async def test_strips_quotes_and_labels(self, context_resolver, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(
            return_value='Rewritten question: "Quando Golda Meir nasceu?"\nExplanation: ...'
        )

        result = await context_resolver.resolve_reference("Quando ela nasceu?", [TurnFactory.create()])

        assert result == "Quando Golda Meir nasceu?"

    @pytest.mark.asyncio
    async def test_uses_only_last_turns(self, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(return_value="Quando Golda Meir nasceu?")
        resolver = ContextResolver(client=mock_ollama_client, window=2)
        turns = [
            TurnFactory.create(question="Pergunta antiga 1"),
            TurnFactory.create(question="Pergunta antiga 2"),
            TurnFactory.create(question="Pergunta recente"),
        ]

        await resolver.resolve_reference("Quando ela nasceu?", turns)

        user_message = mock_ollama_client.chat_text.call_args.kwargs["user"]
        assert "Pergunta antiga 1" not in user_message
        assert "Pergunta antiga 2" in user_message
        assert "Pergunta recente" in user_message

    @pytest.mark.asyncio
    async def test_zero_window_skips_rewrite(self, mock_ollama_client):
        resolver = ContextResolver(client=mock_ollama_client, window=0)
        turns = [TurnFactory.create()]

        assert not resolver.needs_resolution("Quando ela nasceu?", turns)
        assert await resolver.resolve_reference("Quando ela nasceu?", turns) == "Quando ela nasceu?"
        mock_ollama_client.chat_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_returns_original_on_error(self, mock_ollama_client_error):
        resolver = ContextResolver(client=mock_ollama_client_error)
        query = "Quando ela nasceu?"

        assert await resolver.resolve_reference(query, [TurnFactory.create()]) == query

    @pytest.mark.asyncio
    async def test_returns_original_on_timeout(self, mock_ollama_client):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)
            return "Quando Golda Meir nasceu?"

        mock_ollama_client.chat_text = AsyncMock(side_effect=slow)
        resolver = ContextResolver(client=mock_ollama_client, timeout=0.05)
        query = "Quando ela nasceu?"

        assert await resolver.resolve_reference(query, [TurnFactory.create()]) == query

    @pytest.mark.asyncio
    async def test_returns_original_on_blank_output(self, context_resolver, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(return_value='  ""  \n')
        query = "Quando ela nasceu?"

        assert await context_resolver.resolve_reference(query, [TurnFactory.create()]) == query

    @pytest.mark.asyncio
    async def test_returns_original_on_runaway_output(self, context_resolver, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(return_value="x" * 1000)
        query = "Quando ela nasceu?"

        assert await context_resolver.resolve_reference(query, [TurnFactory.create()]) == query
