"""
End-to-end harness tests for the True Live chat pipeline.

These tests run whole conversations through handle_message with a
file-backed document collection and mocked Ollama responses, from
question to stored history.
"""

from unittest.mock import AsyncMock

import pytest

from tests.utils.factories import DIMENSION
from tests.utils.helpers import OutcomeValidator, calls_by_component, scripted_chat
from truelive_chat.config import MESSAGES
from truelive_chat.conversation.commands import apply_config_command
from truelive_chat.conversation.store import ConversationStore
from truelive_chat.pipeline.orchestrator import TurnOrchestrator, TurnState
from truelive_chat.pipeline.retriever import SemanticRetriever

SENDER = "+5511999990000"

# Query embeddings keyed by a word the query must contain
TOPIC_VECTORS = {
    "golda": [1.0, 0.0, 0.0],
    "guerra": [0.0, 1.0, 0.0],
    "shabat": [0.0, 0.0, 1.0],
}
OFF_AXIS = [0.2, 0.2, -0.96]


async def _embed_by_topic(text, **kwargs):
    lowered = text.lower()
    for word, vector in TOPIC_VECTORS.items():
        if word in lowered:
            return vector
    return OFF_AXIS


class TestE2EHarness:
    """End-to-end harness tests for realistic user scenarios."""

    @pytest.fixture
    def e2e_orchestrator(self, mock_ollama_client, file_repository):
        """Orchestrator over the file-backed sample collection."""
        mock_ollama_client.embed = AsyncMock(side_effect=_embed_by_topic)
        return TurnOrchestrator(
            repository=file_repository,
            store=ConversationStore(max_turns=10),
            ollama_client=mock_ollama_client,
            retriever=SemanticRetriever(
                repository=file_repository,
                client=mock_ollama_client,
                dimension=DIMENSION,
                top_k=3,
                threshold=0.3,
            ),
        )

    @pytest.mark.asyncio
    async def test_scenario_grounded_answer(self, e2e_orchestrator, mock_ollama_client):
        """A domain question with a matching document is answered from it."""
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat(
                {"domain_gate": "true", "synthesizer": "Golda Meir foi primeira-ministra de Israel de 1969 a 1974."}
            )
        )

        outcome = await e2e_orchestrator.handle_message(SENDER, "Quem foi Golda Meir?")

        OutcomeValidator(outcome).assert_answered().assert_contains("1969")
        assert outcome.documents_used[0] == "golda"
        assert outcome.states[-1] == TurnState.PERSISTED

        synth_call = calls_by_component(mock_ollama_client.chat_text)["synthesizer"][0]
        assert "Golda Meir nasceu em Kiev" in synth_call.kwargs["system"]
        assert "Source: Jewish Virtual Library" in synth_call.kwargs["system"]

        history = await e2e_orchestrator.store.get_recent_turns(SENDER)
        assert len(history) == 1
        assert history[0].document_ids[0] == "golda"

    @pytest.mark.asyncio
    async def test_scenario_out_of_domain(self, e2e_orchestrator, mock_ollama_client):
        """An off-topic question skips retrieval and goes to the fallback generator."""
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat(
                {"domain_gate": "false", "fallback": "Para um bolo simples, misture farinha, ovos e açúcar."}
            )
        )

        outcome = await e2e_orchestrator.handle_message(SENDER, "Como faço um bolo de cenoura?")

        OutcomeValidator(outcome).assert_fallback().assert_contains("farinha")
        mock_ollama_client.embed.assert_not_called()
        assert TurnState.IN_DOMAIN_PATH not in outcome.states
        assert set(calls_by_component(mock_ollama_client.chat_text)) == {"domain_gate", "fallback"}

    @pytest.mark.asyncio
    async def test_scenario_pronoun_follow_up(self, e2e_orchestrator, mock_ollama_client):
        """A follow-up leaning on the previous turn is rewritten before retrieval."""
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat(
                {"domain_gate": "true", "synthesizer": "Golda Meir foi primeira-ministra de Israel."}
            )
        )
        await e2e_orchestrator.handle_message(SENDER, "Quem foi Golda Meir?")

        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat(
                {
                    "domain_gate": "true",
                    "context_resolver": "Quando Golda Meir nasceu?",
                    "synthesizer": "Golda Meir nasceu em 1898, em Kiev.",
                }
            )
        )
        mock_ollama_client.embed.reset_mock()

        outcome = await e2e_orchestrator.handle_message(SENDER, "Quando ela nasceu?")

        OutcomeValidator(outcome).assert_answered().assert_contains("1898")
        assert outcome.documents_used[0] == "golda"
        assert mock_ollama_client.embed.call_args.args[0] == "Quando Golda Meir nasceu?"

        calls = calls_by_component(mock_ollama_client.chat_text)
        assert "Quem foi Golda Meir?" in calls["context_resolver"][0].kwargs["user"]
        assert "Quem foi Golda Meir?" in calls["domain_gate"][0].kwargs["user"]

        history = await e2e_orchestrator.store.get_recent_turns(SENDER)
        assert [turn.question for turn in history] == ["Quem foi Golda Meir?", "Quando ela nasceu?"]

    @pytest.mark.asyncio
    async def test_scenario_below_threshold(self, e2e_orchestrator, mock_ollama_client):
        """A domain question with no document above the threshold falls back."""
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat(
                {"domain_gate": "true", "fallback": "O Knesset é o parlamento de Israel."}
            )
        )

        outcome = await e2e_orchestrator.handle_message(SENDER, "O que é o Knesset?")

        OutcomeValidator(outcome).assert_fallback().assert_contains("parlamento")
        mock_ollama_client.embed.assert_awaited_once()
        assert TurnState.IN_DOMAIN_PATH in outcome.states
        assert "synthesizer" not in calls_by_component(mock_ollama_client.chat_text)

        history = await e2e_orchestrator.store.get_recent_turns(SENDER)
        assert history[0].document_ids == ()

    @pytest.mark.asyncio
    async def test_synthesis_failure_is_not_remembered(self, e2e_orchestrator, mock_ollama_client):
        """A failed synthesis apologizes, skips the fallback and leaves history untouched."""
        from truelive_chat.models.ollama_client import OllamaConnectionError

        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat(
                {"domain_gate": "true", "synthesizer": OllamaConnectionError("Connection refused")}
            )
        )

        outcome = await e2e_orchestrator.handle_message(SENDER, "O que é o Shabat?")

        OutcomeValidator(outcome).assert_failed()
        assert outcome.response_text == MESSAGES.SYNTHESIS_APOLOGY
        assert "fallback" not in calls_by_component(mock_ollama_client.chat_text)
        assert await e2e_orchestrator.store.get_recent_turns(SENDER) == []

    @pytest.mark.asyncio
    async def test_sources_footer_after_config(self, e2e_orchestrator, mock_ollama_client):
        """Enabling sources adds a footer that names the grounding documents."""
        await apply_config_command(e2e_orchestrator.store, SENDER, "/config fontes on")
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat({"domain_gate": "true", "synthesizer": "A guerra durou seis dias."})
        )

        outcome = await e2e_orchestrator.handle_message(SENDER, "Quando foi a Guerra dos Seis Dias?")

        OutcomeValidator(outcome).assert_answered().assert_contains("Britannica")
        assert outcome.sources_used[0] == "Britannica"

    @pytest.mark.asyncio
    async def test_fallback_never_cites_documents(self, e2e_orchestrator, mock_ollama_client):
        """Across mixed turns, fallback outcomes never carry document ids."""
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat({"domain_gate": "true", "synthesizer": "Resposta fundamentada."})
        )
        questions = [
            "Quem foi Golda Meir?",
            "O que é o Knesset?",
            "O que é o Shabat?",
            "Fale sobre a guerra de 1967",
        ]

        outcomes = [await e2e_orchestrator.handle_message(SENDER, q) for q in questions]

        for outcome in outcomes:
            if outcome.used_fallback:
                assert outcome.documents_used == ()
            else:
                assert outcome.documents_used
        assert [o.used_fallback for o in outcomes] == [False, True, False, False]
