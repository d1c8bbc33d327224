"""Integration tests for the API endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from tests.utils.helpers import scripted_chat
from truelive_chat import server
from truelive_chat.errors import PersistenceError
from truelive_chat.server import app

SENDER = "+5511999990000"


@pytest.fixture
def client():
    """Create a test client. The lifespan is not entered, so no orchestrator exists."""
    return TestClient(app)


@pytest.fixture
def wired_client(monkeypatch, mock_orchestrator):
    """Test client whose endpoints talk to an orchestrator with a mocked Ollama."""
    monkeypatch.setattr(server, "orchestrator", mock_orchestrator)
    return TestClient(app)


class TestRootEndpoint:
    """Tests for / endpoint."""

    def test_root_returns_api_info(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "True Live Chat API"
        assert "version" in data

    def test_request_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Request-ID"]
        assert response.headers["X-Response-Time"].endswith("s")


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_uninitialized(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_healthy(self, wired_client):
        data = wired_client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["components"]["documents"] == 3

    def test_ollama_down(self, wired_client, mock_ollama_client):
        mock_ollama_client.health_check = AsyncMock(return_value=False)
        assert wired_client.get("/health").json()["status"] == "unhealthy"


class TestChatEndpoint:
    """Tests for /chat endpoint."""

    def test_requires_fields(self, client):
        assert client.post("/chat", json={}).status_code == 422
        assert client.post("/chat", json={"message": "Oi"}).status_code == 422

    def test_rejects_empty_message(self, client):
        response = client.post("/chat", json={"message": "", "sender": SENDER})
        assert response.status_code == 422

    def test_rejects_too_long_message(self, client):
        response = client.post("/chat", json={"message": "a" * 10000, "sender": SENDER})
        assert response.status_code == 422

    def test_service_not_initialized(self, client):
        response = client.post("/chat", json={"message": "Quem foi Golda Meir?", "sender": SENDER})
        assert response.status_code == 503

    def test_grounded_answer(self, wired_client, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat({"domain_gate": "true", "synthesizer": "Golda Meir liderou Israel."})
        )

        response = wired_client.post("/chat", json={"message": "Quem foi Golda Meir?", "sender": SENDER})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "answered"
        assert data["used_fallback"] is False
        assert data["documents_used"][0] == "golda"
        assert "Golda Meir liderou Israel." in data["response_text"]
        assert data["request_id"]

    def test_out_of_domain_uses_fallback(self, wired_client, mock_ollama_client):
        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat({"domain_gate": "false", "fallback": "Receita de bolo..."})
        )

        data = wired_client.post("/chat", json={"message": "Como fazer bolo?", "sender": SENDER}).json()

        assert data["status"] == "fallback"
        assert data["used_fallback"] is True
        assert data["documents_used"] == []
        assert data["sources_used"] == []

    def test_config_command_updates_settings(self, wired_client, mock_orchestrator, mock_ollama_client):
        response = wired_client.post("/chat", json={"message": "/config fontes on", "sender": SENDER})

        assert response.status_code == 200
        assert response.json()["status"] == "command"
        mock_ollama_client.chat_text.assert_not_called()

        mock_ollama_client.chat_text = AsyncMock(
            side_effect=scripted_chat({"domain_gate": "true", "synthesizer": "Golda Meir liderou Israel."})
        )
        data = wired_client.post("/chat", json={"message": "Quem foi Golda Meir?", "sender": SENDER}).json()

        assert "Jewish Virtual Library" in data["response_text"]
        assert data["sources_used"][0] == "Jewish Virtual Library"

    def test_config_command_storage_failure(self, wired_client, mock_orchestrator, monkeypatch):
        monkeypatch.setattr(
            mock_orchestrator.store,
            "update_settings",
            AsyncMock(side_effect=PersistenceError("disk full")),
        )

        response = wired_client.post("/chat", json={"message": "/config fontes on", "sender": SENDER})

        assert response.status_code == 500


class TestDocumentEndpoints:
    """Tests for /documents endpoints."""

    def test_add_document(self, wired_client, mock_orchestrator, mock_ollama_client):
        mock_ollama_client.embed = AsyncMock(return_value=[0.0, 0.6, 0.8])

        response = wired_client.post(
            "/documents",
            json={
                "id": "yom-kippur",
                "title": "Guerra do Yom Kipur",
                "content": "A Guerra do Yom Kipur começou em 6 de outubro de 1973.",
                "source": "Britannica",
            },
        )

        assert response.status_code == 201
        assert response.json() == {
            "id": "yom-kippur",
            "title": "Guerra do Yom Kipur",
            "source": "Britannica",
            "dimension": 3,
        }

    def test_add_document_missing_source(self, wired_client):
        response = wired_client.post(
            "/documents",
            json={"title": "Sem fonte", "content": "Texto", "source": "  "},
        )
        assert response.status_code == 422

    def test_add_document_wrong_dimension(self, wired_client, mock_ollama_client):
        mock_ollama_client.embed = AsyncMock(return_value=[0.1, 0.2])

        response = wired_client.post(
            "/documents",
            json={"title": "Curto", "content": "Texto", "source": "Britannica"},
        )

        assert response.status_code == 422

    def test_add_document_embedding_down(self, wired_client, mock_ollama_client_error, mock_orchestrator):
        mock_orchestrator.ollama_client = mock_ollama_client_error

        response = wired_client.post(
            "/documents",
            json={"title": "Título", "content": "Texto", "source": "Britannica"},
        )

        assert response.status_code == 503

    def test_refresh_in_memory(self, wired_client):
        response = wired_client.post("/documents/refresh")
        assert response.status_code == 200
        assert response.json() == {"documents": 3}


class TestMetricsEndpoint:
    """Tests for /metrics endpoint."""

    def test_metrics_exposed(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "truelive_" in response.text

    def test_metrics_disabled(self, client, monkeypatch):
        monkeypatch.setattr(server, "SERVER", MagicMock(METRICS_ENABLED=False))
        assert client.get("/metrics").status_code == 404
