"""Tests for the HTTP service (ideaforge.server) using FastAPI's TestClient.

Tests cover:
- /health
- /api/generate-code: success, 400 validation, 502 upstream failure
- /api/generate-full-code: streamed body, 400, 502 before the first fragment,
  abnormal termination after it
- /api/ask-code-question and the wizard endpoints
- Unexpected errors answered with 500
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from ideaforge import __version__
from ideaforge.config import Config
from ideaforge.errors import StreamAbortedError, UpstreamUnavailableError
from ideaforge.llm_client import GenerationResponse
from ideaforge.server import create_app

STACK = {"name": "Flask", "framework": "Flask"}


def _client(fake) -> TestClient:
    return TestClient(create_app(config=Config(), client=fake))


class TestHealth:
    @pytest.mark.integration
    def test_health(self, fake_client):
        response = _client(fake_client).get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "ideaforge",
            "version": __version__,
            "model": "gpt-4o",
        }


class TestGenerateCode:
    @pytest.mark.integration
    def test_returns_bundle(self, fake_client, sample_payload):
        response = _client(fake_client).post("/api/generate-code", json=sample_payload)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {
            "project_structure",
            "dependencies_configuration",
            "setup_instructions",
            "implementation_steps",
            "main_project_files",
            "additional_features_best_practices",
            "readme_content",
        }
        assert body["setup_instructions"] == {"instructions": ["1. npm install", "2. npm run dev"]}
        assert body["main_project_files"]["src/index.ts"] == "console.log('hi');"

    @pytest.mark.integration
    def test_validation_error(self, fake_client, sample_payload):
        sample_payload["features"] = []
        response = _client(fake_client).post("/api/generate-code", json=sample_payload)

        assert response.status_code == 400
        assert response.json() == {"error": "At least one feature is required"}
        assert fake_client.calls == []

    @pytest.mark.integration
    def test_body_not_json(self, fake_client):
        response = _client(fake_client).post(
            "/api/generate-code",
            content=b"{nope",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be a JSON object"}

    @pytest.mark.integration
    def test_upstream_failure(self, make_client, sample_payload):
        fake = make_client(
            responder=lambda p, o: GenerationResponse(success=False, error="HTTP 401")
        )
        response = _client(fake).post("/api/generate-code", json=sample_payload)

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "Failed to generate code"
        assert "HTTP 401" in body["details"]

    @pytest.mark.integration
    def test_unexpected_error(self, make_client, sample_payload):
        def responder(prompt, options):
            raise RuntimeError("kaboom")

        response = _client(make_client(responder=responder)).post(
            "/api/generate-code", json=sample_payload
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "details": "kaboom"}


class TestGenerateFullCode:
    @pytest.mark.integration
    def test_streams_plain_text(self, make_client, sample_payload):
        fake = make_client(fragments=["# Project\n", "src/", "index.ts"])
        response = _client(fake).post("/api/generate-full-code", json=sample_payload)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == "# Project\nsrc/index.ts"
        options = fake.stream_calls[0][1]
        assert options.max_tokens == 16384

    @pytest.mark.integration
    def test_validation_error(self, make_client, sample_payload):
        del sample_payload["stack"]
        fake = make_client(fragments=["x"])
        response = _client(fake).post("/api/generate-full-code", json=sample_payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Tech stack with name is required"}
        assert fake.stream_calls == []

    @pytest.mark.integration
    def test_failure_before_first_fragment(self, make_client, sample_payload):
        fake = make_client(stream_error=UpstreamUnavailableError("HTTP 401: bad key"))
        response = _client(fake).post("/api/generate-full-code", json=sample_payload)

        assert response.status_code == 502
        assert response.json()["error"] == "Failed to generate code"
        assert "bad key" in response.json()["details"]

    @pytest.mark.integration
    def test_failure_after_fragments_aborts_response(self, make_client, sample_payload):
        fake = make_client(fragments=["a", "b"], stream_error=RuntimeError("connection reset"))

        with patch("ideaforge.server.print_error") as mock_error:
            with pytest.raises(Exception) as exc_info:
                _client(fake).post("/api/generate-full-code", json=sample_payload)

        error = exc_info.value
        while isinstance(error, BaseExceptionGroup):
            error = error.exceptions[0]
        assert isinstance(error, StreamAbortedError)
        assert error.fragments_relayed == 2
        assert fake.stream_closed is True
        assert "connection reset" in mock_error.call_args[0][0]


class TestAskCodeQuestion:
    @pytest.mark.integration
    def test_answer(self, make_client):
        fake = make_client(responder=lambda p, o: "Run `npm test`.")
        response = _client(fake).post(
            "/api/ask-code-question",
            json={"question": "How do I test?", "codeContext": {"readme_content": "# R"}},
        )
        assert response.status_code == 200
        assert response.json() == {"answer": "Run `npm test`."}

    @pytest.mark.integration
    def test_missing_context(self, fake_client):
        response = _client(fake_client).post(
            "/api/ask-code-question", json={"question": "How do I test?"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Missing question or code context"}

    @pytest.mark.integration
    def test_upstream_failure(self, make_client):
        fake = make_client(
            responder=lambda p, o: GenerationResponse(success=False, error="timed out")
        )
        response = _client(fake).post(
            "/api/ask-code-question",
            json={"question": "Why?", "codeContext": {"a": 1}},
        )
        assert response.status_code == 502
        assert response.json()["error"] == "Failed to answer question"


class TestWizardEndpoints:
    @pytest.mark.integration
    def test_generate_stack(self, make_client):
        fake = make_client(responder=lambda p, o: json.dumps({"stacks": [{"name": "MERN"}]}))
        response = _client(fake).post("/api/generate-stack", json={"projectIdea": "A shop"})
        assert response.status_code == 200
        assert response.json()["stacks"][0]["name"] == "MERN"

    @pytest.mark.integration
    def test_generate_features(self, make_client):
        fake = make_client(
            responder=lambda p, o: json.dumps({"features": [{"title": "Cart", "category": "core"}]})
        )
        response = _client(fake).post(
            "/api/generate-features", json={"projectIdea": "A shop", "stack": STACK}
        )
        assert response.status_code == 200
        assert response.json()["features"][0]["category"] == "core"

    @pytest.mark.integration
    def test_generate_steps_requires_feature(self, fake_client):
        response = _client(fake_client).post(
            "/api/generate-steps", json={"projectIdea": "A shop", "stack": STACK}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Feature with title is required"}

    @pytest.mark.integration
    def test_generate_subtasks(self, make_client):
        fake = make_client(responder=lambda p, o: json.dumps({"subtasks": [{"title": "Schema"}]}))
        response = _client(fake).post(
            "/api/generate-subtasks",
            json={
                "projectIdea": "A shop",
                "stack": STACK,
                "task": {"title": "Orders", "description": "Store orders"},
            },
        )
        assert response.status_code == 200
        assert response.json()["subtasks"][0]["info"] == "No additional information available"

    @pytest.mark.integration
    def test_malformed_suggestions(self, make_client):
        fake = make_client(responder=lambda p, o: "not json at all")
        response = _client(fake).post("/api/generate-stack", json={"projectIdea": "A shop"})
        assert response.status_code == 502
        assert response.json()["error"] == "Failed to generate tech stacks"
