"""Tests for the FastAPI application helpers."""

from __future__ import annotations

from pathlib import Path
from typing import List

from fastapi.testclient import TestClient

from omegacodex.api.app import AppDependencies, create_app
from omegacodex.config import Settings
from omegacodex.errors import NotFoundError, RemoteCallError
from omegacodex.models import Embedding, Message


class StubIngestor:
    def __init__(self) -> None:
        self.paths: list[Path] = []

    def ingest(self, path: Path) -> List[Embedding]:
        self.paths.append(path)
        return [Embedding(id=1, vector=(1.0,), source_text="a"), Embedding(id=2, vector=(0.0,), source_text="b")]


class StubConversation:
    def __init__(self, error: Exception | None = None) -> None:
        self._error = error
        self._messages: list[Message] = [Message("developer", "directives")]

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def get_response(self, query: str) -> str:
        self._messages.append(Message("user", query))
        if self._error is not None:
            raise self._error
        self._messages.append(Message("assistant", f"echo: {query}"))
        return f"echo: {query}"


def create_test_client(conversation: StubConversation | None = None, ingestor: StubIngestor | None = None) -> TestClient:
    deps = AppDependencies(ingestor=ingestor or StubIngestor(), conversation=conversation or StubConversation())
    app = create_app(settings=Settings(environment="test"), dependencies=deps)
    return TestClient(app)


def test_healthz_reports_environment() -> None:
    response = create_test_client().get("/healthz")
    assert response.status_code == 200
    assert response.json()["environment"] == "test"
    assert "X-Correlation-ID" in response.headers


def test_query_returns_reply_and_message_count() -> None:
    response = create_test_client().post("/query", json={"query": "What?"})
    assert response.status_code == 200, response.text
    assert response.json() == {"reply": "echo: What?", "message_count": 3}


def test_empty_query_is_rejected() -> None:
    response = create_test_client().post("/query", json={"query": ""})
    assert response.status_code == 422


def test_missing_reply_maps_to_not_found() -> None:
    client = create_test_client(StubConversation(NotFoundError("Failed to find response message:\n[]")))
    response = client.post("/query", json={"query": "What?"}, headers={"X-Request-ID": "req-1"})
    assert response.status_code == 404
    assert response.json() == {"detail": "Failed to find response message:\n[]", "correlation_id": "req-1"}


def test_remote_failure_maps_to_bad_gateway() -> None:
    client = create_test_client(StubConversation(RemoteCallError("Response API Call", 500)))
    response = client.post("/query", json={"query": "What?"})
    assert response.status_code == 502
    assert response.json()["detail"] == "Response API Call, Error Returned, Status Code: 500"


def test_validation_failure_maps_to_bad_request() -> None:
    client = create_test_client(StubConversation(ValueError("Input length must not be greater than 20,000.")))
    response = client.post("/query", json={"query": "What?"})
    assert response.status_code == 400


def test_ingest_document(tmp_path: Path) -> None:
    document = tmp_path / "readme.md"
    document.write_text("# Readme\n", encoding="utf-8")
    ingestor = StubIngestor()

    response = create_test_client(ingestor=ingestor).post("/documents", json={"path": str(document)})

    assert response.status_code == 201, response.text
    assert response.json() == {"path": str(document), "chunk_count": 2, "chunk_ids": [1, 2]}
    assert ingestor.paths == [document]


def test_ingest_missing_document(tmp_path: Path) -> None:
    response = create_test_client().post("/documents", json={"path": str(tmp_path / "absent.md")})
    assert response.status_code == 404


def test_metrics_endpoint_exposes_pipeline_metrics() -> None:
    response = create_test_client().get("/metrics")
    assert response.status_code == 200
    assert "omegacodex_" in response.text
