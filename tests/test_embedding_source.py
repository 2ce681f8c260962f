from __future__ import annotations

import json

import httpx
import pytest

from omegacodex.embeddings import EmbeddingSourceConfig, OpenAIEmbeddingSource
from omegacodex.errors import MalformedResponseError, RemoteCallError
from omegacodex.remote import OpenAIApiCaller
from omegacodex.tasks import TaskRunner

ENDPOINT = "https://api.test/v1/embeddings"


def _source(handler, *, api_key: str | None = "sk-test", input_limit: int = 20_000) -> OpenAIEmbeddingSource:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    caller = OpenAIApiCaller(api_key, TaskRunner(0), client=client)
    return OpenAIEmbeddingSource(
        caller,
        EmbeddingSourceConfig(endpoint=ENDPOINT, model="text-embedding-3-small", input_limit=input_limit),
    )


def test_success_posts_model_and_input():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            json={"data": [{"embedding": [0.25, -0.5, 1]}], "usage": {"total_tokens": 3}},
        )

    vector = _source(handler).compute_vector("hello world")

    assert vector == (0.25, -0.5, 1.0)
    request = captured[0]
    assert str(request.url) == ENDPOINT
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert json.loads(request.content) == {"model": "text-embedding-3-small", "input": "hello world"}


def test_input_over_limit_is_rejected_without_request():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(ValueError) as excinfo:
        _source(handler).compute_vector("x" * 20_001)

    assert str(excinfo.value) == "Input length must not be greater than 20,000. Actual Length: 20,001"
    assert calls == []


def test_error_status_carries_server_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})

    with pytest.raises(RemoteCallError) as excinfo:
        _source(handler).compute_vector("hello")

    assert excinfo.value.status_code == 401
    assert str(excinfo.value) == (
        "Embedding API Call, Error Returned, Status Code: 401, Error Message: Incorrect API key provided"
    )


def test_error_status_without_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={})

    with pytest.raises(RemoteCallError) as excinfo:
        _source(handler).compute_vector("hello")

    assert str(excinfo.value) == "Embedding API Call, Error Returned, Status Code: 500"


def test_non_numeric_vector_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"embedding": [0.1, "oops"]}]})

    with pytest.raises(MalformedResponseError, match="non-numeric"):
        _source(handler).compute_vector("hello")


def test_missing_data_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"object": "list"})

    with pytest.raises(MalformedResponseError, match="Failed to find embedding data"):
        _source(handler).compute_vector("hello")


def test_invalid_json_body_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(MalformedResponseError, match="Failed to deserialize response"):
        _source(handler).compute_vector("hello")


def test_missing_api_key():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    with pytest.raises(ValueError, match="API key must be configured."):
        _source(handler, api_key=None).compute_vector("hello")
