"""JSON-over-HTTP caller for the OpenAI endpoints."""

from __future__ import annotations

import json
from typing import Any, Mapping

import httpx

from omegacodex.errors import MalformedResponseError, OmegaCodexError, RemoteCallError
from omegacodex.metrics.observability import get_logger
from omegacodex.tasks.runner import TaskRunner


class OpenAIApiCaller:
    """Posts JSON payloads through a rate-limited runner and decodes the reply.

    Both the embedding source and the conversation service go through a
    single caller, so they share one rate domain.
    """

    def __init__(
        self,
        api_key: str | None,
        task_runner: TaskRunner,
        *,
        client: httpx.Client | None = None,
        timeout: float | None = None,
        debug: bool = False,
    ) -> None:
        if task_runner is None:
            raise ValueError("Task runner must not be None.")
        self._api_key = api_key
        self._runner = task_runner
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._debug = debug
        self._logger = get_logger("remote")

    def call(
        self,
        task_name: str,
        endpoint: str,
        payload: Mapping[str, Any],
        start_detail: str | None = None,
    ) -> dict[str, Any]:
        if task_name is None:
            raise ValueError("Task name must not be None.")
        if endpoint is None:
            raise ValueError("API endpoint must not be None.")
        if payload is None:
            raise ValueError("Request payload must not be None.")
        if not self._api_key:
            raise ValueError("API key must be configured.")

        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise OmegaCodexError(f"{task_name}, Failed to serialize request:\n{payload!r}") from exc
        if self._debug:
            self._logger.debug("request.body", task=task_name, body=body)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        response = self._runner.run(
            task_name,
            lambda: self._client.post(endpoint, content=body, headers=headers),
            start_detail,
        )
        if self._debug:
            self._logger.debug(
                "response.body", task=task_name, status_code=response.status_code, body=response.text
            )

        try:
            document = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"{task_name}, Failed to deserialize response. "
                f"Status Code: {response.status_code}, Response:\n{response.text}"
            ) from exc

        if response.status_code != 200:
            raise RemoteCallError(task_name, response.status_code, _error_message(document))
        if not isinstance(document, dict):
            raise MalformedResponseError(f"{task_name}, Expected a JSON object, Response:\n{response.text}")
        return document

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "OpenAIApiCaller":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _error_message(document: Any) -> str | None:
    if not isinstance(document, dict):
        return None
    error = document.get("error")
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    return str(message) if message else None


__all__ = ["OpenAIApiCaller"]
