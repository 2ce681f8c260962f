"""Embedding sources computing vectors for text missing from the cache."""

from __future__ import annotations

import hashlib
import math
import re
from dataclasses import dataclass
from typing import Any, Protocol, Tuple

from omegacodex.errors import MalformedResponseError, pretty_dump
from omegacodex.metrics.observability import PipelineMetrics, get_logger
from omegacodex.remote.openai import OpenAIApiCaller

_TOKEN_RE = re.compile(r"\w+")

EMBEDDING_TASK_NAME = "Embedding API Call"


@dataclass(frozen=True)
class EmbeddingSourceConfig:
    """Configuration for the remote embedding source."""

    endpoint: str = "https://api.openai.com/v1/embeddings"
    model: str = "text-embedding-3-small"
    input_limit: int = 20_000


class EmbeddingSource(Protocol):
    """Protocol describing how vectors are computed."""

    def compute_vector(self, text: str) -> Tuple[float, ...]:
        """Return the embedding vector for ``text``."""


class OpenAIEmbeddingSource:
    """Computes vectors through the OpenAI embeddings endpoint."""

    def __init__(self, caller: OpenAIApiCaller, config: EmbeddingSourceConfig | None = None) -> None:
        if caller is None:
            raise ValueError("OpenAI API caller must not be None.")
        self._caller = caller
        self._config = config or EmbeddingSourceConfig()
        self._logger = get_logger("embeddings")

    def compute_vector(self, text: str) -> Tuple[float, ...]:
        if text is None:
            raise ValueError("Input must not be None.")
        if not text:
            raise ValueError("Input must not be empty.")
        if len(text) > self._config.input_limit:
            raise ValueError(
                f"Input length must not be greater than {self._config.input_limit:,}. "
                f"Actual Length: {len(text):,}"
            )

        response = self._caller.call(
            EMBEDDING_TASK_NAME,
            self._config.endpoint,
            {"model": self._config.model, "input": text},
            f"Input Length: {len(text):,}",
        )

        total_tokens = _int_field(response.get("usage"), "total_tokens")
        PipelineMetrics.observe_tokens(EMBEDDING_TASK_NAME, total=total_tokens)
        self._logger.info("embedding.usage", task=EMBEDDING_TASK_NAME, total_tokens=total_tokens)

        return _extract_vector(response)


class HashEmbeddingSource:
    """Deterministic token-hashing source used for offline runs and tests."""

    def __init__(self, dim: int = 1536) -> None:
        if dim <= 0:
            raise ValueError("Dimension must be positive.")
        self._dim = dim

    def compute_vector(self, text: str) -> Tuple[float, ...]:
        if text is None:
            raise ValueError("Input must not be None.")
        if not text:
            raise ValueError("Input must not be empty.")
        vector = [0.0] * self._dim
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
            vector[int.from_bytes(digest, "big") % self._dim] += 1.0
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return tuple(value / norm for value in vector)


def _int_field(node: Any, key: str) -> int:
    if not isinstance(node, dict):
        return 0
    value = node.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _extract_vector(response: dict[str, Any]) -> Tuple[float, ...]:
    data = response.get("data")
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise MalformedResponseError(f"Failed to find embedding data:\n{pretty_dump(response)}")
    values = data[0].get("embedding")
    if not isinstance(values, list) or not values:
        raise MalformedResponseError(f"Failed to find embedding vector:\n{pretty_dump(response)}")
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedResponseError(f"Embedding vector contains a non-numeric value:\n{pretty_dump(response)}")
    return tuple(float(value) for value in values)


__all__ = [
    "EMBEDDING_TASK_NAME",
    "EmbeddingSource",
    "EmbeddingSourceConfig",
    "HashEmbeddingSource",
    "OpenAIEmbeddingSource",
]
