"""Chroma-backed vector index keyed by embedding cache identifiers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

import chromadb
import numpy as np
from chromadb.api import ClientAPI

from omegacodex.errors import MalformedResponseError, ResourceCloseError, attach_secondary, pretty_dump
from omegacodex.metrics.observability import get_logger
from omegacodex.models import SearchResult
from omegacodex.tasks.runner import TaskRunner

DISTANCE_FUNCTION = "cosine"


def create_chroma_client(
    *,
    host: str | None = None,
    port: int | None = None,
    ssl: bool = False,
    persist_directory: str | Path | None = None,
) -> ClientAPI:
    """Build a Chroma client: remote when a host is set, else local persistent or ephemeral."""

    if host:
        return chromadb.HttpClient(host=host, port=port or 8000, ssl=ssl)
    if persist_directory is not None:
        return chromadb.PersistentClient(path=str(persist_directory))
    return chromadb.EphemeralClient()


class ChromaVectorIndex:
    """Upserts and searches fixed-dimension vectors in one Chroma collection.

    The adapter owns its client and releases it exactly once through
    :meth:`close`. The collection is ensured on construction; if that fails the
    client is closed before the error propagates.
    """

    def __init__(
        self,
        client: ClientAPI,
        task_runner: TaskRunner,
        *,
        collection_name: str = "omegacodex_chunks",
        dimension: int = 1536,
    ) -> None:
        if client is None:
            raise ValueError("Client must not be None.")
        if task_runner is None:
            raise ValueError("Task runner must not be None.")
        if not collection_name:
            raise ValueError("Collection name must not be empty.")
        if dimension <= 0:
            raise ValueError("Dimension must be positive.")
        self._client: ClientAPI | None = client
        self._runner = task_runner
        self._collection_name = collection_name
        self._dimension = dimension
        self._collection: Any = None
        self._logger = get_logger("index")

        try:
            self.ensure_collection()
        except Exception as init_error:
            try:
                self.close()
            except Exception as close_error:
                attach_secondary(init_error, close_error)
            raise

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def closed(self) -> bool:
        return self._client is None

    def ensure_collection(self) -> None:
        if self._collection is not None:
            return
        client = self._require_client()
        collection = self._runner.run(
            "Chroma - Check Collection Exists",
            lambda: self._find_collection(client),
        )
        if collection is None:
            collection = self._runner.run(
                "Chroma - Create Collection",
                lambda: client.create_collection(
                    name=self._collection_name,
                    metadata={"hnsw:space": DISTANCE_FUNCTION, "dimension": self._dimension},
                ),
            )
            self._logger.info(
                "collection.created", collection=self._collection_name, dimension=self._dimension
            )
        else:
            self._check_existing_dimension(collection.metadata or {})
        self._collection = collection

    def upsert(self, embedding_id: int, vector: Sequence[float]) -> None:
        values = self._validate_vector(vector)
        collection = self._require_collection()
        self._runner.run(
            "Chroma - Upsert Point",
            lambda: collection.upsert(ids=[str(embedding_id)], embeddings=[values]),
        )

    def search(self, vector: Sequence[float]) -> list[SearchResult]:
        values = self._validate_vector(vector)
        collection = self._require_collection()
        results = self._runner.run(
            "Chroma - Search",
            lambda: collection.query(query_embeddings=[values], include=["distances"]),
        )
        if results is None:
            raise MalformedResponseError("Chroma - Search, None Returned")
        return self._to_search_results(results)

    def count(self) -> int:
        return int(self._require_collection().count())

    def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        self._collection = None
        close = getattr(client, "close", None)
        if not callable(close):
            return
        try:
            close()
        except Exception as exc:
            raise ResourceCloseError("Failed to close Chroma client.") from exc

    def __enter__(self) -> "ChromaVectorIndex":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            self.close()
            return
        try:
            self.close()
        except Exception as close_error:
            attach_secondary(exc, close_error)

    def _find_collection(self, client: ClientAPI) -> Any:
        names = {getattr(item, "name", item) for item in client.list_collections()}
        if self._collection_name not in names:
            return None
        return client.get_collection(name=self._collection_name)

    def _check_existing_dimension(self, metadata: Mapping[str, Any]) -> None:
        recorded = metadata.get("dimension")
        if recorded is not None and int(recorded) != self._dimension:
            raise ValueError(
                f"Collection {self._collection_name} has dimension {int(recorded):,}, "
                f"expected {self._dimension:,}."
            )

    def _validate_vector(self, vector: Sequence[float]) -> np.ndarray:
        if vector is None:
            raise ValueError("Vector must not be None.")
        if len(vector) != self._dimension:
            raise ValueError(f"Vector length must be {self._dimension:,}. Actual Length: {len(vector):,}")
        return np.asarray(vector, dtype=np.float32)

    def _require_client(self) -> ClientAPI:
        if self._client is None:
            raise ResourceCloseError("Vector index is closed.")
        return self._client

    def _require_collection(self) -> Any:
        self._require_client()
        if self._collection is None:
            raise ValueError("Collection must be ensured before use.")
        return self._collection

    @staticmethod
    def _to_search_results(results: Mapping[str, Any]) -> list[SearchResult]:
        ids = _first(results.get("ids"))
        distances = _first(results.get("distances"))
        if ids is None or distances is None or len(ids) != len(distances):
            raise MalformedResponseError(f"Chroma - Search, Unexpected Result:\n{pretty_dump(results)}")
        hits: list[SearchResult] = []
        for point_id, distance in zip(ids, distances):
            try:
                hits.append(SearchResult(id=int(point_id), score=1.0 - float(distance)))
            except (TypeError, ValueError) as exc:
                raise MalformedResponseError(
                    f"Chroma - Search, Unexpected Result:\n{pretty_dump(results)}"
                ) from exc
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits


def _first(value: object) -> list | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value[0]) if value else []
    return None


__all__ = ["ChromaVectorIndex", "DISTANCE_FUNCTION", "create_chroma_client"]
