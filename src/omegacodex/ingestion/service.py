"""Document ingestion service for Omega Codex."""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, Protocol, Sequence

from omegacodex.embeddings.service import EmbeddingService
from omegacodex.index.store import ChromaVectorIndex
from omegacodex.metrics.observability import PipelineMetrics, get_logger
from omegacodex.models import Embedding


class DocumentSplitter(Protocol):
    """Protocol for anything that turns a document into text chunks."""

    def split(self, path: Path) -> Sequence[str]:
        """Return the ordered chunks of the document at ``path``."""


class DocumentIngestor:
    """Splits documents, embeds each chunk and indexes it under its cache id."""

    _logger = get_logger("ingestion")

    def __init__(
        self,
        splitter: DocumentSplitter,
        embedding_service: EmbeddingService,
        index: ChromaVectorIndex,
    ) -> None:
        self._splitter = splitter
        self._embedding_service = embedding_service
        self._index = index

    def ingest(self, path: Path) -> List[Embedding]:
        start = time.perf_counter()
        chunks = self._splitter.split(Path(path))
        embeddings: List[Embedding] = []
        for chunk in chunks:
            embedding = self._embedding_service.get_embedding(chunk)
            self._index.upsert(embedding.id, embedding.vector)
            embeddings.append(embedding)

        duration = time.perf_counter() - start
        PipelineMetrics.observe_ingestion(duration, len(embeddings))
        self._logger.info(
            "ingestion.complete",
            path=str(path),
            chunk_count=len(embeddings),
            duration_seconds=duration,
        )
        return embeddings
