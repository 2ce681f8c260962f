"""Cache-aside access to embeddings."""

from __future__ import annotations

from omegacodex.embeddings.cache import EmbeddingCache
from omegacodex.embeddings.source import EmbeddingSource
from omegacodex.errors import DuplicateInputError
from omegacodex.metrics.observability import PipelineMetrics, get_logger
from omegacodex.models import Embedding


class EmbeddingService:
    """Returns cached embeddings, computing and storing them on a miss.

    Callers that miss on the same text concurrently each compute a vector;
    the first store wins and the others return its record.
    """

    def __init__(self, cache: EmbeddingCache, source: EmbeddingSource) -> None:
        if cache is None:
            raise ValueError("Embedding cache must not be None.")
        if source is None:
            raise ValueError("Embedding source must not be None.")
        self._cache = cache
        self._source = source
        self._logger = get_logger("embeddings")

    def get_embedding(self, text: str) -> Embedding:
        cached = self._cache.lookup(text)
        if cached is not None:
            PipelineMetrics.observe_cache(hit=True)
            self._logger.info("embedding.cache_hit", id=cached.id)
            return cached

        PipelineMetrics.observe_cache(hit=False)
        self._logger.info("embedding.cache_miss", input_length=len(text))
        vector = tuple(self._source.compute_vector(text))
        try:
            embedding_id = self._cache.store(text, vector)
        except DuplicateInputError:
            # Another caller stored the same text after our lookup; its record wins.
            winner = self._cache.lookup(text)
            if winner is None:
                raise
            self._logger.info("embedding.store_race", id=winner.id)
            return winner
        return Embedding(id=embedding_id, vector=vector, source_text=text)


__all__ = ["EmbeddingService"]
