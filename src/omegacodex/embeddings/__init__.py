"""Embedding services."""

from .cache import EmbeddingCache
from .service import EmbeddingService
from .source import EmbeddingSource, EmbeddingSourceConfig, HashEmbeddingSource, OpenAIEmbeddingSource

__all__ = [
    "EmbeddingCache",
    "EmbeddingService",
    "EmbeddingSource",
    "EmbeddingSourceConfig",
    "HashEmbeddingSource",
    "OpenAIEmbeddingSource",
]
