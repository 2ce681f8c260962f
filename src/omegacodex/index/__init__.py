"""Vector similarity index."""

from .store import ChromaVectorIndex, create_chroma_client

__all__ = ["ChromaVectorIndex", "create_chroma_client"]
