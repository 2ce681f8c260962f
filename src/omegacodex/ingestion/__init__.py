"""Document ingestion pipeline."""

from .merge import merge_fragments
from .service import DocumentIngestor, DocumentSplitter
from .splitter import MarkdownSplitter, ThreadedReader

__all__ = [
    "DocumentIngestor",
    "DocumentSplitter",
    "MarkdownSplitter",
    "ThreadedReader",
    "merge_fragments",
]
