"""Wiring of the pipeline components from settings."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from omegacodex.config import Settings, get_settings
from omegacodex.embeddings import (
    EmbeddingCache,
    EmbeddingService,
    EmbeddingSource,
    EmbeddingSourceConfig,
    HashEmbeddingSource,
    OpenAIEmbeddingSource,
)
from omegacodex.embeddings.cache import connect
from omegacodex.errors import OmegaCodexError, ResourceCloseError, attach_secondary, raise_aggregated
from omegacodex.index import ChromaVectorIndex, create_chroma_client
from omegacodex.ingestion import DocumentIngestor, MarkdownSplitter
from omegacodex.remote import OpenAIApiCaller
from omegacodex.services import ConversationConfig, ConversationService
from omegacodex.tasks import TaskRunner


@dataclass
class Runtime:
    """Live set of components sharing one cache connection and one rate domain."""

    connection: sqlite3.Connection
    caller: OpenAIApiCaller
    cache: EmbeddingCache
    embedding_service: EmbeddingService
    index: ChromaVectorIndex
    ingestor: DocumentIngestor
    conversation: ConversationService

    def close(self) -> None:
        errors: list[OmegaCodexError] = []
        closers = (
            ("conversation worker", self.conversation.close),
            ("vector index", self.index.close),
            ("API client", self.caller.close),
            ("database connection", self.connection.close),
        )
        for name, close in closers:
            try:
                close()
            except Exception as exc:
                error = ResourceCloseError(f"Exception occurred while closing {name}.")
                error.__cause__ = exc
                errors.append(error)
        raise_aggregated(errors, "Exceptions occurred while stopping.")

    def __enter__(self) -> "Runtime":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            self.close()
            return
        try:
            self.close()
        except Exception as close_error:
            attach_secondary(exc, close_error)


def build_embedding_source(settings: Settings, caller: OpenAIApiCaller) -> EmbeddingSource:
    if not settings.use_remote_embeddings:
        return HashEmbeddingSource(settings.embedding_dim)
    return OpenAIEmbeddingSource(
        caller,
        EmbeddingSourceConfig(
            endpoint=settings.embeddings_endpoint,
            model=settings.embedding_model,
            input_limit=settings.embedding_input_limit,
        ),
    )


def build_runtime(settings: Settings | None = None) -> Runtime:
    settings = settings or get_settings()
    runner = TaskRunner(settings.rate_limit_delay_ms)
    connection = connect(settings.cache_db_path)
    caller = OpenAIApiCaller(
        settings.api_key_value,
        runner,
        timeout=settings.http_timeout_seconds,
        debug=settings.debug_requests,
    )
    try:
        cache = EmbeddingCache(connection)
        embedding_service = EmbeddingService(cache, build_embedding_source(settings, caller))
        index = ChromaVectorIndex(
            create_chroma_client(
                host=settings.chroma_host,
                port=settings.chroma_port,
                ssl=settings.chroma_ssl,
                persist_directory=settings.chroma_persist_dir,
            ),
            runner,
            collection_name=settings.chroma_collection,
            dimension=settings.embedding_dim,
        )
    except Exception as init_error:
        for close in (caller.close, connection.close):
            try:
                close()
            except Exception as close_error:
                attach_secondary(init_error, close_error)
        raise

    ingestor = DocumentIngestor(MarkdownSplitter(settings.chunker_command), embedding_service, index)
    conversation = ConversationService(
        cache,
        embedding_service,
        index,
        caller,
        ConversationConfig(endpoint=settings.responses_endpoint, model=settings.response_model),
    )
    return Runtime(
        connection=connection,
        caller=caller,
        cache=cache,
        embedding_service=embedding_service,
        index=index,
        ingestor=ingestor,
        conversation=conversation,
    )


__all__ = ["Runtime", "build_embedding_source", "build_runtime"]
