"""FastAPI application exposing the Omega Codex conversation."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Callable
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from omegacodex.api.schemas import (
    DocumentIngestionRequest,
    DocumentIngestionResponse,
    ErrorResponse,
    QueryRequest,
    QueryResponse,
)
from omegacodex.config import Settings, get_settings
from omegacodex.errors import NotFoundError, OmegaCodexError, RemoteCallError
from omegacodex.ingestion import DocumentIngestor
from omegacodex.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from omegacodex.runtime import build_runtime
from omegacodex.services import ConversationService

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
}


@dataclass(frozen=True)
class AppDependencies:
    ingestor: DocumentIngestor
    conversation: ConversationService
    close: Callable[[], None] | None = None


def _build_dependencies(settings: Settings) -> AppDependencies:
    runtime = build_runtime(settings)
    return AppDependencies(ingestor=runtime.ingestor, conversation=runtime.conversation, close=runtime.close)


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()

    configure_logging()
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "dependencies", None) is None:
            app.state.dependencies = _build_dependencies(settings)
        try:
            yield
        finally:
            close = app.state.dependencies.close
            if close is not None:
                close()

    app = FastAPI(title="Omega Codex API", version="0.1.0", lifespan=lifespan)
    if dependencies is not None:
        app.state.dependencies = dependencies

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def _error(request: Request, status_code: int, detail: str, event: str) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error(event, correlation_id=correlation_id, detail=detail)
        return JSONResponse(status_code=status_code, content={"detail": detail, "correlation_id": correlation_id})

    @app.exception_handler(ValueError)
    async def handle_validation_error(request: Request, exc: ValueError) -> JSONResponse:
        return _error(request, status.HTTP_400_BAD_REQUEST, str(exc), "validation.error")

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(request, status.HTTP_404_NOT_FOUND, str(exc), "not_found.error")

    @app.exception_handler(RemoteCallError)
    async def handle_remote_error(request: Request, exc: RemoteCallError) -> JSONResponse:
        return _error(request, status.HTTP_502_BAD_GATEWAY, str(exc), "remote.error")

    @app.exception_handler(OmegaCodexError)
    async def handle_pipeline_error(request: Request, exc: OmegaCodexError) -> JSONResponse:
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "pipeline.error")

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_ingestor(dep: AppDependencies = Depends(get_dependencies)) -> DocumentIngestor:
        return dep.ingestor

    def get_conversation(dep: AppDependencies = Depends(get_dependencies)) -> ConversationService:
        return dep.conversation

    @app.post(
        "/documents",
        response_model=DocumentIngestionResponse,
        status_code=status.HTTP_201_CREATED,
        responses=_ERROR_RESPONSES,
    )
    async def ingest_document(
        payload: DocumentIngestionRequest,
        ingestor: DocumentIngestor = Depends(get_ingestor),
    ) -> DocumentIngestionResponse:
        path = Path(payload.path)
        if not path.is_file():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Document not found: {payload.path}")
        embeddings = await run_in_threadpool(ingestor.ingest, path)
        return DocumentIngestionResponse(
            path=payload.path,
            chunk_count=len(embeddings),
            chunk_ids=[embedding.id for embedding in embeddings],
        )

    @app.post("/query", response_model=QueryResponse, responses=_ERROR_RESPONSES)
    async def query(
        payload: QueryRequest,
        conversation: ConversationService = Depends(get_conversation),
    ) -> QueryResponse:
        reply = await run_in_threadpool(conversation.get_response, payload.query)
        return QueryResponse(reply=reply, message_count=len(conversation.messages))

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from omegacodex import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    return app


app = create_app()
