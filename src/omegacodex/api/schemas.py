"""Pydantic models for the Omega Codex API."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class DocumentIngestionRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Path of a Markdown document readable by the server")


class DocumentIngestionResponse(BaseModel):
    path: str
    chunk_count: int = Field(..., ge=0, description="Number of chunks indexed for the document")
    chunk_ids: List[int] = Field(default_factory=list, description="Embedding ids of the indexed chunks")


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, description="End-user query to answer")


class QueryResponse(BaseModel):
    reply: str
    message_count: int = Field(..., ge=1, description="Messages recorded in the conversation after this turn")


class ErrorResponse(BaseModel):
    detail: str
    correlation_id: str
