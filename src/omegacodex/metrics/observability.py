"""Observability helpers for Omega Codex."""

from __future__ import annotations

import logging
from typing import Iterable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "omegacodex") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _clamp_score(score: float) -> float:
    if score < -1.0:
        return -1.0
    if score > 1.0:
        return 1.0
    return score


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    task_latency = Histogram(
        "omegacodex_task_duration_seconds",
        "Time spent running rate-limited remote tasks.",
        ["task"],
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    )
    rate_limit_sleep = Histogram(
        "omegacodex_rate_limit_sleep_seconds",
        "Time spent waiting for the rate limiter.",
        buckets=(0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 5.0),
    )
    cache_lookups = Counter(
        "omegacodex_embedding_cache_lookups_total",
        "Embedding cache lookups by outcome.",
        ["outcome"],
    )
    tokens_used = Counter(
        "omegacodex_tokens_total",
        "Tokens reported by remote API usage accounting.",
        ["task", "kind"],
    )
    retrieved_chunk_count = Histogram(
        "omegacodex_retrieved_chunk_count",
        "Number of chunks returned by retrieval.",
        buckets=(0, 1, 2, 3, 5, 8, 13, 21),
    )
    similarity_score = Histogram(
        "omegacodex_similarity_score",
        "Similarity score of retrieved chunks.",
        buckets=(-1.0, -0.5, 0.0, 0.25, 0.5, 0.75, 1.0),
    )
    ingestion_latency = Histogram(
        "omegacodex_ingestion_duration_seconds",
        "Time spent ingesting documents.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0),
    )
    ingestion_chunks = Histogram(
        "omegacodex_ingestion_chunk_count",
        "Chunks produced per ingested document.",
        buckets=(0, 1, 5, 10, 20, 40, 80),
    )

    @classmethod
    def observe_task(cls, task_name: str, duration_seconds: float) -> None:
        cls.task_latency.labels(task=task_name).observe(duration_seconds)

    @classmethod
    def observe_sleep(cls, duration_seconds: float) -> None:
        cls.rate_limit_sleep.observe(duration_seconds)

    @classmethod
    def observe_cache(cls, hit: bool) -> None:
        cls.cache_lookups.labels(outcome="hit" if hit else "miss").inc()

    @classmethod
    def observe_tokens(cls, task_name: str, **counts: int) -> None:
        for kind, value in counts.items():
            if value > 0:
                cls.tokens_used.labels(task=task_name, kind=kind).inc(value)

    @classmethod
    def observe_retrieval(cls, chunk_count: int, scores: Iterable[float]) -> None:
        cls.retrieved_chunk_count.observe(chunk_count)
        for score in scores:
            cls.similarity_score.observe(_clamp_score(score))

    @classmethod
    def observe_ingestion(cls, duration_seconds: float, chunk_count: int) -> None:
        cls.ingestion_latency.observe(duration_seconds)
        cls.ingestion_chunks.observe(chunk_count)


__all__ = [
    "PipelineMetrics",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
