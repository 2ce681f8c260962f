from __future__ import annotations

import sqlite3
import threading
from typing import Tuple

import pytest

from omegacodex.embeddings import EmbeddingCache, EmbeddingService, HashEmbeddingSource


class CountingSource:
    def __init__(self, vector: Tuple[float, ...] = (0.6, 0.8)) -> None:
        self.calls: list[str] = []
        self._vector = vector

    def compute_vector(self, text: str) -> Tuple[float, ...]:
        self.calls.append(text)
        return self._vector


def _service(source) -> tuple[EmbeddingService, EmbeddingCache]:
    cache = EmbeddingCache(sqlite3.connect(":memory:"))
    return EmbeddingService(cache, source), cache


def test_miss_computes_and_stores():
    source = CountingSource()
    service, cache = _service(source)

    embedding = service.get_embedding("new text")

    assert source.calls == ["new text"]
    assert embedding.vector == (0.6, 0.8)
    assert cache.lookup("new text").id == embedding.id


def test_hit_never_calls_source():
    source = CountingSource()
    service, cache = _service(source)
    embedding_id = cache.store("cached text", [1.0, 0.0])

    embedding = service.get_embedding("cached text")

    assert source.calls == []
    assert embedding.id == embedding_id
    assert embedding.vector == (1.0, 0.0)


def test_repeated_requests_compute_once():
    source = CountingSource()
    service, _ = _service(source)

    first = service.get_embedding("repeat")
    second = service.get_embedding("repeat")

    assert source.calls == ["repeat"]
    assert first.id == second.id


def test_empty_input_rejected_before_source():
    source = CountingSource()
    service, _ = _service(source)
    with pytest.raises(ValueError, match="Input must not be empty."):
        service.get_embedding("")
    assert source.calls == []


def test_hash_source_is_deterministic_and_normalised():
    source = HashEmbeddingSource(dim=64)
    first = source.compute_vector("Sally sells sea shells")
    second = source.compute_vector("Sally sells sea shells")

    assert first == second
    assert len(first) == 64
    assert sum(value * value for value in first) == pytest.approx(1.0)


class StoringSource:
    """Stores the text itself while computing, as a concurrent caller would."""

    def __init__(self, cache: EmbeddingCache) -> None:
        self._cache = cache
        self.stored_id: int | None = None

    def compute_vector(self, text: str) -> Tuple[float, ...]:
        self.stored_id = self._cache.store(text, [0.0, 1.0])
        return (1.0, 0.0)


def test_store_race_returns_existing_record():
    cache = EmbeddingCache(sqlite3.connect(":memory:"))
    source = StoringSource(cache)
    service = EmbeddingService(cache, source)

    embedding = service.get_embedding("same chunk")

    assert embedding.id == source.stored_id
    assert embedding.vector == (0.0, 1.0)
    assert cache.count() == 1


class BarrierSource:
    def __init__(self, parties: int) -> None:
        self._barrier = threading.Barrier(parties)

    def compute_vector(self, text: str) -> Tuple[float, ...]:
        self._barrier.wait(timeout=5)
        return (0.6, 0.8)


def test_concurrent_misses_share_one_record():
    cache = EmbeddingCache(sqlite3.connect(":memory:", check_same_thread=False))
    service = EmbeddingService(cache, BarrierSource(2))
    results: list[object] = []

    def run() -> None:
        try:
            results.append(service.get_embedding("same chunk").id)
        except Exception as exc:  # collected for the assertion below
            results.append(exc)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(results) == 2
    assert all(isinstance(result, int) for result in results)
    assert results[0] == results[1]
    assert cache.count() == 1
