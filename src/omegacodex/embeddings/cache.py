"""Content-addressed embedding cache backed by SQLite."""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Sequence

from omegacodex.errors import DuplicateInputError, MalformedResponseError, NotFoundError, OmegaCodexError
from omegacodex.metrics.observability import get_logger
from omegacodex.models import Embedding

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS Embeddings
(
    Id        INTEGER PRIMARY KEY AUTOINCREMENT,
    Input     TEXT    UNIQUE NOT NULL,
    Embedding TEXT           NOT NULL
)
"""


def connect(db_path: Path) -> sqlite3.Connection:
    """Open the cache database, creating its parent directory when needed."""

    db_path = db_path.expanduser()
    if str(db_path) != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    # The HTTP API serves requests from a thread pool; writes are serialized by the cache lock.
    return sqlite3.connect(db_path, check_same_thread=False)


class EmbeddingCache:
    """Maps input text to a stored vector and its stable integer identifier.

    Each input text has at most one record. ``store`` is write-once and
    rejects input that already has a record, so callers combine ``lookup``
    and ``store`` for a compare-and-insert.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        if connection is None:
            raise ValueError("Connection must not be None.")
        self._connection = connection
        self._write_lock = threading.Lock()
        self._logger = get_logger("cache")
        try:
            with self._connection:
                self._connection.execute(SCHEMA_SQL)
        except sqlite3.Error as exc:
            raise OmegaCodexError("Failed to create Embeddings table.") from exc

    def lookup(self, text: str) -> Embedding | None:
        _validate_input(text)
        try:
            row = self._connection.execute(
                "SELECT Id, Embedding FROM Embeddings WHERE Input = ?", (text,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise OmegaCodexError("Failed to query Embeddings table.") from exc
        if row is None:
            return None
        return Embedding(id=int(row[0]), vector=_decode_vector(row[1]), source_text=text)

    def store(self, text: str, vector: Sequence[float]) -> int:
        _validate_input(text)
        if vector is None:
            raise ValueError("Embedding must not be None.")
        if len(vector) == 0:
            raise ValueError("Embedding must not be empty.")

        encoded = json.dumps([float(value) for value in vector])
        with self._write_lock:
            try:
                with self._connection:
                    cursor = self._connection.execute(
                        "INSERT OR IGNORE INTO Embeddings ( Input, Embedding ) VALUES ( ?, ? )",
                        (text, encoded),
                    )
            except sqlite3.Error as exc:
                raise OmegaCodexError("Failed to insert into Embeddings table.") from exc
            if cursor.rowcount == 0:
                raise DuplicateInputError("Input must not be a duplicate.")
            if cursor.lastrowid is None:
                raise OmegaCodexError("Failed to get ID of added embedding.")
            embedding_id = int(cursor.lastrowid)
        self._logger.info("cache.store", id=embedding_id, input_length=len(text))
        return embedding_id

    def resolve_text(self, embedding_id: int) -> str:
        try:
            row = self._connection.execute(
                "SELECT Input FROM Embeddings WHERE Id = ?", (embedding_id,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise OmegaCodexError("Failed to query Embeddings table.") from exc
        if row is None:
            raise NotFoundError(f"Failed to find input for ID: {embedding_id:,}")
        return str(row[0])

    def count(self) -> int:
        try:
            row = self._connection.execute("SELECT COUNT(*) FROM Embeddings").fetchone()
        except sqlite3.Error as exc:
            raise OmegaCodexError("Failed to query Embeddings table.") from exc
        return int(row[0])


def _validate_input(text: str) -> None:
    if text is None:
        raise ValueError("Input must not be None.")
    if not text:
        raise ValueError("Input must not be empty.")


def _decode_vector(raw: str) -> tuple[float, ...]:
    try:
        values = json.loads(raw)
    except ValueError as exc:
        raise MalformedResponseError(f"Failed to deserialize cached embedding:\n{raw}") from exc
    if not isinstance(values, list) or not all(
        isinstance(value, (int, float)) and not isinstance(value, bool) for value in values
    ):
        raise MalformedResponseError(f"Cached embedding is not a list of numbers:\n{raw}")
    return tuple(float(value) for value in values)


__all__ = ["EmbeddingCache", "SCHEMA_SQL", "connect"]
