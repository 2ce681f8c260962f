"""Runs the Markdown chunker in a subprocess and merges its fragments."""

from __future__ import annotations

import json
import subprocess
import sys
import threading
from pathlib import Path
from typing import IO, Callable, Sequence

from omegacodex.errors import MalformedResponseError, OmegaCodexError, TaskInterruptedError, raise_aggregated
from omegacodex.ingestion.merge import merge_fragments
from omegacodex.metrics.observability import get_logger
from omegacodex.models import DocumentFragment

DEFAULT_CHUNKER_COMMAND: tuple[str, ...] = (sys.executable, "-m", "omegacodex.ingestion.split_markdown")

ProcessFactory = Callable[..., subprocess.Popen]


class ThreadedReader:
    """Drains a text stream into a list of lines on a background thread."""

    def __init__(self) -> None:
        # Only one thread touches these at a time: the reader while running, the owner after join.
        self._lines: list[str] = []
        self._thread: threading.Thread | None = None
        self._exception: BaseException | None = None

    def start(self, stream: IO[str]) -> None:
        if self._thread is not None:
            raise RuntimeError("Thread is currently running.")
        self._exception = None
        self._lines = []
        self._thread = threading.Thread(target=self._drain, args=(stream,), daemon=True)
        self._thread.start()

    def join(self) -> None:
        if self._thread is None:
            raise RuntimeError("Thread is not running.")
        self._thread.join()
        self._thread = None

    @property
    def lines(self) -> list[str]:
        if self._thread is not None:
            raise RuntimeError("Thread is currently running.")
        return list(self._lines)

    @property
    def exception(self) -> BaseException | None:
        if self._thread is not None:
            raise RuntimeError("Thread is currently running.")
        return self._exception

    def close(self) -> None:
        if self._thread is not None:
            self.join()

    def __enter__(self) -> "ThreadedReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _drain(self, stream: IO[str]) -> None:
        try:
            for line in stream:
                self._lines.append(line.rstrip("\r\n"))
        except Exception as exc:  # reported through ``exception`` after join
            self._exception = exc


class MarkdownSplitter:
    """Splits a Markdown document into merged retrieval chunks."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        *,
        process_factory: ProcessFactory = subprocess.Popen,
        reader_factory: Callable[[], ThreadedReader] = ThreadedReader,
    ) -> None:
        self._command = tuple(command or DEFAULT_CHUNKER_COMMAND)
        self._process_factory = process_factory
        self._reader_factory = reader_factory
        self._logger = get_logger("ingestion")

    def split(self, path: Path) -> list[str]:
        return merge_fragments(self.fragments(path))

    def fragments(self, path: Path) -> list[DocumentFragment]:
        if path is None:
            raise ValueError("Input file path must not be None.")
        path = Path(path)
        if not path.exists():
            raise ValueError("Input file must exist.")

        stdout_lines, stderr_lines, exit_code = self._run_chunker(path)

        if exit_code != 0:
            message = f"Error returned from chunker. Exit Code: {exit_code}"
            for line in stderr_lines:
                message += f"\nMessage: {line}"
            raise OmegaCodexError(message)

        output = "\n".join(stdout_lines)
        try:
            document = json.loads(output)
        except ValueError as exc:
            raise MalformedResponseError(f"Failed to deserialize chunker output:\n{output}") from exc
        fragments = _to_fragments(document, output)
        self._logger.info("chunker.complete", path=str(path), fragment_count=len(fragments))
        return fragments

    def _run_chunker(self, path: Path) -> tuple[list[str], list[str], int]:
        # Fresh readers per call; concurrent splits must not share reader state.
        stdout_reader = self._reader_factory()
        stderr_reader = self._reader_factory()
        with path.open("r", encoding="utf-8") as document:
            try:
                process = self._process_factory(
                    list(self._command),
                    stdin=document,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                )
            except OSError as exc:
                raise OmegaCodexError("Failed to start chunker process.") from exc

            with process, stdout_reader, stderr_reader:
                try:
                    stdout_reader.start(process.stdout)
                    stderr_reader.start(process.stderr)
                    exit_code = process.wait()
                except KeyboardInterrupt as exc:
                    process.kill()
                    raise TaskInterruptedError("Chunker Interrupted", phase="executing") from exc
                except BaseException:
                    process.kill()
                    raise

        errors: list[OmegaCodexError] = []
        if stdout_reader.exception is not None:
            error = OmegaCodexError("Exception occurred while reading standard output.")
            error.__cause__ = stdout_reader.exception
            errors.append(error)
        if stderr_reader.exception is not None:
            error = OmegaCodexError("Exception occurred while reading standard error.")
            error.__cause__ = stderr_reader.exception
            errors.append(error)
        raise_aggregated(errors, "Exceptions occurred while running the chunker.")

        return stdout_reader.lines, stderr_reader.lines, exit_code


def _to_fragments(document: object, raw: str) -> list[DocumentFragment]:
    if not isinstance(document, list):
        raise MalformedResponseError(f"Chunker output is not a list:\n{raw}")
    fragments: list[DocumentFragment] = []
    for element in document:
        if not isinstance(element, dict):
            raise MalformedResponseError(f"Chunker element is not an object:\n{raw}")
        metadata = element.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise MalformedResponseError(f"Chunker metadata is not an object:\n{raw}")
        fragments.append(
            DocumentFragment(
                content=str(element.get("content", "")),
                metadata={str(key): str(value) for key, value in metadata.items()},
            ),
        )
    return fragments


__all__ = ["DEFAULT_CHUNKER_COMMAND", "MarkdownSplitter", "ThreadedReader"]
