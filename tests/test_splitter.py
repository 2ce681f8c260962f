from __future__ import annotations

import io
import json
import threading
from pathlib import Path

import pytest

from omegacodex.errors import MalformedResponseError, OmegaCodexError
from omegacodex.ingestion import MarkdownSplitter, ThreadedReader
from omegacodex.ingestion.split_markdown import main as chunker_main


class BrokenStream:
    def __init__(self, message: str) -> None:
        self._message = message

    def __iter__(self):
        raise OSError(self._message)


class FakeProcess:
    def __init__(self, stdout, stderr, exit_code: int = 0, barrier: threading.Barrier | None = None) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self._exit_code = exit_code
        self._barrier = barrier
        self.killed = False
        self.exited = False

    def __enter__(self) -> "FakeProcess":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.exited = True

    def wait(self) -> int:
        if self._barrier is not None:
            self._barrier.wait(timeout=5)
        return self._exit_code

    def kill(self) -> None:
        self.killed = True


def _factory(stdout="[]", stderr="", exit_code: int = 0):
    calls: list[dict] = []
    processes: list[FakeProcess] = []

    def factory(command, **kwargs):
        calls.append({"command": command, **kwargs})
        out = io.StringIO(stdout) if isinstance(stdout, str) else stdout
        err = io.StringIO(stderr) if isinstance(stderr, str) else stderr
        process = FakeProcess(out, err, exit_code)
        processes.append(process)
        return process

    factory.calls = calls  # type: ignore[attr-defined]
    factory.processes = processes  # type: ignore[attr-defined]
    return factory


@pytest.fixture()
def document(tmp_path: Path) -> Path:
    path = tmp_path / "readme.md"
    path.write_text("# Title\n\nBody\n", encoding="utf-8")
    return path


def test_split_merges_chunker_output(document: Path):
    output = json.dumps(
        [
            {"content": "A", "metadata": {"Header 1": "X"}},
            {"content": "B", "metadata": {"Header 1": "X", "Code": "python"}},
            {"content": "C", "metadata": {"Header 1": "Y"}},
        ]
    )
    factory = _factory(stdout=output)

    chunks = MarkdownSplitter(("chunker",), process_factory=factory).split(document)

    assert chunks == ["AB\n", "C\n"]
    assert factory.calls[0]["command"] == ["chunker"]


def test_empty_document_yields_no_chunks(document: Path):
    splitter = MarkdownSplitter(("chunker",), process_factory=_factory(stdout="[]\n"))
    assert splitter.split(document) == []


def test_missing_file_is_rejected(tmp_path: Path):
    splitter = MarkdownSplitter(("chunker",), process_factory=_factory())
    with pytest.raises(ValueError, match="Input file must exist."):
        splitter.split(tmp_path / "absent.md")
    with pytest.raises(ValueError, match="Input file path must not be None."):
        splitter.split(None)  # type: ignore[arg-type]


def test_non_zero_exit_reports_stderr(document: Path):
    factory = _factory(stdout="", stderr="Traceback\nboom\n", exit_code=2)

    with pytest.raises(OmegaCodexError) as excinfo:
        MarkdownSplitter(("chunker",), process_factory=factory).split(document)

    assert str(excinfo.value) == "Error returned from chunker. Exit Code: 2\nMessage: Traceback\nMessage: boom"


def test_invalid_output_is_malformed(document: Path):
    factory = _factory(stdout="not json")
    with pytest.raises(MalformedResponseError, match="Failed to deserialize chunker output"):
        MarkdownSplitter(("chunker",), process_factory=factory).split(document)


def test_single_reader_failure_is_raised_directly(document: Path):
    factory = _factory(stdout=BrokenStream("stdout gone"))

    with pytest.raises(OmegaCodexError) as excinfo:
        MarkdownSplitter(("chunker",), process_factory=factory).split(document)

    assert str(excinfo.value) == "Exception occurred while reading standard output."
    assert isinstance(excinfo.value.__cause__, OSError)


def test_both_reader_failures_are_aggregated(document: Path):
    factory = _factory(stdout=BrokenStream("stdout gone"), stderr=BrokenStream("stderr gone"))

    with pytest.raises(OmegaCodexError) as excinfo:
        MarkdownSplitter(("chunker",), process_factory=factory).split(document)

    assert str(excinfo.value) == "Exceptions occurred while running the chunker."
    assert [str(error) for error in excinfo.value.secondary_errors] == [
        "Exception occurred while reading standard output.",
        "Exception occurred while reading standard error.",
    ]


def test_threaded_reader_collects_lines():
    reader = ThreadedReader()
    reader.start(io.StringIO("first\nsecond\r\n"))
    with pytest.raises(RuntimeError, match="Thread is currently running."):
        reader.start(io.StringIO(""))
    reader.join()

    assert reader.lines == ["first", "second"]
    assert reader.exception is None


def test_chunker_entry_point_splits_by_heading():
    sink = io.StringIO()

    chunker_main(stdin=io.StringIO("# Alpha\n\nalpha text\n\n# Beta\n\nbeta text\n"), stdout=sink)

    fragments = json.loads(sink.getvalue())
    assert all(set(fragment) == {"content", "metadata"} for fragment in fragments)
    assert any("alpha text" in fragment["content"] for fragment in fragments)
    assert any("beta text" in fragment["content"] for fragment in fragments)


def test_chunker_entry_point_blank_input():
    sink = io.StringIO()
    chunker_main(stdin=io.StringIO("  \n"), stdout=sink)
    assert json.loads(sink.getvalue()) == []


def test_process_is_released_after_split(document: Path):
    factory = _factory(stdout="[]")
    MarkdownSplitter(("chunker",), process_factory=factory).split(document)
    [process] = factory.processes
    assert process.exited
    assert not process.killed


class FailingReader(ThreadedReader):
    def start(self, stream) -> None:
        raise RuntimeError("cannot start reader")


def test_reader_start_failure_kills_process(document: Path):
    factory = _factory(stdout="[]")
    splitter = MarkdownSplitter(("chunker",), process_factory=factory, reader_factory=FailingReader)

    with pytest.raises(RuntimeError, match="cannot start reader"):
        splitter.split(document)

    [process] = factory.processes
    assert process.killed
    assert process.exited


def test_overlapping_splits_keep_separate_output(tmp_path: Path):
    barrier = threading.Barrier(2)

    def factory(command, *, stdin, **kwargs):
        text = stdin.read().strip()
        output = json.dumps([{"content": text, "metadata": {}}])
        return FakeProcess(io.StringIO(output), io.StringIO(""), barrier=barrier)

    splitter = MarkdownSplitter(("chunker",), process_factory=factory)
    paths = []
    for name in ("first", "second"):
        path = tmp_path / f"{name}.md"
        path.write_text(name, encoding="utf-8")
        paths.append(path)

    results: dict[str, object] = {}

    def run(path: Path) -> None:
        try:
            results[path.stem] = splitter.split(path)
        except Exception as exc:  # collected for the assertion below
            results[path.stem] = exc

    threads = [threading.Thread(target=run, args=(path,)) for path in paths]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert results == {"first": ["first\n"], "second": ["second\n"]}
