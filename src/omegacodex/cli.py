"""Command-line interface for Omega Codex."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Callable, Sequence, TextIO

from omegacodex.config import Settings, get_settings
from omegacodex.errors import OmegaCodexError
from omegacodex.ingestion import MarkdownSplitter
from omegacodex.runtime import Runtime, build_runtime
from omegacodex.services import ConversationService

VECTOR_PREVIEW_LIMIT = 50


def run_split(path: Path, settings: Settings, out: TextIO) -> int:
    chunks = MarkdownSplitter(settings.chunker_command).split(path)
    for index, chunk in enumerate(chunks, start=1):
        print(f"-------------------- Chunk {index} --------------------", file=out)
        print(file=out)
        print(chunk, file=out)
    return 0


def run_embed(text: str, runtime: Runtime, out: TextIO) -> int:
    embedding = runtime.embedding_service.get_embedding(text)
    rendered = json.dumps(list(embedding.vector))
    if len(rendered) > VECTOR_PREVIEW_LIMIT:
        rendered = rendered[:VECTOR_PREVIEW_LIMIT] + "..."
    print(f"Input: {text}", file=out)
    print(f"ID: {embedding.id:,}", file=out)
    print(f"Vector: {rendered}", file=out)
    return 0


def run_ingest(path: Path, runtime: Runtime, out: TextIO) -> int:
    embeddings = runtime.ingestor.ingest(path)
    print(f"Indexed {len(embeddings):,} chunks from {path}", file=out)
    return 0


def query_loop(
    conversation: ConversationService,
    read_line: Callable[[], str | None],
    out: TextIO,
) -> int:
    print(file=out)
    print("Omega Codex - Command-Line Query Interface", file=out)
    print(file=out)
    print("Enter your query. Press enter on an empty line when you are finished.", file=out)
    while True:
        print(file=out)
        print("> ", end="", file=out, flush=True)
        line = read_line()
        print(file=out)
        if line is None:
            break
        query = line.strip()
        if not query:
            break
        response = conversation.get_response(query)
        print(file=out)
        print("Response:", file=out)
        print(file=out)
        print(response, file=out)
    print("Exiting", file=out)
    return 0


def _read_stdin() -> str | None:
    line = sys.stdin.readline()
    return line if line else None


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="omegacodex", description="Query project documentation with retrieved context.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    split = subparsers.add_parser("split", help="Print the merged chunks of a Markdown document")
    split.add_argument("path", type=Path, help="Markdown document to split")

    embed = subparsers.add_parser("embed", help="Embed text through the cache and print the vector")
    embed.add_argument("text", help="Text to embed")

    ingest = subparsers.add_parser("ingest", help="Split, embed and index a Markdown document")
    ingest.add_argument("path", type=Path, help="Markdown document to ingest")

    query = subparsers.add_parser("query", help="Ingest a document and start an interactive query loop")
    query.add_argument("--document", type=Path, default=None, help="Document to ingest before querying")
    query.add_argument("--skip-ingest", action="store_true", help="Query the existing index only")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, *, settings: Settings | None = None, out: TextIO | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    settings = settings or get_settings()
    out = out or sys.stdout
    try:
        if args.command == "split":
            return run_split(args.path, settings, out)
        with build_runtime(settings) as runtime:
            if args.command == "embed":
                return run_embed(args.text, runtime, out)
            if args.command == "ingest":
                return run_ingest(args.path, runtime, out)
            if not args.skip_ingest:
                run_ingest(args.document or settings.default_document, runtime, out)
            return query_loop(runtime.conversation, _read_stdin, out)
    except (OmegaCodexError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
