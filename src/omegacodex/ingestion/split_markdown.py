"""Chunker entry point: reads Markdown on stdin, writes JSON fragments on stdout.

Each fragment is ``{"content": str, "metadata": {str: str}}``. Header
sections are reported under ``Header N`` keys and fenced code blocks carry
their language under ``Code``.
"""

from __future__ import annotations

import json
import sys
from typing import Sequence, TextIO

from langchain_text_splitters import ExperimentalMarkdownSyntaxTextSplitter


def split_markdown(text: str) -> list[dict[str, object]]:
    splitter = ExperimentalMarkdownSyntaxTextSplitter()
    documents = splitter.split_text(text)
    return [
        {
            "content": document.page_content,
            "metadata": {str(key): str(value) for key, value in document.metadata.items()},
        }
        for document in documents
    ]


def main(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    source = stdin or sys.stdin
    sink = stdout or sys.stdout
    text = source.read()
    fragments = split_markdown(text) if text.strip() else []
    json.dump(fragments, sink, indent=2, ensure_ascii=False)
    sink.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - subprocess entrypoint
    sys.exit(main())
