"""Merging of chunker fragments into retrieval chunks."""

from __future__ import annotations

from typing import Iterable, Mapping

from omegacodex.models import DocumentFragment

# Code-block language tag; used for rendering only, never for chunk boundaries.
IGNORED_METADATA_KEY = "Code"


def comparison_metadata(metadata: Mapping[str, object]) -> dict[str, str]:
    return {key: str(value) for key, value in metadata.items() if key != IGNORED_METADATA_KEY}


def merge_fragments(fragments: Iterable[DocumentFragment]) -> list[str]:
    """Merge consecutive fragments that share the same section metadata.

    A chunk boundary occurs only where the comparison metadata changes. Each
    emitted chunk is stripped and ends with exactly one newline.
    """

    chunks: list[str] = []
    parts: list[str] = []
    previous: dict[str, str] | None = None

    for fragment in fragments:
        current = comparison_metadata(fragment.metadata)
        if current == previous:
            parts.append(fragment.content)
        else:
            _emit(parts, chunks)
            parts = [fragment.content]
        previous = current

    _emit(parts, chunks)
    return chunks


def _emit(parts: list[str], chunks: list[str]) -> None:
    text = "".join(parts)
    if text:
        chunks.append(text.strip() + "\n")


__all__ = ["IGNORED_METADATA_KEY", "comparison_metadata", "merge_fragments"]
