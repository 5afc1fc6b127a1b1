"""Deterministic line-based partitioning of input content."""

from __future__ import annotations

import os
from pathlib import Path

from chunk_relay.worker.models import Chunk


def split_into_chunks(content: str, separator: str = os.linesep) -> list[Chunk]:
    """Split ``content`` on ``separator``; every line, even an empty one, is a chunk.

    Empty content yields a single empty chunk and a trailing separator yields
    a trailing empty chunk, so chunk indices depend only on line positions.
    """

    if not separator:
        raise ValueError("separator must not be empty")
    return [Chunk(index=index, content=line) for index, line in enumerate(content.split(separator))]


def read_input_text(path: Path) -> str:
    """Read an input file without newline translation."""

    with path.open(encoding="utf-8", newline="") as handle:
        return handle.read()


def input_name_for(path: Path) -> str:
    """Input name is the file name without its extension."""

    return path.stem
