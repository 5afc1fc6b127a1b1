from __future__ import annotations

from pathlib import Path

import allure

from chunk_relay.worker.chunking import input_name_for, read_input_text, split_into_chunks
from chunk_relay.worker.models import Chunk

pytestmark = [
    allure.epic("Chunk Processing"),
    allure.feature("Partitioning"),
]


def test_split_three_lines_indexes_by_position() -> None:
    assert split_into_chunks("a\nb\nc", "\n") == [
        Chunk(index=0, content="a"),
        Chunk(index=1, content="b"),
        Chunk(index=2, content="c"),
    ]


def test_split_preserves_empty_lines_and_trailing_separator() -> None:
    chunks = split_into_chunks("a\n\nb\n", "\n")

    assert [chunk.content for chunk in chunks] == ["a", "", "b", ""]
    assert [chunk.index for chunk in chunks] == [0, 1, 2, 3]


def test_split_empty_content_is_one_empty_chunk() -> None:
    assert split_into_chunks("", "\n") == [Chunk(index=0, content="")]


def test_split_uses_configured_separator_only() -> None:
    chunks = split_into_chunks("1\r\n2\n3\r\n4", "\r\n")

    assert [chunk.content for chunk in chunks] == ["1", "2\n3", "4"]


def test_split_is_deterministic() -> None:
    content = "\n".join(f"line {i}" for i in range(500))

    assert split_into_chunks(content, "\n") == split_into_chunks(content, "\n")


def test_read_input_text_keeps_crlf(tmp_path: Path) -> None:
    path = tmp_path / "in.txt"
    path.write_bytes(b"1\r\n2\r\n3")

    assert read_input_text(path) == "1\r\n2\r\n3"
    assert len(split_into_chunks(read_input_text(path), "\r\n")) == 3


def test_input_name_is_file_stem() -> None:
    assert input_name_for(Path("/tmp/inputs/4f1c.txt")) == "4f1c"
