"""Blob key layout of an execution namespace."""

from __future__ import annotations

INPUT_ROOT = "input-files"
OUTPUT_ROOT = "output-files"
BLOB_SUFFIX = ".txt"


def input_blob_name(input_name: str) -> str:
    return f"{INPUT_ROOT}/{input_name}{BLOB_SUFFIX}"


def output_prefix(input_name: str) -> str:
    return f"{OUTPUT_ROOT}/{input_name}/"


def marker_blob_name(input_name: str, index: int) -> str:
    """Completion marker key of chunk ``index`` of ``input_name``."""

    return f"{output_prefix(input_name)}{index}{BLOB_SUFFIX}"
