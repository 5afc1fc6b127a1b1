"""Discovery of completion markers already written for an input."""

from __future__ import annotations

import logging
import re

from chunk_relay.storage.base import BlobStore
from chunk_relay.storage.layout import BLOB_SUFFIX, output_prefix

logger = logging.getLogger(__name__)

_INDEX_PATTERN = re.compile(r"[0-9]+")


class MarkerDiscoveryError(RuntimeError):
    """A blob under the output prefix does not follow the marker naming scheme."""

    def __init__(self, blob_name: str, reason: str) -> None:
        super().__init__(f"Unexpected completion marker {blob_name!r}: {reason}")
        self.blob_name = blob_name
        self.reason = reason


def parse_marker_index(blob_name: str, prefix: str) -> int:
    """Extract the chunk index from ``<prefix><index>.txt``."""

    if not blob_name.startswith(prefix):
        raise MarkerDiscoveryError(blob_name, f"outside of prefix {prefix!r}")
    name = blob_name[len(prefix) :]
    if not name.endswith(BLOB_SUFFIX):
        raise MarkerDiscoveryError(blob_name, f"missing {BLOB_SUFFIX!r} suffix")
    stem = name[: -len(BLOB_SUFFIX)]
    if not _INDEX_PATTERN.fullmatch(stem):
        raise MarkerDiscoveryError(blob_name, f"{stem!r} is not a chunk index")
    return int(stem)


def discover_processed_indexes(store: BlobStore, input_name: str) -> set[int]:
    """Return indexes of chunks of ``input_name`` that already have a marker.

    Every listing page is consumed; a malformed marker name aborts discovery.
    """

    prefix = output_prefix(input_name)
    processed: set[int] = set()
    pages = 0
    for page in store.iter_name_pages(prefix):
        pages += 1
        processed.update(parse_marker_index(blob_name, prefix) for blob_name in page)
    logger.debug(
        "Discovered %d markers for %s across %d listing pages",
        len(processed),
        input_name,
        pages,
    )
    return processed
