"""Remaining-work computation from chunks and discovered markers."""

from __future__ import annotations

import logging
from collections.abc import Sequence, Set

from chunk_relay.worker.models import Chunk

logger = logging.getLogger(__name__)


def remaining_chunks(chunks: Sequence[Chunk], processed: Set[int]) -> dict[int, str]:
    """Map index to content for every chunk without a completion marker."""

    remaining = {chunk.index: chunk.content for chunk in chunks if chunk.index not in processed}
    stray = sum(1 for index in processed if not 0 <= index < len(chunks))
    if stray:
        logger.warning(
            "Ignoring %d markers outside of chunk range [0, %d)",
            stray,
            len(chunks),
        )
    return remaining
