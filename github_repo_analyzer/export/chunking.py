"""Split flat analysis text into size-bounded chunks."""

import re

from ..models import Chunk

# Split points sit right after a blank line, before the next block starts
_BOUNDARY = re.compile(r"(?<=\n\n)(?=[^\n])")


def blocks(text: str) -> list[str]:
    return [b for b in _BOUNDARY.split(text) if b]


def chunk(text: str, max_bytes: int) -> list[Chunk]:
    """Greedily pack whole blocks into chunks of at most ``max_bytes`` UTF-8 bytes.

    A block larger than ``max_bytes`` becomes a chunk on its own. Joining the
    chunk texts gives back ``text`` unchanged.
    """
    if max_bytes <= 0:
        raise ValueError(f"max_bytes must be positive, got {max_bytes}")
    chunks: list[Chunk] = []
    current: list[str] = []
    size = 0
    for block in blocks(text):
        length = len(block.encode("utf-8"))
        if current and size + length > max_bytes:
            chunks.append(Chunk(len(chunks), "".join(current)))
            current, size = [], 0
        current.append(block)
        size += length
    if current:
        chunks.append(Chunk(len(chunks), "".join(current)))
    return chunks
