"""
Chunk Planner

Design Decision: Chunk Size
===========================

Two numbers drive the split:
- C (max_artifact_size): the largest object the host will accept
- T (chunk_size): the nominal plaintext slice length, T <= C

Options Considered:
| Size    | Pros                          | Cons                           |
|---------|-------------------------------|--------------------------------|
| 1MB     | Fine-grained, cheap retries   | Many artifacts per file        |
| 10MB    | Good balance, standard        | -                              |
| 50MB    | Few artifacts                 | Little headroom under 100MB    |
| C       | Fewest artifacts              | Any encoding growth overflows  |

Decision: 10MB default under a 100MB ceiling
- Leaves far more headroom than zstd + envelope growth can consume
- Small enough to decode several chunks in parallel

Chunking Strategy: Fixed-Size
- Files that fit under C are stored whole (still compressed and encrypted)
- Larger files become ceil(N / T) slices, the last one holding the remainder
- The planner never trusts itself: every encoded artifact is re-checked
  against C after the fact
"""

import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List

import aiofiles

from ..config import DEFAULT_MAX_ARTIFACT_SIZE, DEFAULT_CHUNK_SIZE
from ..errors import ConfigurationError, SizeViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByteRange:
    """A contiguous slice [offset, offset + length) of the source file."""
    index: int
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass
class ChunkPlan:
    """Ordered ranges covering a file exactly once."""
    total_size: int
    chunk_size: int
    max_artifact_size: int
    is_chunked: bool
    ranges: List[ByteRange]

    @property
    def chunk_count(self) -> int:
        return len(self.ranges)


class ChunkPlanner:
    """
    Decides split points for a file given a size ceiling.

    Planning is pure arithmetic; reading the planned slices is the only
    part that touches the disk.
    """

    def __init__(self, max_artifact_size: int = DEFAULT_MAX_ARTIFACT_SIZE,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        if max_artifact_size < 1:
            raise ConfigurationError(
                f"max_artifact_size must be positive, got {max_artifact_size}"
            )
        if chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_size > max_artifact_size:
            raise ConfigurationError(
                f"chunk_size ({chunk_size}) must not exceed "
                f"max_artifact_size ({max_artifact_size})"
            )

        self.max_artifact_size = max_artifact_size
        self.chunk_size = chunk_size

    def needs_chunking(self, file_size: int) -> bool:
        return file_size > self.max_artifact_size

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        if not self.needs_chunking(file_size):
            return 1
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def get_chunk_bounds(self, chunk_index: int, file_size: int) -> ByteRange:
        """Get the byte range for a specific chunk."""
        if not self.needs_chunking(file_size):
            if chunk_index != 0:
                raise IndexError(f"Unchunked file has no chunk {chunk_index}")
            return ByteRange(index=0, offset=0, length=file_size)

        start = chunk_index * self.chunk_size
        if chunk_index < 0 or start >= file_size:
            raise IndexError(f"Chunk {chunk_index} out of range for {file_size} bytes")
        return ByteRange(
            index=chunk_index,
            offset=start,
            length=min(self.chunk_size, file_size - start),
        )

    def plan(self, file_size: int) -> ChunkPlan:
        """Produce the ordered ranges for a file of `file_size` bytes."""
        if file_size < 0:
            raise ValueError(f"file_size must be >= 0, got {file_size}")

        count = self.get_chunk_count(file_size)
        ranges = [self.get_chunk_bounds(i, file_size) for i in range(count)]

        logger.debug(f"Planned {count} range(s) for {file_size:,} bytes "
                     f"(chunked={self.needs_chunking(file_size)})")

        return ChunkPlan(
            total_size=file_size,
            chunk_size=self.chunk_size,
            max_artifact_size=self.max_artifact_size,
            is_chunked=self.needs_chunking(file_size),
            ranges=ranges,
        )

    def check_artifact_size(self, size: int, index: int = 0):
        """Reject an encoded artifact larger than the ceiling."""
        if size > self.max_artifact_size:
            logger.error(f"Chunk {index} encoded to {size:,} bytes, "
                         f"over the {self.max_artifact_size:,} byte limit")
            raise SizeViolationError(
                f"Chunk {index} is {size:,} bytes, exceeds the "
                f"{self.max_artifact_size:,} byte limit!",
                actual=size,
                limit=self.max_artifact_size,
                index=index,
            )


async def read_range(file_path: Path, byte_range: ByteRange) -> bytes:
    """Read one planned slice from a file."""
    async with aiofiles.open(file_path, 'rb') as f:
        await f.seek(byte_range.offset)
        data = await f.read(byte_range.length)

    if len(data) != byte_range.length:
        raise SizeViolationError(
            f"Short read at offset {byte_range.offset}: expected "
            f"{byte_range.length:,} bytes, got {len(data):,} (file changed?)",
            actual=len(data),
            limit=byte_range.length,
            index=byte_range.index,
        )
    return data
