"""
Progress tracking and ordered task collection for the write and read paths.
"""

import time
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar('T')


@dataclass
class TransformProgress:
    """Per-file progress for encode or reconstruct."""
    file_name: str
    total_chunks: int
    completed_chunks: int = 0
    bytes_processed: int = 0
    phase: str = 'planning'  # 'planning', 'encoding', 'decoding', 'writing_manifest', 'assembling', 'complete', 'failed'
    start_time: float = field(default_factory=time.time)

    @property
    def progress(self) -> float:
        """Progress as 0.0 to 1.0."""
        if self.total_chunks == 0:
            return 1.0
        return self.completed_chunks / self.total_chunks

    @property
    def progress_percent(self) -> float:
        return self.progress * 100

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    def to_dict(self) -> dict:
        return {
            'file_name': self.file_name,
            'total_chunks': self.total_chunks,
            'completed_chunks': self.completed_chunks,
            'bytes_processed': self.bytes_processed,
            'progress_percent': self.progress_percent,
            'elapsed_seconds': self.elapsed_seconds,
            'phase': self.phase,
        }


# Progress callback type
ProgressCallback = Callable[[TransformProgress], None]


async def gather_ordered(coros: Iterable[Awaitable[T]]) -> List[T]:
    """
    Run awaitables concurrently and return results in submission order.

    On the first failure every other task is cancelled before the error
    propagates, so nothing keeps writing behind the caller's back.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
