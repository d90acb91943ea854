"""
Pipeline Module - Write and Read Paths

Chunks, encodes and commits files; verifies and reassembles them.
"""

from .cache import TransformCache, EvictionPolicy, NoEviction, LRUPolicy, create_cache
from .progress import TransformProgress, ProgressCallback
from .reassembler import Reassembler
from .writer import ChunkWriter, artifact_location

__all__ = [
    'TransformCache',
    'EvictionPolicy',
    'NoEviction',
    'LRUPolicy',
    'create_cache',
    'TransformProgress',
    'ProgressCallback',
    'Reassembler',
    'ChunkWriter',
    'artifact_location',
]
