"""
File Module - Planning, Manifests, and Storage

This module handles the on-disk side of chunkvault: deciding split points,
describing stored files, and keeping artifacts and manifests.
"""

from .chunker import ChunkPlanner, ChunkPlan, ByteRange, read_range
from .manifest import Manifest, ChunkRecord, SingleArtifact, ChunkList
from .storage import (
    ArtifactStore, FileArtifactStore, MemoryArtifactStore, ManifestStore,
    StorageStats, collect_orphans, get_storage_stats,
)

__all__ = [
    'ChunkPlanner',
    'ChunkPlan',
    'ByteRange',
    'read_range',
    'Manifest',
    'ChunkRecord',
    'SingleArtifact',
    'ChunkList',
    'ArtifactStore',
    'FileArtifactStore',
    'MemoryArtifactStore',
    'ManifestStore',
    'StorageStats',
    'collect_orphans',
    'get_storage_stats',
]
