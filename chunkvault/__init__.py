"""
chunkvault - size-bounded, compressed, encrypted, verified file chunks.

Files larger than a host's object size ceiling are split, each slice is
compressed and sealed to a public key, and a manifest records how to find,
verify and reassemble them.
"""

from .config import Config, load_config
from .errors import (
    ChunkVaultError, ConfigurationError, EncodeError, DecodeError,
    IntegrityError, SizeViolationError, StructuralError, ArtifactNotFoundError,
)
from .codec import ChunkCodec, EncodedChunk
from .file import (
    ChunkPlanner, Manifest, ChunkRecord, FileArtifactStore, MemoryArtifactStore,
    ManifestStore, collect_orphans,
)
from .keys import generate_keypair, StaticKeyProvider, EnvKeyProvider
from .pipeline import ChunkWriter, Reassembler, TransformCache, LRUPolicy, NoEviction

__version__ = '0.1.0'

__all__ = [
    'Config',
    'load_config',
    'ChunkVaultError',
    'ConfigurationError',
    'EncodeError',
    'DecodeError',
    'IntegrityError',
    'SizeViolationError',
    'StructuralError',
    'ArtifactNotFoundError',
    'ChunkCodec',
    'EncodedChunk',
    'ChunkPlanner',
    'Manifest',
    'ChunkRecord',
    'FileArtifactStore',
    'MemoryArtifactStore',
    'ManifestStore',
    'collect_orphans',
    'generate_keypair',
    'StaticKeyProvider',
    'EnvKeyProvider',
    'ChunkWriter',
    'Reassembler',
    'TransformCache',
    'LRUPolicy',
    'NoEviction',
]
