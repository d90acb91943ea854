"""
File Manifest

Design Decision: Manifest Structure
====================================

The manifest is the authoritative record of how a file was stored. It
contains:
- File identification (logical name, exact original size)
- Layout: either one whole-file artifact or an ordered list of chunks
- Per-artifact location, stored size, plaintext size and plaintext digest
- Diagnostics (nominal chunk size, creation time)

Options Considered for the layout:
1. One structure with optional fields guarded by an `is_chunked` flag
   - Validity of each field depends on the flag
2. Tagged layout: SingleArtifact | ChunkList
   - Each variant only has the fields it needs

Decision: Tagged layout, flattened to the flag form on disk
- In memory the type says which fields exist
- On disk the JSON keeps `is_chunked` with `chunks` empty for whole files

Options Considered for the format:
1. JSON - Human readable, easy to diff and inspect
2. MessagePack / CBOR - Compact, needs a dependency
3. Custom binary - Most compact, hardest to debug

Decision: JSON
- Manifests are tiny next to the artifacts they describe
- Easy to debug and inspect by hand

Structural checks run on every load, before any cryptographic work:
dense 0..N-1 indices, contiguous offsets, sizes that add up.
"""

import re
import json
import hashlib
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union
from pathlib import Path

from ..errors import StructuralError

MANIFEST_VERSION = 1

_HEX_DIGEST = re.compile(r'^[0-9a-f]{64}$')


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_int(data: Dict, key: str, minimum: int = 0) -> int:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise StructuralError(f"Field '{key}' must be an integer, got {value!r}")
    if value < minimum:
        raise StructuralError(f"Field '{key}' must be >= {minimum}, got {value}")
    return value


def _require_str(data: Dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise StructuralError(f"Field '{key}' must be a non-empty string, got {value!r}")
    return value


@dataclass(frozen=True)
class ChunkRecord:
    """One stored artifact and the plaintext slice it represents."""
    index: int
    location: str
    offset: int
    ciphertext_size: int
    plaintext_size: int
    plaintext_hash: str  # SHA-256 as hex

    @property
    def end(self) -> int:
        return self.offset + self.plaintext_size

    def check(self):
        """Field-level checks for a single record."""
        if not self.location:
            raise StructuralError(f"Chunk {self.index} has no location")
        if not _HEX_DIGEST.match(self.plaintext_hash or ''):
            raise StructuralError(
                f"Chunk {self.index} hash is not a SHA-256 hex digest: {self.plaintext_hash!r}"
            )
        for name in ('offset', 'ciphertext_size', 'plaintext_size'):
            if getattr(self, name) < 0:
                raise StructuralError(f"Chunk {self.index} has negative {name}")

    def to_dict(self) -> Dict:
        return {
            'index': self.index,
            'location': self.location,
            'offset': self.offset,
            'ciphertext_size': self.ciphertext_size,
            'plaintext_size': self.plaintext_size,
            'plaintext_hash': self.plaintext_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ChunkRecord':
        if not isinstance(data, dict):
            raise StructuralError(f"Chunk entry must be an object, got {type(data).__name__}")
        return cls(
            index=_require_int(data, 'index'),
            location=_require_str(data, 'location'),
            offset=_require_int(data, 'offset'),
            ciphertext_size=_require_int(data, 'ciphertext_size'),
            plaintext_size=_require_int(data, 'plaintext_size'),
            plaintext_hash=_require_str(data, 'plaintext_hash'),
        )


@dataclass(frozen=True)
class SingleArtifact:
    """Whole file stored as one artifact."""
    artifact: ChunkRecord


@dataclass(frozen=True)
class ChunkList:
    """File split into ordered chunks."""
    chunks: Tuple[ChunkRecord, ...]


Layout = Union[SingleArtifact, ChunkList]


@dataclass(frozen=True)
class Manifest:
    """
    Complete record for one stored file.

    Created once by the write path after every artifact is written, and
    never modified afterwards. Re-chunking a file produces a new manifest.
    """
    original_name: str
    original_size: int
    chunk_size_target: int
    layout: Layout
    created_at: str = field(default_factory=_now_iso)
    version: int = MANIFEST_VERSION

    @classmethod
    def unchunked(cls, original_name: str, artifact: ChunkRecord,
                  chunk_size_target: int, created_at: Optional[str] = None) -> 'Manifest':
        manifest = cls(
            original_name=original_name,
            original_size=artifact.plaintext_size,
            chunk_size_target=chunk_size_target,
            layout=SingleArtifact(artifact),
            created_at=created_at or _now_iso(),
        )
        return manifest.validate()

    @classmethod
    def chunked(cls, original_name: str, original_size: int,
                chunks, chunk_size_target: int,
                created_at: Optional[str] = None) -> 'Manifest':
        manifest = cls(
            original_name=original_name,
            original_size=original_size,
            chunk_size_target=chunk_size_target,
            layout=ChunkList(tuple(sorted(chunks, key=lambda c: c.index))),
            created_at=created_at or _now_iso(),
        )
        return manifest.validate()

    @property
    def is_chunked(self) -> bool:
        return isinstance(self.layout, ChunkList)

    @property
    def chunks(self) -> Tuple[ChunkRecord, ...]:
        """Chunk list; empty for a whole-file artifact."""
        if isinstance(self.layout, ChunkList):
            return self.layout.chunks
        return ()

    @property
    def artifact(self) -> Optional[ChunkRecord]:
        """The single artifact of an unchunked file, else None."""
        if isinstance(self.layout, SingleArtifact):
            return self.layout.artifact
        return None

    @property
    def records(self) -> Tuple[ChunkRecord, ...]:
        """Every artifact to decode, in index order."""
        if isinstance(self.layout, SingleArtifact):
            return (self.layout.artifact,)
        return self.layout.chunks

    @property
    def chunk_count(self) -> int:
        return len(self.records)

    @property
    def stored_size(self) -> int:
        """Total bytes across all artifacts."""
        return sum(r.ciphertext_size for r in self.records)

    @property
    def locations(self) -> Tuple[str, ...]:
        return tuple(r.location for r in self.records)

    @property
    def manifest_hash(self) -> str:
        """Hash of the canonical JSON form."""
        data = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(data.encode('utf-8')).hexdigest()

    def get_chunk(self, index: int) -> Optional[ChunkRecord]:
        """Get a record by index."""
        records = self.records
        if 0 <= index < len(records):
            return records[index]
        return None

    def validate(self) -> 'Manifest':
        """
        Check structural invariants. Returns self.

        Raises:
            StructuralError: on gaps or duplicates in indices, overlapping or
                non-contiguous slices, or sizes that do not add up
        """
        if not self.original_name:
            raise StructuralError('Manifest has no original_name')
        if self.original_size < 0:
            raise StructuralError(f"original_size must be >= 0, got {self.original_size}")
        if self.chunk_size_target < 1:
            raise StructuralError(
                f"chunk_size_target must be >= 1, got {self.chunk_size_target}"
            )

        if isinstance(self.layout, SingleArtifact):
            artifact = self.layout.artifact
            artifact.check()
            if artifact.index != 0 or artifact.offset != 0:
                raise StructuralError('Unchunked artifact must have index 0 and offset 0')
            if artifact.plaintext_size != self.original_size:
                raise StructuralError(
                    f"Size mismatch: original_size {self.original_size} != "
                    f"artifact plaintext_size {artifact.plaintext_size}"
                )
            return self

        if not isinstance(self.layout, ChunkList):
            raise StructuralError(f"Unknown manifest layout {type(self.layout).__name__}")

        chunks = self.layout.chunks
        if not chunks:
            raise StructuralError('Chunked manifest has no chunks')

        indices = [c.index for c in chunks]
        if len(set(indices)) != len(indices):
            duplicates = sorted({i for i in indices if indices.count(i) > 1})
            raise StructuralError(f"Duplicate chunk indices: {duplicates}")
        if set(indices) != set(range(len(chunks))):
            missing = sorted(set(range(len(chunks))) - set(indices))
            raise StructuralError(
                f"Chunk indices are not a dense 0..{len(chunks) - 1} range "
                f"(missing {missing})"
            )
        if indices != sorted(indices):
            raise StructuralError('Chunks are not ordered by index')

        offset = 0
        for chunk in chunks:
            chunk.check()
            if chunk.offset != offset:
                raise StructuralError(
                    f"Chunk {chunk.index} starts at {chunk.offset}, expected {offset}"
                )
            offset += chunk.plaintext_size

        if offset != self.original_size:
            raise StructuralError(
                f"Size mismatch: chunks sum to {offset}, "
                f"original_size is {self.original_size}"
            )
        return self

    def to_dict(self) -> Dict:
        """Serialize to dictionary (flag form)."""
        data = {
            'version': self.version,
            'original_name': self.original_name,
            'original_size': self.original_size,
            'chunk_size_target': self.chunk_size_target,
            'is_chunked': self.is_chunked,
            'num_chunks': self.chunk_count,
            'created_at': self.created_at,
            'chunks': [c.to_dict() for c in self.chunks],
        }

        artifact = self.artifact
        if artifact is not None:
            data['location'] = artifact.location
            data['ciphertext_size'] = artifact.ciphertext_size
            data['plaintext_hash'] = artifact.plaintext_hash

        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Manifest':
        """
        Deserialize and validate.

        The chunk list is taken as written: entries out of index order are a
        StructuralError, not silently re-sorted.
        """
        if not isinstance(data, dict):
            raise StructuralError(f"Manifest must be an object, got {type(data).__name__}")

        version = data.get('version', MANIFEST_VERSION)
        if version != MANIFEST_VERSION:
            raise StructuralError(f"Unsupported manifest version {version!r}")

        original_name = _require_str(data, 'original_name')
        original_size = _require_int(data, 'original_size')
        chunk_size_target = _require_int(data, 'chunk_size_target', minimum=1)
        created_at = data.get('created_at') or _now_iso()

        is_chunked = data.get('is_chunked')
        if not isinstance(is_chunked, bool):
            raise StructuralError(f"Field 'is_chunked' must be a boolean, got {is_chunked!r}")

        raw_chunks = data.get('chunks', [])
        if not isinstance(raw_chunks, list):
            raise StructuralError("Field 'chunks' must be a list")

        if is_chunked:
            chunks = [ChunkRecord.from_dict(c) for c in raw_chunks]
            num_chunks = data.get('num_chunks', len(chunks))
            if num_chunks != len(chunks):
                raise StructuralError(
                    f"num_chunks is {num_chunks} but {len(chunks)} chunks listed"
                )
            layout = ChunkList(tuple(chunks))
        else:
            if raw_chunks:
                raise StructuralError('Unchunked manifest must have an empty chunk list')
            layout = SingleArtifact(ChunkRecord(
                index=0,
                location=_require_str(data, 'location'),
                offset=0,
                ciphertext_size=_require_int(data, 'ciphertext_size'),
                plaintext_size=original_size,
                plaintext_hash=_require_str(data, 'plaintext_hash'),
            ))

        manifest = cls(
            original_name=original_name,
            original_size=original_size,
            chunk_size_target=chunk_size_target,
            layout=layout,
            created_at=created_at,
            version=version,
        )
        return manifest.validate()

    def to_json(self, indent: int = None) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'Manifest':
        """Deserialize from JSON string."""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise StructuralError(f"Manifest is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def save(self, path: Path):
        """Save manifest to a file."""
        with open(path, 'w') as f:
            f.write(self.to_json(indent=2))

    @classmethod
    def load(cls, path: Path) -> 'Manifest':
        """Load and validate a manifest from a file."""
        with open(path, 'r') as f:
            return cls.from_json(f.read())
