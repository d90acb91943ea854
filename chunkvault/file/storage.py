"""
Artifact and Manifest Storage

Design Decision: Storage Strategy
==================================

Options Considered:
1. Content-addressed artifacts (name = hash)
   - Natural dedup, but identical chunks would be shared across files
2. Per-file names with a write generation
   - <name>.<generation>.chunk.<NNN>.enc
   - A rewrite never touches artifacts an older manifest still points at
3. SQLite blob storage
   - Single file, but defeats the per-object size ceiling

Decision: Flat directory of generation-tagged artifacts
- Easy to inspect and to mirror to an object store
- Orphans from aborted or superseded writes are found by diffing against
  the manifests

Storage Layout:
```
data/
├── artifacts/        # Encoded chunk blobs
│   ├── photo.jpg.3f2a9c1d0e4b.enc
│   └── video.mp4.9b1e0c7a2d55.chunk.000.enc
├── manifests/        # One manifest per logical file
│   └── video.mp4.manifest.json
└── temp/             # Partial writes, renamed into place
```

All writes go to temp/ first and are renamed into place, so a reader never
sees a half-written artifact or manifest.
"""

import os
import uuid
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set
from dataclasses import dataclass

import aiofiles
import aiofiles.os

from .manifest import Manifest
from ..errors import ArtifactNotFoundError, StructuralError

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = '.manifest.json'


def check_key(key: str, what: str = 'location') -> str:
    """Reject keys that could escape the storage directory."""
    if (not key or key in ('.', '..') or '/' in key or '\\' in key
            or '\x00' in key or key.startswith('.')):
        raise ValueError(f"Invalid {what}: {key!r}")
    return key


@dataclass
class StorageStats:
    """Statistics about stored data."""
    total_artifacts: int
    total_bytes: int
    manifest_count: int


class ArtifactStore:
    """
    Location -> bytes interface used by the write and read paths.

    Subclasses may be a filesystem, an object store, or memory.
    """

    async def write(self, location: str, data: bytes):
        raise NotImplementedError

    async def read(self, location: str) -> bytes:
        """Return the bytes at location or raise ArtifactNotFoundError."""
        raise NotImplementedError

    async def exists(self, location: str) -> bool:
        raise NotImplementedError

    async def delete(self, location: str) -> bool:
        raise NotImplementedError

    async def size(self, location: str) -> int:
        """Stored byte length at location."""
        raise NotImplementedError

    async def list_locations(self) -> List[str]:
        raise NotImplementedError


class MemoryArtifactStore(ArtifactStore):
    """In-process artifact store."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    async def write(self, location: str, data: bytes):
        self._blobs[check_key(location)] = bytes(data)

    async def read(self, location: str) -> bytes:
        try:
            return self._blobs[location]
        except KeyError:
            raise ArtifactNotFoundError(location) from None

    async def exists(self, location: str) -> bool:
        return location in self._blobs

    async def delete(self, location: str) -> bool:
        return self._blobs.pop(location, None) is not None

    async def size(self, location: str) -> int:
        return len(await self.read(location))

    async def list_locations(self) -> List[str]:
        return sorted(self._blobs)


class FileArtifactStore(ArtifactStore):
    """Artifacts as files in a single directory."""

    def __init__(self, artifacts_dir: Path, temp_dir: Optional[Path] = None):
        self.artifacts_dir = Path(artifacts_dir)
        self.temp_dir = Path(temp_dir) if temp_dir else self.artifacts_dir.parent / 'temp'

        # Ensure directories exist
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, location: str) -> Path:
        return self.artifacts_dir / check_key(location)

    async def write(self, location: str, data: bytes):
        """Write atomically (write to temp, then rename)."""
        final_path = self._path(location)
        temp_path = self.temp_dir / f"{location}.{uuid.uuid4().hex}.tmp"

        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
                await f.flush()
                os.fsync(f.fileno())
            await aiofiles.os.rename(temp_path, final_path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise

    async def read(self, location: str) -> bytes:
        path = self._path(location)
        if not path.exists():
            raise ArtifactNotFoundError(location)

        async with aiofiles.open(path, 'rb') as f:
            return await f.read()

    async def exists(self, location: str) -> bool:
        return self._path(location).exists()

    async def delete(self, location: str) -> bool:
        path = self._path(location)
        if path.exists():
            await aiofiles.os.remove(path)
            return True
        return False

    async def size(self, location: str) -> int:
        path = self._path(location)
        if not path.exists():
            raise ArtifactNotFoundError(location)
        return path.stat().st_size

    async def list_locations(self) -> List[str]:
        return sorted(p.name for p in self.artifacts_dir.iterdir() if p.is_file())


class ManifestStore:
    """One JSON manifest per logical file name."""

    def __init__(self, manifests_dir: Path, temp_dir: Optional[Path] = None):
        self.manifests_dir = Path(manifests_dir)
        self.temp_dir = Path(temp_dir) if temp_dir else self.manifests_dir.parent / 'temp'

        self.manifests_dir.mkdir(parents=True, exist_ok=True)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def _manifest_path(self, name: str) -> Path:
        return self.manifests_dir / f"{check_key(name, 'name')}{MANIFEST_SUFFIX}"

    async def save(self, manifest: Manifest) -> Path:
        """
        Store a manifest, replacing any previous one for the same name.

        Only call this after every artifact it references is written.
        """
        manifest.validate()
        path = self._manifest_path(manifest.original_name)
        temp_path = self.temp_dir / f"{path.name}.{uuid.uuid4().hex}.tmp"

        try:
            async with aiofiles.open(temp_path, 'w') as f:
                await f.write(manifest.to_json(indent=2))
                await f.flush()
                os.fsync(f.fileno())
            await aiofiles.os.rename(temp_path, path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise

        logger.debug(f"Manifest written: {path}")
        return path

    async def load(self, name: str) -> Manifest:
        """
        Load and validate a manifest.

        Raises:
            ArtifactNotFoundError: no manifest for this name
            StructuralError: the manifest is malformed
        """
        path = self._manifest_path(name)
        if not path.exists():
            raise ArtifactNotFoundError(path.name)

        async with aiofiles.open(path, 'r') as f:
            data = await f.read()

        return Manifest.from_json(data)

    async def exists(self, name: str) -> bool:
        return self._manifest_path(name).exists()

    async def delete(self, name: str) -> bool:
        path = self._manifest_path(name)
        if path.exists():
            await aiofiles.os.remove(path)
            return True
        return False

    def list_names(self) -> List[str]:
        """Logical names with a stored manifest, sorted."""
        return sorted(
            p.name[:-len(MANIFEST_SUFFIX)]
            for p in self.manifests_dir.glob(f"*{MANIFEST_SUFFIX}")
        )

    async def list_manifests(self) -> List[Manifest]:
        """All stored manifests. Malformed ones are logged and left out."""
        manifests = []
        for name in self.list_names():
            try:
                manifests.append(await self.load(name))
            except StructuralError as e:
                logger.warning(f"Skipping corrupted manifest {name}: {e}")
        return manifests


async def referenced_locations(manifest_store: ManifestStore) -> Set[str]:
    """Every artifact location named by a stored manifest. Strict: a malformed manifest raises."""
    referenced: Set[str] = set()
    for name in manifest_store.list_names():
        manifest = await manifest_store.load(name)
        referenced.update(manifest.locations)
    return referenced


async def collect_orphans(artifact_store: ArtifactStore,
                          manifest_store: ManifestStore,
                          keep: Iterable[str] = ()) -> List[str]:
    """
    Remove artifacts that no manifest references.

    These come from aborted writes and from generations replaced by a
    newer manifest. Do not run while a write is in progress: its artifacts
    are unreferenced until its manifest lands. A malformed manifest aborts
    the collection with StructuralError.

    Returns:
        The removed locations
    """
    referenced = await referenced_locations(manifest_store)
    referenced.update(keep)

    removed = []
    for location in await artifact_store.list_locations():
        if location not in referenced:
            await artifact_store.delete(location)
            removed.append(location)

    if removed:
        logger.info(f"Removed {len(removed)} orphaned artifact(s)")
    return removed


async def get_storage_stats(artifact_store: ArtifactStore,
                            manifest_store: ManifestStore) -> StorageStats:
    """Get storage statistics."""
    locations = await artifact_store.list_locations()
    total_bytes = 0
    for location in locations:
        total_bytes += await artifact_store.size(location)

    return StorageStats(
        total_artifacts=len(locations),
        total_bytes=total_bytes,
        manifest_count=len(manifest_store.list_names()),
    )
