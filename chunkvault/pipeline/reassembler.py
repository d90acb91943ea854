"""
Reassembler / Verifier

Read path: validate manifest -> decode every artifact -> verify each digest
-> concatenate by index -> verify total length.

Design Decision: Failure Policy
===============================

Options Considered:
1. Retry failed chunks
   - Useful for flaky transports
   - Useless here: decoding the same ciphertext again gives the same result
2. Skip bad chunks and return what decodes
   - Silently wrong output
3. Fail the whole reconstruction on the first bad chunk

Decision: Fail fast, no retries
- Structural checks run before any key is touched
- A digest mismatch names the chunk and both digests
- Re-fetching artifacts from another source and trying again is the
  caller's call

Chunks decode concurrently (bounded by max_workers) but are always
assembled by index, never by completion order.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
import aiofiles.os

from .cache import TransformCache, create_cache
from .progress import TransformProgress, ProgressCallback, gather_ordered
from ..codec import ChunkCodec, calculate_hash
from ..config import Config
from ..errors import IntegrityError, SizeViolationError, ConfigurationError
from ..file.manifest import Manifest, ChunkRecord
from ..file.storage import ArtifactStore, FileArtifactStore, ManifestStore
from ..keys import KeyProvider, StaticKeyProvider, load_private_key

logger = logging.getLogger(__name__)


class Reassembler:
    """
    Rebuilds the exact original bytes of a stored file, or fails.
    """

    def __init__(self, artifact_store: ArtifactStore, key_provider: KeyProvider,
                 codec: ChunkCodec = None, cache: Optional[TransformCache] = None,
                 manifest_store: Optional[ManifestStore] = None,
                 max_workers: int = 4):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.artifact_store = artifact_store
        self.key_provider = key_provider
        self.codec = codec or ChunkCodec()
        self.cache = cache
        self.manifest_store = manifest_store
        self.max_workers = max_workers

        # Statistics
        self.files_reconstructed = 0
        self.total_bytes = 0

    @classmethod
    def from_config(cls, config: Config, key_provider: KeyProvider = None,
                    cache: TransformCache = None) -> 'Reassembler':
        """Build a filesystem-backed reassembler from configuration."""
        config.validate()
        return cls(
            artifact_store=FileArtifactStore(config.artifacts_dir),
            key_provider=key_provider or StaticKeyProvider(private_key=config.private_key),
            codec=ChunkCodec(config.compression_level),
            cache=cache if cache is not None else create_cache(config),
            manifest_store=ManifestStore(config.manifests_dir),
            max_workers=config.max_workers,
        )

    def _private_key(self) -> str:
        private_key = self.key_provider.private_key()
        load_private_key(private_key)
        return private_key

    async def decode_artifact(self, location: str, private_key: str = None) -> bytes:
        """
        Decrypt and decompress one artifact, going through the cache.

        Raises:
            ArtifactNotFoundError: nothing stored at location
            DecodeError: wrong key, tampered ciphertext or malformed frame
        """
        private_key = private_key or self._private_key()

        async def load() -> bytes:
            ciphertext = await self.artifact_store.read(location)
            return await asyncio.to_thread(self.codec.decode, ciphertext, private_key)

        if self.cache is None:
            return await load()
        return await self.cache.get_or_load(location, load)

    async def _decode_record(self, record: ChunkRecord, private_key: str) -> bytes:
        plaintext = await self.decode_artifact(record.location, private_key)

        actual = await asyncio.to_thread(calculate_hash, plaintext)
        if actual != record.plaintext_hash:
            if self.cache is not None:
                self.cache.invalidate(record.location)
            logger.error(f"Chunk {record.index} hash mismatch at {record.location}")
            raise IntegrityError(record.index, record.plaintext_hash, actual)

        return plaintext

    async def reconstruct(self, manifest: Manifest,
                          progress_callback: ProgressCallback = None) -> bytes:
        """
        Produce the original bytes described by a manifest.

        Raises:
            StructuralError: the manifest is inconsistent (checked first)
            ConfigurationError: no usable private key
            ArtifactNotFoundError: a referenced artifact is missing
            DecodeError: an artifact failed to decrypt or decompress
            IntegrityError: a decoded chunk does not match its digest
            SizeViolationError: the assembled length is wrong
        """
        manifest.validate()
        private_key = self._private_key()

        logger.info(f"Reconstructing {manifest.original_name} "
                    f"({manifest.chunk_count} artifact(s))...")

        progress = TransformProgress(
            file_name=manifest.original_name,
            total_chunks=manifest.chunk_count,
            phase='decoding',
        )
        progress_lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self.max_workers)

        async def decode_one(record: ChunkRecord) -> bytes:
            async with semaphore:
                plaintext = await self._decode_record(record, private_key)

            async with progress_lock:
                progress.completed_chunks += 1
                progress.bytes_processed += len(plaintext)
                if progress_callback:
                    progress_callback(progress)

            logger.debug(f"   Chunk {record.index + 1}/{manifest.chunk_count} verified")
            return plaintext

        try:
            # gather_ordered keeps submission order, which is index order
            slices = await gather_ordered(decode_one(r) for r in manifest.records)

            progress.phase = 'assembling'
            data = b''.join(slices)

            if len(data) != manifest.original_size:
                logger.error(f"Size mismatch for {manifest.original_name}")
                raise SizeViolationError(
                    f"File size mismatch! Expected {manifest.original_size}, got {len(data)}",
                    actual=len(data),
                    limit=manifest.original_size,
                )
        except BaseException:
            progress.phase = 'failed'
            if progress_callback:
                progress_callback(progress)
            raise

        progress.phase = 'complete'
        if progress_callback:
            progress_callback(progress)

        self.files_reconstructed += 1
        self.total_bytes += len(data)

        logger.info(f"   Reassembled {manifest.original_name}: {len(data):,} bytes")
        return data

    async def verify(self, manifest: Manifest) -> bool:
        """Run a full reconstruction and discard the bytes. Raises on any failure."""
        await self.reconstruct(manifest)
        return True

    async def missing_artifacts(self, manifest: Manifest) -> List[str]:
        """Locations the manifest references that the store does not have."""
        missing = []
        for location in manifest.locations:
            if not await self.artifact_store.exists(location):
                missing.append(location)
        return missing

    async def reconstruct_to_file(self, manifest: Manifest, output_path: Path,
                                  progress_callback: ProgressCallback = None) -> Path:
        """
        Reconstruct and write to output_path.

        The file only appears once fully written and verified.
        """
        data = await self.reconstruct(manifest, progress_callback)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = output_path.parent / f".{output_path.name}.{uuid.uuid4().hex}.tmp"

        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.rename(temp_path, output_path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise

        return output_path

    def _require_manifest_store(self) -> ManifestStore:
        if self.manifest_store is None:
            raise ConfigurationError('A manifest store is required to look up files by name')
        return self.manifest_store

    async def reconstruct_by_name(self, name: str,
                                  progress_callback: ProgressCallback = None) -> bytes:
        """Load the manifest for a logical name and reconstruct it."""
        manifest = await self._require_manifest_store().load(name)
        return await self.reconstruct(manifest, progress_callback)

    async def restore_all(self, output_dir: Path,
                          progress_callback: ProgressCallback = None) -> List[Dict]:
        """
        Reconstruct every stored file into a directory.

        Returns:
            One {'file', 'size', 'path'} entry per restored file
        """
        store = self._require_manifest_store()
        output_dir = Path(output_dir)
        logger.info(f"Restoring all files to {output_dir}")

        results = []
        for name in store.list_names():
            manifest = await store.load(name)
            path = await self.reconstruct_to_file(
                manifest, output_dir / manifest.original_name, progress_callback
            )
            results.append({
                'file': manifest.original_name,
                'size': manifest.original_size,
                'path': path,
            })
        return results

    def clear_cache(self):
        if self.cache is not None:
            self.cache.clear()

    def get_stats(self) -> dict:
        """Get reassembler statistics."""
        return {
            'files_reconstructed': self.files_reconstructed,
            'total_bytes': self.total_bytes,
            'codec': self.codec.get_stats(),
            'cache': self.cache.get_stats() if self.cache is not None else None,
        }
