"""
Chunk Writer

Write path: plan -> encode every slice -> write every artifact -> write the
manifest, strictly in that order.

Design Decision: Commit Point
=============================

The manifest is the commit record. It is written only after every artifact
it references is durably stored, and it is written atomically. If anything
fails first, no manifest is written and the artifacts already stored are
orphans: never referenced, never reused, and removed by collect_orphans().

Each write uses a fresh generation token in its artifact names, so
re-chunking a file never overwrites artifacts an older manifest still
points at.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from .progress import TransformProgress, ProgressCallback, gather_ordered
from ..codec import ChunkCodec
from ..config import Config
from ..file.chunker import ChunkPlanner, ChunkPlan, ByteRange, read_range
from ..file.manifest import Manifest, ChunkRecord
from ..file.storage import (
    ArtifactStore, FileArtifactStore, ManifestStore, check_key
)
from ..keys import KeyProvider, StaticKeyProvider, load_public_key

logger = logging.getLogger(__name__)

SliceReader = Callable[[ByteRange], Awaitable[bytes]]


def new_generation() -> str:
    """Short random token distinguishing one write of a file from the next."""
    return uuid.uuid4().hex[:12]


def artifact_location(name: str, generation: str, index: Optional[int] = None) -> str:
    """Artifact name for a chunk, or for the whole file when index is None."""
    if index is None:
        return f"{name}.{generation}.enc"
    return f"{name}.{generation}.chunk.{index:03d}.enc"


class ChunkWriter:
    """
    Splits, encodes and stores files, then records them in a manifest.
    """

    def __init__(self, artifact_store: ArtifactStore, manifest_store: ManifestStore,
                 key_provider: KeyProvider, codec: ChunkCodec = None,
                 planner: ChunkPlanner = None, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.artifact_store = artifact_store
        self.manifest_store = manifest_store
        self.key_provider = key_provider
        self.codec = codec or ChunkCodec()
        self.planner = planner or ChunkPlanner()
        self.max_workers = max_workers

        # Statistics
        self.files_written = 0
        self.bytes_in = 0
        self.bytes_out = 0

    @classmethod
    def from_config(cls, config: Config,
                    key_provider: KeyProvider = None) -> 'ChunkWriter':
        """Build a filesystem-backed writer from configuration."""
        config.validate()
        return cls(
            artifact_store=FileArtifactStore(config.artifacts_dir),
            manifest_store=ManifestStore(config.manifests_dir),
            key_provider=key_provider or StaticKeyProvider(public_key=config.public_key),
            codec=ChunkCodec(config.compression_level),
            planner=ChunkPlanner(config.max_artifact_size, config.chunk_size),
            max_workers=config.max_workers,
        )

    async def plan_and_encode(self, file_path: Path, name: str = None,
                              progress_callback: ProgressCallback = None) -> Manifest:
        """
        Chunk, encode and store a file.

        Args:
            file_path: Source file
            name: Logical name (defaults to the file name)
            progress_callback: Optional callback for progress updates

        Returns:
            The committed manifest

        Raises:
            ConfigurationError: no usable public key
            EncodeError: a transform failed
            SizeViolationError: an artifact came out larger than the ceiling
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")

        name = name or file_path.name
        file_size = file_path.stat().st_size

        async def read_slice(byte_range: ByteRange) -> bytes:
            return await read_range(file_path, byte_range)

        logger.info(f"Chunking {file_path}...")
        return await self._store(name, file_size, read_slice, progress_callback)

    async def encode_bytes(self, name: str, data: bytes,
                           progress_callback: ProgressCallback = None) -> Manifest:
        """Same as plan_and_encode() for an in-memory buffer."""
        view = memoryview(data)

        async def read_slice(byte_range: ByteRange) -> bytes:
            return bytes(view[byte_range.offset:byte_range.end])

        return await self._store(name, len(data), read_slice, progress_callback)

    async def process_directory(self, input_dir: Path,
                                progress_callback: ProgressCallback = None) -> List[Manifest]:
        """Chunk every regular, non-hidden file directly inside a directory."""
        input_dir = Path(input_dir)
        logger.info(f"Processing directory: {input_dir}")

        results = []
        for path in sorted(input_dir.iterdir()):
            if not path.is_file():
                continue
            if path.name.startswith('.'):
                logger.debug(f"Skipping hidden file {path.name}")
                continue
            results.append(await self.plan_and_encode(path, progress_callback=progress_callback))

        return results

    async def _store(self, name: str, file_size: int, read_slice: SliceReader,
                     progress_callback: Optional[ProgressCallback]) -> Manifest:
        check_key(name, 'name')

        # Fail fast on missing or malformed key material
        public_key = self.key_provider.public_key()
        load_public_key(public_key)

        plan = self.planner.plan(file_size)
        generation = new_generation()

        if plan.is_chunked:
            logger.info(f"   Splitting into {plan.chunk_count} chunks of "
                        f"~{plan.chunk_size / 1024 / 1024:.1f}MB each")

        progress = TransformProgress(file_name=name, total_chunks=plan.chunk_count,
                                     phase='encoding')
        progress_lock = asyncio.Lock()
        semaphore = asyncio.Semaphore(self.max_workers)

        async def encode_one(byte_range: ByteRange) -> ChunkRecord:
            async with semaphore:
                plaintext = await read_slice(byte_range)
                encoded = await asyncio.to_thread(self.codec.encode, plaintext, public_key)

                # Post-encode size check against the ceiling
                self.planner.check_artifact_size(encoded.ciphertext_size, byte_range.index)

                location = artifact_location(
                    name, generation, byte_range.index if plan.is_chunked else None
                )
                await self.artifact_store.write(location, encoded.ciphertext)

            async with progress_lock:
                progress.completed_chunks += 1
                progress.bytes_processed += byte_range.length
                if progress_callback:
                    progress_callback(progress)

            logger.debug(f"   Chunk {byte_range.index + 1}/{plan.chunk_count}: "
                         f"{encoded.ciphertext_size / 1024:.0f}KB -> {location}")

            return ChunkRecord(
                index=byte_range.index,
                location=location,
                offset=byte_range.offset,
                ciphertext_size=encoded.ciphertext_size,
                plaintext_size=encoded.plaintext_size,
                plaintext_hash=encoded.plaintext_hash,
            )

        try:
            records = await gather_ordered(encode_one(r) for r in plan.ranges)

            progress.phase = 'writing_manifest'
            manifest = self._build_manifest(name, plan, records)
            await self.manifest_store.save(manifest)
        except BaseException:
            progress.phase = 'failed'
            if progress_callback:
                progress_callback(progress)
            logger.error(f"Chunking {name} failed; artifacts of generation "
                         f"{generation} are left orphaned")
            raise

        progress.phase = 'complete'
        if progress_callback:
            progress_callback(progress)

        self.files_written += 1
        self.bytes_in += manifest.original_size
        self.bytes_out += manifest.stored_size

        logger.info(f"   Stored {name}: {manifest.chunk_count} artifact(s), "
                    f"{manifest.original_size:,} -> {manifest.stored_size:,} bytes")
        return manifest

    def _build_manifest(self, name: str, plan: ChunkPlan,
                        records: List[ChunkRecord]) -> Manifest:
        if plan.is_chunked:
            return Manifest.chunked(
                original_name=name,
                original_size=plan.total_size,
                chunks=records,
                chunk_size_target=plan.chunk_size,
            )
        return Manifest.unchunked(
            original_name=name,
            artifact=records[0],
            chunk_size_target=plan.chunk_size,
        )

    def get_stats(self) -> dict:
        """Get writer statistics."""
        return {
            'files_written': self.files_written,
            'bytes_in': self.bytes_in,
            'bytes_out': self.bytes_out,
            'codec': self.codec.get_stats(),
        }
