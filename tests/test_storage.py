"""Tests for artifact and manifest storage."""

import pytest

from chunkvault.codec import calculate_hash
from chunkvault.errors import ArtifactNotFoundError, StructuralError
from chunkvault.file.manifest import ChunkRecord, Manifest
from chunkvault.file.storage import (
    FileArtifactStore, ManifestStore, MemoryArtifactStore, check_key,
    collect_orphans, get_storage_stats,
)


def make_manifest(name, location):
    record = ChunkRecord(
        index=0, location=location, offset=0, ciphertext_size=70,
        plaintext_size=9, plaintext_hash=calculate_hash(b"123456789"),
    )
    return Manifest.unchunked(name, record, chunk_size_target=10)


class TestCheckKey:
    """Tests for storage key validation."""

    @pytest.mark.parametrize("key", ["", ".", "..", ".hidden", "a/b", "..\\x", "a\x00b"])
    def test_unsafe_keys_rejected(self, key):
        with pytest.raises(ValueError):
            check_key(key)

    def test_safe_key_accepted(self):
        assert check_key("video.mp4.3f2a9c1d0e4b.chunk.000.enc") == \
            "video.mp4.3f2a9c1d0e4b.chunk.000.enc"


class TestFileArtifactStore:
    """Tests for the filesystem artifact store."""

    @pytest.fixture
    def store(self, tmp_path):
        return FileArtifactStore(tmp_path / "artifacts")

    @pytest.mark.asyncio
    async def test_write_and_read(self, store):
        await store.write("a.enc", b"payload")

        assert await store.exists("a.enc")
        assert await store.read("a.enc") == b"payload"
        assert await store.size("a.enc") == 7
        assert await store.list_locations() == ["a.enc"]

    @pytest.mark.asyncio
    async def test_write_leaves_no_temp_files(self, store):
        await store.write("a.enc", b"payload")
        assert list(store.temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_overwrite(self, store):
        await store.write("a.enc", b"old")
        await store.write("a.enc", b"new")
        assert await store.read("a.enc") == b"new"

    @pytest.mark.asyncio
    async def test_read_missing(self, store):
        with pytest.raises(ArtifactNotFoundError) as exc_info:
            await store.read("missing.enc")
        assert exc_info.value.location == "missing.enc"

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.write("a.enc", b"payload")

        assert await store.delete("a.enc")
        assert not await store.exists("a.enc")
        assert not await store.delete("a.enc")

    @pytest.mark.asyncio
    async def test_rejects_path_traversal(self, store):
        with pytest.raises(ValueError):
            await store.write("../escape.enc", b"x")


class TestMemoryArtifactStore:
    """Tests for the in-process artifact store."""

    @pytest.mark.asyncio
    async def test_basic_operations(self, artifact_store):
        await artifact_store.write("b.enc", b"2")
        await artifact_store.write("a.enc", b"1")

        assert await artifact_store.list_locations() == ["a.enc", "b.enc"]
        assert await artifact_store.read("a.enc") == b"1"
        assert await artifact_store.delete("a.enc")
        with pytest.raises(ArtifactNotFoundError):
            await artifact_store.read("a.enc")


class TestManifestStore:
    """Tests for manifest persistence."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, manifest_store):
        manifest = make_manifest("notes.txt", "notes.txt.abc.enc")

        path = await manifest_store.save(manifest)

        assert path.name == "notes.txt.manifest.json"
        assert await manifest_store.exists("notes.txt")
        assert await manifest_store.load("notes.txt") == manifest
        assert manifest_store.list_names() == ["notes.txt"]

    @pytest.mark.asyncio
    async def test_load_missing(self, manifest_store):
        with pytest.raises(ArtifactNotFoundError):
            await manifest_store.load("nothing")

    @pytest.mark.asyncio
    async def test_corrupted_manifest(self, manifest_store):
        await manifest_store.save(make_manifest("good.txt", "good.txt.abc.enc"))
        (manifest_store.manifests_dir / "bad.txt.manifest.json").write_text("{broken")

        with pytest.raises(StructuralError):
            await manifest_store.load("bad.txt")

        manifests = await manifest_store.list_manifests()
        assert [m.original_name for m in manifests] == ["good.txt"]

    @pytest.mark.asyncio
    async def test_delete(self, manifest_store):
        await manifest_store.save(make_manifest("a.txt", "a.txt.abc.enc"))

        assert await manifest_store.delete("a.txt")
        assert not await manifest_store.exists("a.txt")
        assert not await manifest_store.delete("a.txt")


class TestOrphanCollection:
    """Tests for removing unreferenced artifacts."""

    @pytest.mark.asyncio
    async def test_removes_only_unreferenced(self, artifact_store, manifest_store):
        await artifact_store.write("kept.txt.abc.enc", b"k")
        await artifact_store.write("kept.txt.old.enc", b"o")
        await artifact_store.write("aborted.txt.xyz.chunk.000.enc", b"a")
        await manifest_store.save(make_manifest("kept.txt", "kept.txt.abc.enc"))

        removed = await collect_orphans(artifact_store, manifest_store)

        assert sorted(removed) == ["aborted.txt.xyz.chunk.000.enc", "kept.txt.old.enc"]
        assert await artifact_store.list_locations() == ["kept.txt.abc.enc"]

    @pytest.mark.asyncio
    async def test_keep_protects_in_flight_artifacts(self, artifact_store, manifest_store):
        await artifact_store.write("pending.enc", b"p")

        removed = await collect_orphans(artifact_store, manifest_store, keep=["pending.enc"])

        assert removed == []
        assert await artifact_store.exists("pending.enc")

    @pytest.mark.asyncio
    async def test_malformed_manifest_aborts(self, artifact_store, manifest_store):
        await artifact_store.write("x.enc", b"x")
        (manifest_store.manifests_dir / "bad.manifest.json").write_text("[]")

        with pytest.raises(StructuralError):
            await collect_orphans(artifact_store, manifest_store)
        assert await artifact_store.exists("x.enc")


class TestStorageStats:
    """Tests for storage statistics."""

    @pytest.mark.asyncio
    async def test_stats(self, artifact_store, manifest_store):
        await artifact_store.write("a.enc", b"12345")
        await artifact_store.write("b.enc", b"123")
        await manifest_store.save(make_manifest("a", "a.enc"))

        stats = await get_storage_stats(artifact_store, manifest_store)

        assert stats.total_artifacts == 2
        assert stats.total_bytes == 8
        assert stats.manifest_count == 1
