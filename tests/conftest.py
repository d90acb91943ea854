"""Shared fixtures for chunkvault tests."""

import os

import pytest

from chunkvault.codec import ChunkCodec
from chunkvault.file.storage import MemoryArtifactStore, ManifestStore
from chunkvault.keys import StaticKeyProvider, generate_keypair


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's CHUNKVAULT_* variables out of every test."""
    for key in list(os.environ):
        if key.startswith('CHUNKVAULT_'):
            monkeypatch.delenv(key)


@pytest.fixture(scope='session')
def keypair():
    return generate_keypair()


@pytest.fixture
def key_provider(keypair):
    public_key, private_key = keypair
    return StaticKeyProvider(public_key=public_key, private_key=private_key)


@pytest.fixture
def codec():
    # Low level keeps the large-file tests fast
    return ChunkCodec(compression_level=3)


@pytest.fixture
def artifact_store():
    return MemoryArtifactStore()


@pytest.fixture
def manifest_store(tmp_path):
    return ManifestStore(tmp_path / 'manifests')


@pytest.fixture
def compressible():
    """Factory for repetitive data that zstd shrinks dramatically."""
    def make(size: int) -> bytes:
        pattern = b'chunkvault compressible test pattern 0123456789\n'
        return (pattern * (size // len(pattern) + 1))[:size]
    return make
