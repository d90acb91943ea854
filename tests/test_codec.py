"""Tests for the compress-then-encrypt chunk codec."""

import os

import pytest

from chunkvault.codec import ChunkCodec, ENVELOPE_OVERHEAD, calculate_hash
from chunkvault.codec.compression import compress, decompress
from chunkvault.codec.encryption import HEADER_BYTES, decrypt, encrypt
from chunkvault.errors import ConfigurationError, DecodeError
from chunkvault.keys import generate_keypair


class TestCompression:
    """Tests for the zstd stage."""

    def test_roundtrip(self, compressible):
        data = compressible(50_000)
        compressed = compress(data, level=3)

        assert len(compressed) < len(data)
        assert decompress(compressed) == data

    def test_empty_input(self):
        assert decompress(compress(b"", level=3)) == b""

    def test_garbage_raises_decode_error(self):
        with pytest.raises(DecodeError) as exc_info:
            decompress(b"definitely not a zstd frame")
        assert exc_info.value.stage == "decompress"

    def test_truncated_frame_raises_decode_error(self):
        frame = compress(os.urandom(10_000), level=3)

        with pytest.raises(DecodeError):
            decompress(frame[:-100])


class TestEncryption:
    """Tests for the public-key envelope."""

    def test_overhead_is_fixed(self, keypair):
        public_key, private_key = keypair

        for size in (0, 1, 1000):
            envelope = encrypt(b"x" * size, public_key)
            assert len(envelope) == size + ENVELOPE_OVERHEAD
            assert decrypt(envelope, private_key) == b"x" * size

    def test_encryption_is_randomized(self, keypair):
        public_key, _ = keypair
        assert encrypt(b"same", public_key) != encrypt(b"same", public_key)

    def test_header_is_authenticated(self, keypair):
        """Flipping a header byte fails authentication."""
        public_key, private_key = keypair
        envelope = bytearray(encrypt(b"secret", public_key))
        envelope[HEADER_BYTES - 1] ^= 0x01

        with pytest.raises(DecodeError):
            decrypt(bytes(envelope), private_key)

    def test_unknown_version_rejected(self, keypair):
        public_key, private_key = keypair
        envelope = bytearray(encrypt(b"secret", public_key))
        envelope[0] = 99

        with pytest.raises(DecodeError, match="version"):
            decrypt(bytes(envelope), private_key)

    def test_too_short_rejected(self, keypair):
        _, private_key = keypair

        with pytest.raises(DecodeError, match="too short"):
            decrypt(b"\x01" * 10, private_key)


class TestChunkCodec:
    """Tests for the combined codec."""

    def test_roundtrip(self, codec, keypair, compressible):
        public_key, private_key = keypair
        data = compressible(100_000)

        encoded = codec.encode(data, public_key)

        assert encoded.plaintext_hash == calculate_hash(data)
        assert encoded.plaintext_size == len(data)
        assert encoded.ciphertext_size < len(data)
        assert codec.decode(encoded.ciphertext, private_key) == data

    def test_empty_roundtrip(self, codec, keypair):
        public_key, private_key = keypair
        encoded = codec.encode(b"", public_key)

        assert codec.decode(encoded.ciphertext, private_key) == b""

    def test_incompressible_data_within_bound(self, codec, keypair):
        """Random data grows, but never past max_encoded_size()."""
        public_key, _ = keypair
        data = os.urandom(64 * 1024)

        encoded = codec.encode(data, public_key)

        assert encoded.ciphertext_size > len(data)
        assert encoded.ciphertext_size <= ChunkCodec.max_encoded_size(len(data))

    def test_wrong_key_fails(self, codec, keypair):
        public_key, _ = keypair
        _, other_private = generate_keypair()
        encoded = codec.encode(b"for someone else", public_key)

        with pytest.raises(DecodeError) as exc_info:
            codec.decode(encoded.ciphertext, other_private)
        assert exc_info.value.stage == "decrypt"

    def test_tampered_ciphertext_fails(self, codec, keypair, compressible):
        public_key, private_key = keypair
        ciphertext = bytearray(codec.encode(compressible(5000), public_key).ciphertext)
        ciphertext[len(ciphertext) // 2] ^= 0xFF

        with pytest.raises(DecodeError):
            codec.decode(bytes(ciphertext), private_key)

    def test_truncated_ciphertext_fails(self, codec, keypair):
        public_key, private_key = keypair
        ciphertext = codec.encode(b"some bytes", public_key).ciphertext

        with pytest.raises(DecodeError):
            codec.decode(ciphertext[:-1], private_key)

    def test_missing_keys(self, codec, keypair):
        public_key, _ = keypair

        with pytest.raises(ConfigurationError):
            codec.encode(b"data", "")
        with pytest.raises(ConfigurationError):
            codec.decode(codec.encode(b"data", public_key).ciphertext, None)

    def test_malformed_key(self, codec):
        with pytest.raises(ConfigurationError):
            codec.encode(b"data", "not-a-key")

    def test_invalid_compression_level(self):
        with pytest.raises(ConfigurationError):
            ChunkCodec(compression_level=0)
        with pytest.raises(ConfigurationError):
            ChunkCodec(compression_level=23)

    def test_stats(self, codec, keypair):
        public_key, private_key = keypair
        encoded = codec.encode(b"count me", public_key)
        codec.decode(encoded.ciphertext, private_key)
        codec.decode(encoded.ciphertext, private_key)

        stats = codec.get_stats()

        assert stats["chunks_encoded"] == 1
        assert stats["chunks_decoded"] == 2
        assert stats["compression_level"] == 3
