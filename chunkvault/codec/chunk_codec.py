"""
Chunk Codec

Per-chunk transform pipeline:

    encode:  plaintext --sha256--> hash
             plaintext --zstd--> compressed --x25519/chacha20poly1305--> ciphertext
    decode:  ciphertext --decrypt--> compressed --zstd -d--> plaintext

Both directions are pure functions over in-memory buffers. A failing stage
aborts the chunk; there is no fallback to an uncompressed or unencrypted
representation.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass

from .compression import compress, decompress
from .encryption import encrypt, decrypt, ENVELOPE_OVERHEAD
from ..config import DEFAULT_COMPRESSION_LEVEL, MIN_COMPRESSION_LEVEL, MAX_COMPRESSION_LEVEL
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

# Digest length in hex characters (SHA-256)
HASH_HEX_LENGTH = 64


def calculate_hash(data: bytes) -> str:
    """SHA-256 of data as a hex string."""
    return hashlib.sha256(data).hexdigest()


def zstd_compress_bound(size: int) -> int:
    """Worst-case zstd frame size for an input of `size` bytes (ZSTD_COMPRESSBOUND)."""
    margin = ((128 * 1024 - size) >> 11) if size < 128 * 1024 else 0
    return size + (size >> 8) + margin


@dataclass
class EncodedChunk:
    """Result of encoding one plaintext slice."""
    ciphertext: bytes
    plaintext_hash: str
    plaintext_size: int

    @property
    def ciphertext_size(self) -> int:
        return len(self.ciphertext)


class ChunkCodec:
    """
    Compresses then encrypts chunks, and reverses it.

    Keeps simple counters so callers (and tests) can see how much transform
    work actually ran.
    """

    def __init__(self, compression_level: int = DEFAULT_COMPRESSION_LEVEL):
        if not MIN_COMPRESSION_LEVEL <= compression_level <= MAX_COMPRESSION_LEVEL:
            raise ConfigurationError(
                f"compression_level must be between {MIN_COMPRESSION_LEVEL} and "
                f"{MAX_COMPRESSION_LEVEL}, got {compression_level}"
            )
        self.compression_level = compression_level

        # Statistics (encode/decode run in worker threads)
        self.chunks_encoded = 0
        self.chunks_decoded = 0
        self._stats_lock = threading.Lock()

    @staticmethod
    def max_encoded_size(plaintext_size: int) -> int:
        """Upper bound on the artifact size for a plaintext of the given length."""
        return zstd_compress_bound(plaintext_size) + ENVELOPE_OVERHEAD

    def encode(self, plaintext: bytes, public_key: str) -> EncodedChunk:
        """
        Hash, compress and encrypt a plaintext slice.

        Raises:
            ConfigurationError: public key missing or malformed
            EncodeError: compression or encryption failed
        """
        if not public_key:
            raise ConfigurationError('Public key required for encoding')

        plaintext_hash = calculate_hash(plaintext)
        compressed = compress(plaintext, self.compression_level)
        ciphertext = encrypt(compressed, public_key)

        with self._stats_lock:
            self.chunks_encoded += 1
        logger.debug(f"Encoded {len(plaintext):,} bytes -> {len(ciphertext):,} bytes "
                     f"(hash={plaintext_hash[:16]}...)")

        return EncodedChunk(
            ciphertext=ciphertext,
            plaintext_hash=plaintext_hash,
            plaintext_size=len(plaintext),
        )

    def decode(self, ciphertext: bytes, private_key: str) -> bytes:
        """
        Decrypt and decompress an artifact.

        Raises:
            ConfigurationError: private key missing or malformed
            DecodeError: wrong key, tampered ciphertext or malformed frame
        """
        if not private_key:
            raise ConfigurationError('Private key required for decoding')

        compressed = decrypt(ciphertext, private_key)
        plaintext = decompress(compressed)

        with self._stats_lock:
            self.chunks_decoded += 1
        logger.debug(f"Decoded {len(ciphertext):,} bytes -> {len(plaintext):,} bytes")

        return plaintext

    def get_stats(self) -> dict:
        """Get codec statistics."""
        return {
            'chunks_encoded': self.chunks_encoded,
            'chunks_decoded': self.chunks_decoded,
            'compression_level': self.compression_level,
        }
