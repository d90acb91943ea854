"""
Codec Module - Compression and Encryption

Turns plaintext chunks into stored artifacts and back.
"""

from .chunk_codec import ChunkCodec, EncodedChunk, calculate_hash, HASH_HEX_LENGTH
from .encryption import ENVELOPE_OVERHEAD

__all__ = [
    'ChunkCodec',
    'EncodedChunk',
    'calculate_hash',
    'HASH_HEX_LENGTH',
    'ENVELOPE_OVERHEAD',
]
