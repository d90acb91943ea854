"""
Compression Stage

Zstandard in-process, one frame per chunk.
A truncated frame or trailing bytes after the frame is an error.
"""

import zstandard as zstd

from ..config import DEFAULT_COMPRESSION_LEVEL
from ..errors import EncodeError, DecodeError


def compress(data: bytes, level: int = DEFAULT_COMPRESSION_LEVEL) -> bytes:
    """Compress a byte slice into a single zstd frame."""
    try:
        return zstd.ZstdCompressor(level=level).compress(data)
    except zstd.ZstdError as e:
        raise EncodeError(f"Zstd compression failed: {e}", stage='compress') from e


def decompress(data: bytes) -> bytes:
    """Decompress a single zstd frame."""
    dobj = zstd.ZstdDecompressor().decompressobj()
    try:
        plaintext = dobj.decompress(data)
    except zstd.ZstdError as e:
        raise DecodeError(f"Zstd decompression failed: {e}", stage='decompress') from e

    if not dobj.eof:
        raise DecodeError('Zstd decompression failed: truncated frame', stage='decompress')
    if dobj.unused_data:
        raise DecodeError('Zstd decompression failed: trailing data after frame',
                          stage='decompress')
    return plaintext
