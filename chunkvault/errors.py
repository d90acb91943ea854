"""
Error Types

Every failure the core can report is a ChunkVaultError carrying a short
machine-readable code. None of these are retried inside the library:
re-running a cryptographic or integrity check against the same bytes
cannot change the outcome.
"""

from typing import Optional


class ChunkVaultError(Exception):
    """Base class for all chunkvault failures."""

    code = 'CHUNKVAULT_ERROR'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ChunkVaultError):
    """Key material or size parameters are missing or invalid."""

    code = 'CONFIG_ERROR'


class EncodeError(ChunkVaultError):
    """Compression or encryption failed on the write path."""

    code = 'ENCODE_ERROR'

    def __init__(self, message: str, stage: str):
        super().__init__(message)
        self.stage = stage


class DecodeError(ChunkVaultError):
    """Decryption or decompression failed on the read path."""

    code = 'DECODE_ERROR'

    def __init__(self, message: str, stage: str):
        super().__init__(message)
        self.stage = stage


class IntegrityError(ChunkVaultError):
    """Decoded plaintext does not match the digest recorded in the manifest."""

    code = 'INTEGRITY_ERROR'

    def __init__(self, index: int, expected: str, actual: str):
        super().__init__(
            f"Chunk {index} hash mismatch! Expected {expected}, got {actual}"
        )
        self.index = index
        self.expected = expected
        self.actual = actual


class SizeViolationError(ChunkVaultError):
    """An artifact exceeds the ceiling, or a reconstruction has the wrong length."""

    code = 'SIZE_VIOLATION'

    def __init__(self, message: str, actual: int, limit: int,
                 index: Optional[int] = None):
        super().__init__(message)
        self.actual = actual
        self.limit = limit
        self.index = index


class StructuralError(ChunkVaultError):
    """A manifest failed its self-consistency checks."""

    code = 'STRUCTURAL_ERROR'


class ArtifactNotFoundError(ChunkVaultError):
    """A store has nothing at the requested location."""

    code = 'ARTIFACT_NOT_FOUND'

    def __init__(self, location: str):
        super().__init__(f"Artifact not found: {location}")
        self.location = location
