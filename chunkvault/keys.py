"""
Key Provider

Key material reaches the core as opaque strings. The format is a short
prefix followed by the base64url encoding of a raw 32-byte X25519 key:

    cvpub1<base64url>   recipient public key (encode)
    cvsec1<base64url>   recipient private key (decode)

Provisioning is somebody else's job; this module only generates, parses and
hands out keys.
"""

import os
import base64
import binascii
from typing import Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey, X25519PublicKey
)

from .errors import ConfigurationError

PUBLIC_PREFIX = 'cvpub1'
PRIVATE_PREFIX = 'cvsec1'
KEY_BYTES = 32

PUBLIC_KEY_ENV = 'CHUNKVAULT_PUBLIC_KEY'
PRIVATE_KEY_ENV = 'CHUNKVAULT_PRIVATE_KEY'


def _encode(prefix: str, raw: bytes) -> str:
    return prefix + base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


def _decode(prefix: str, key: str, kind: str) -> bytes:
    if not isinstance(key, str) or not key.startswith(prefix):
        raise ConfigurationError(f"Malformed {kind} key: expected '{prefix}' prefix")

    body = key[len(prefix):].strip()
    padding = '=' * (-len(body) % 4)
    try:
        raw = base64.urlsafe_b64decode(body + padding)
    except (binascii.Error, ValueError):
        raise ConfigurationError(f"Malformed {kind} key: invalid base64") from None

    if len(raw) != KEY_BYTES:
        raise ConfigurationError(
            f"Malformed {kind} key: expected {KEY_BYTES} bytes, got {len(raw)}"
        )
    return raw


def raw_public_bytes(key: X25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def encode_public_key(key: X25519PublicKey) -> str:
    return _encode(PUBLIC_PREFIX, raw_public_bytes(key))


def load_public_key(key: str) -> X25519PublicKey:
    """Parse a cvpub1 string."""
    return X25519PublicKey.from_public_bytes(_decode(PUBLIC_PREFIX, key, 'public'))


def load_private_key(key: str) -> X25519PrivateKey:
    """Parse a cvsec1 string."""
    return X25519PrivateKey.from_private_bytes(_decode(PRIVATE_PREFIX, key, 'private'))


def generate_keypair() -> Tuple[str, str]:
    """
    Create a fresh key pair.

    Returns:
        (public_key, private_key) as opaque strings
    """
    private = X25519PrivateKey.generate()
    return (
        encode_public_key(private.public_key()),
        _encode(PRIVATE_PREFIX, _raw_private(private)),
    )


def public_key_from_private(private_key: str) -> str:
    """Derive the public half of a private key string."""
    private = load_private_key(private_key)
    return encode_public_key(private.public_key())


class KeyProvider:
    """Supplies the public key for encoding and the private key for decoding."""

    def public_key(self) -> str:
        raise NotImplementedError

    def private_key(self) -> str:
        raise NotImplementedError


class StaticKeyProvider(KeyProvider):
    """Holds explicit key strings. Either may be left out."""

    def __init__(self, public_key: Optional[str] = None,
                 private_key: Optional[str] = None):
        self._public = public_key
        self._private = private_key

    def public_key(self) -> str:
        if not self._public:
            raise ConfigurationError('Public key required for encoding')
        return self._public

    def private_key(self) -> str:
        if not self._private:
            raise ConfigurationError('Private key required for decoding')
        return self._private


class EnvKeyProvider(KeyProvider):
    """Reads keys from the environment each time they are requested."""

    def public_key(self) -> str:
        key = os.getenv(PUBLIC_KEY_ENV)
        if not key:
            raise ConfigurationError(f"{PUBLIC_KEY_ENV} environment variable required")
        return key

    def private_key(self) -> str:
        key = os.getenv(PRIVATE_KEY_ENV)
        if not key:
            raise ConfigurationError(f"{PRIVATE_KEY_ENV} environment variable required")
        return key
