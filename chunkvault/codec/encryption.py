"""
Encryption Stage

Design Decision: Public-Key Scheme
==================================

Options Considered:
1. Shell out to `age`
   - Needs the age binary on every host
   - Subprocess per chunk, keys passed through the shell
2. RSA-OAEP + AES-GCM hybrid
   - Widely understood, large keys and slow key generation
3. X25519 + HKDF + ChaCha20-Poly1305 (ECIES style)
   - Small keys, fast, authenticated, all in `cryptography`

Decision: X25519 ephemeral-static agreement, HKDF-SHA256, ChaCha20-Poly1305

Envelope Layout:
```
+---------+------------------+-----------+------------------------+
| ver(1B) | ephemeral pk(32) | nonce(12) | ciphertext + tag(16)   |
+---------+------------------+-----------+------------------------+
```
The header (version, ephemeral key, nonce) is bound as associated data, so
flipping any byte of the envelope fails authentication.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey, X25519PublicKey
)
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..errors import EncodeError, DecodeError
from ..keys import load_public_key, load_private_key, raw_public_bytes, KEY_BYTES

ENVELOPE_VERSION = 1
NONCE_BYTES = 12
TAG_BYTES = 16
HEADER_BYTES = 1 + KEY_BYTES + NONCE_BYTES

# Fixed per-artifact growth added by encryption
ENVELOPE_OVERHEAD = HEADER_BYTES + TAG_BYTES

HKDF_INFO = b'chunkvault/x25519-chacha20poly1305/v1'


def _derive_key(shared: bytes, ephemeral_pub: bytes, recipient_pub: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=ephemeral_pub + recipient_pub,
        info=HKDF_INFO,
    ).derive(shared)


def encrypt(plaintext: bytes, public_key: str) -> bytes:
    """Seal bytes to the holder of the matching private key."""
    recipient = load_public_key(public_key)
    recipient_pub = raw_public_bytes(recipient)

    try:
        ephemeral = X25519PrivateKey.generate()
        ephemeral_pub = raw_public_bytes(ephemeral.public_key())
        key = _derive_key(ephemeral.exchange(recipient), ephemeral_pub, recipient_pub)

        nonce = os.urandom(NONCE_BYTES)
        header = bytes([ENVELOPE_VERSION]) + ephemeral_pub + nonce
        return header + ChaCha20Poly1305(key).encrypt(nonce, plaintext, header)
    except ValueError as e:
        raise EncodeError(f"Encryption failed: {e}", stage='encrypt') from e


def decrypt(envelope: bytes, private_key: str) -> bytes:
    """Open an envelope produced by encrypt()."""
    recipient = load_private_key(private_key)

    if len(envelope) < ENVELOPE_OVERHEAD:
        raise DecodeError(
            f"Ciphertext too short: {len(envelope)} bytes", stage='decrypt'
        )
    if envelope[0] != ENVELOPE_VERSION:
        raise DecodeError(
            f"Unsupported envelope version {envelope[0]}", stage='decrypt'
        )

    header = envelope[:HEADER_BYTES]
    ephemeral_pub = envelope[1:1 + KEY_BYTES]
    nonce = envelope[1 + KEY_BYTES:HEADER_BYTES]

    try:
        ephemeral = X25519PublicKey.from_public_bytes(ephemeral_pub)
        key = _derive_key(
            recipient.exchange(ephemeral),
            ephemeral_pub,
            raw_public_bytes(recipient.public_key()),
        )
        return ChaCha20Poly1305(key).decrypt(nonce, envelope[HEADER_BYTES:], header)
    except InvalidTag:
        raise DecodeError(
            'Decryption failed: wrong key or corrupted ciphertext', stage='decrypt'
        ) from None
    except ValueError as e:
        raise DecodeError(f"Decryption failed: {e}", stage='decrypt') from e
