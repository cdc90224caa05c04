"""
Security helpers: per-transfer keys, authenticated encryption, and hashing.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import secrets
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .errors import CipherError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
DIGEST_SIZE = 32

# Matches the 2 GB ceiling advertised to users picking a file.
DEFAULT_MAX_PAYLOAD_SIZE = 2 * 1024 * 1024 * 1024


def encode_bytes(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def decode_bytes(value: str) -> bytes:
    return base64.urlsafe_b64decode(value.encode("ascii"))


def random_nonce(size: int = NONCE_SIZE) -> bytes:
    return os.urandom(size)


class KeyedCipher:
    """
    ChaCha20-Poly1305 sealing for whole-file payloads.

    Each call to `encrypt` draws a fresh nonce and prepends it to the sealed
    output, so the ciphertext carries everything `decrypt` needs apart from
    the key. Decryption authenticates before returning any bytes; a wrong
    key, a flipped bit, or a truncated payload all raise `CipherError`.
    """

    overhead = NONCE_SIZE + TAG_SIZE

    def __init__(self, max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE) -> None:
        if max_payload_size < 0:
            raise ValueError("max_payload_size must not be negative")
        self.max_payload_size = max_payload_size

    @staticmethod
    def generate_key() -> bytes:
        """Return a fresh 256-bit key from the operating system CSPRNG."""

        return secrets.token_bytes(KEY_SIZE)

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        if len(plaintext) > self.max_payload_size:
            raise CipherError(
                f"payload of {len(plaintext)} bytes exceeds limit of {self.max_payload_size} bytes"
            )
        aead = self._aead(key)
        nonce = random_nonce()
        return nonce + aead.encrypt(nonce, bytes(plaintext), None)

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        if len(ciphertext) < self.overhead:
            raise CipherError("ciphertext is truncated")
        if len(ciphertext) > self.max_payload_size + self.overhead:
            raise CipherError("ciphertext exceeds the configured size limit")
        aead = self._aead(key)
        nonce, sealed = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return aead.decrypt(nonce, bytes(sealed), None)
        except InvalidTag as exc:
            raise CipherError("ciphertext failed authentication") from exc

    @staticmethod
    def _aead(key: bytes) -> ChaCha20Poly1305:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
            raise CipherError(f"key must be exactly {KEY_SIZE} bytes")
        return ChaCha20Poly1305(bytes(key))


class IntegrityHasher:
    """SHA-256 content digests, computed over plaintext bytes only."""

    digest_size = DIGEST_SIZE

    @staticmethod
    def digest(data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    @staticmethod
    def digests_match(expected: bytes, actual: bytes) -> bool:
        return hmac.compare_digest(expected, actual)


def compute_file_sha256(path: Path) -> str:
    """Return the SHA-256 hex digest of a file."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(128 * 1024)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def encode_digest(digest: bytes) -> str:
    return digest.hex()


def decode_digest(value: str) -> bytes:
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("digest is not valid hex") from exc


__all__ = [
    "KeyedCipher",
    "IntegrityHasher",
    "KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "DIGEST_SIZE",
    "DEFAULT_MAX_PAYLOAD_SIZE",
    "compute_file_sha256",
    "decode_bytes",
    "decode_digest",
    "encode_bytes",
    "encode_digest",
    "random_nonce",
]
