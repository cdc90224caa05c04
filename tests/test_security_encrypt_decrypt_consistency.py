"""
Verify KeyedCipher encryption/decryption consistency and failure cases.

Tests round-trip correctness with the same key and ensures that a wrong
key, a tampered byte anywhere in the ciphertext, or a truncated payload is
rejected with CipherError instead of yielding bytes. Uses only in-memory
bytes; no IO or network.
"""

from __future__ import annotations

import os
from typing import Final

import pytest

from sealdrop.errors import CipherError
from sealdrop.security import KEY_SIZE, KeyedCipher


def test_keyedcipher_roundtrip() -> None:
    cipher = KeyedCipher()
    key: Final[bytes] = cipher.generate_key()
    for plaintext in (b"", b"x", b"sealdrop-secure" * 4, os.urandom(70_000)):
        ciphertext = cipher.encrypt(plaintext, key)
        assert cipher.decrypt(ciphertext, key) == plaintext


def test_keyedcipher_fresh_nonce_per_call() -> None:
    cipher = KeyedCipher()
    key = cipher.generate_key()
    plaintext = b"same input twice"

    first = cipher.encrypt(plaintext, key)
    second = cipher.encrypt(plaintext, key)

    # Nonce is drawn per call, so identical inputs do not repeat on the wire
    assert first != second
    assert len(first) == len(plaintext) + KeyedCipher.overhead


def test_generate_key_is_fixed_length_and_unpredictable() -> None:
    keys = {KeyedCipher.generate_key() for _ in range(32)}
    assert len(keys) == 32
    assert all(len(key) == KEY_SIZE for key in keys)


def test_keyedcipher_wrong_key_rejected() -> None:
    cipher = KeyedCipher()
    key = cipher.generate_key()
    ciphertext = cipher.encrypt(b"data integrity check", key)

    with pytest.raises(CipherError):
        cipher.decrypt(ciphertext, cipher.generate_key())


def test_keyedcipher_any_flipped_byte_rejected() -> None:
    cipher = KeyedCipher()
    key = cipher.generate_key()
    ciphertext = cipher.encrypt(b"ten bytes!", key)

    for index in range(len(ciphertext)):
        mutated = bytearray(ciphertext)
        mutated[index] ^= 0x01
        with pytest.raises(CipherError):
            cipher.decrypt(bytes(mutated), key)


def test_keyedcipher_truncated_ciphertext_rejected() -> None:
    cipher = KeyedCipher()
    key = cipher.generate_key()
    ciphertext = cipher.encrypt(b"payload", key)

    with pytest.raises(CipherError):
        cipher.decrypt(ciphertext[:-1], key)
    with pytest.raises(CipherError):
        cipher.decrypt(ciphertext[: KeyedCipher.overhead - 1], key)


def test_keyedcipher_malformed_key_rejected() -> None:
    cipher = KeyedCipher()
    with pytest.raises(CipherError):
        cipher.encrypt(b"payload", b"short")
    ciphertext = cipher.encrypt(b"payload", cipher.generate_key())
    with pytest.raises(CipherError):
        cipher.decrypt(ciphertext, b"\x00" * (KEY_SIZE + 1))


def test_keyedcipher_enforces_size_limit() -> None:
    cipher = KeyedCipher(max_payload_size=8)
    key = cipher.generate_key()

    assert cipher.decrypt(cipher.encrypt(b"12345678", key), key) == b"12345678"
    with pytest.raises(CipherError):
        cipher.encrypt(b"123456789", key)

    oversized = KeyedCipher(max_payload_size=64).encrypt(b"x" * 32, key)
    with pytest.raises(CipherError):
        cipher.decrypt(oversized, key)
