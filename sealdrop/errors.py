"""
Exception hierarchy shared by the transfer stack.
"""

from __future__ import annotations


class SealdropError(Exception):
    """Base class for every error raised by the transfer protocol."""


class CipherError(SealdropError):
    """Raised when a key or ciphertext is malformed, too large, or fails authentication."""


class IntegrityError(SealdropError):
    """Raised when decrypted content does not match the digest it was sent with."""


class ChannelError(SealdropError):
    """Raised when the underlying peer channel cannot deliver a message."""


class ProtocolError(SealdropError):
    """Raised when an inbound file message does not have the expected shape."""


__all__ = [
    "SealdropError",
    "CipherError",
    "IntegrityError",
    "ChannelError",
    "ProtocolError",
]
