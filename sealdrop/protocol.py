"""
Wire format for file handoff messages.

A channel carries plain JSON-compatible dictionaries. Only one shape
belongs to this protocol:

    {"type": "file-incoming", "fileData": {name, type, size, key, hash, data}}

Everything else on the channel is left for other protocols sharing it.
"""

from __future__ import annotations

import binascii
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ProtocolError
from .security import decode_bytes, decode_digest, encode_bytes, encode_digest

FILE_INCOMING = "file-incoming"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class TransferEnvelope:
    """Everything the receiver needs to rebuild one file."""

    name: str
    mime_type: str
    size: int
    key: bytes
    digest: bytes
    ciphertext: bytes

    def to_message(self) -> Dict[str, object]:
        return {
            "type": FILE_INCOMING,
            "fileData": {
                "name": self.name,
                "type": self.mime_type,
                "size": self.size,
                "key": encode_bytes(self.key),
                "hash": encode_digest(self.digest),
                "data": encode_bytes(self.ciphertext),
            },
        }

    def __repr__(self) -> str:
        # Keep key material and payload out of logs and tracebacks.
        return (
            f"TransferEnvelope(name={self.name!r}, mime_type={self.mime_type!r}, "
            f"size={self.size}, ciphertext={len(self.ciphertext)} bytes)"
        )


@dataclass(frozen=True)
class FileIncoming:
    envelope: TransferEnvelope


@dataclass(frozen=True)
class OtherMessage:
    """A message some other protocol on the channel is responsible for."""

    kind: Optional[str]


InboundMessage = Union[FileIncoming, OtherMessage]


def parse_message(message: Any) -> InboundMessage:
    """
    Classify an inbound channel message.

    Returns `OtherMessage` for anything not tagged `file-incoming`, including
    values that are not mappings at all. A tagged message whose payload is
    malformed raises `ProtocolError`.
    """

    if not isinstance(message, Mapping):
        return OtherMessage(kind=None)
    kind = message.get("type")
    if kind != FILE_INCOMING:
        return OtherMessage(kind=kind if isinstance(kind, str) else None)
    return FileIncoming(envelope=_parse_file_data(message.get("fileData")))


def _parse_file_data(payload: Any) -> TransferEnvelope:
    if not isinstance(payload, Mapping):
        raise ProtocolError("fileData is missing or not an object")

    name = payload.get("name")
    if not isinstance(name, str) or not name:
        raise ProtocolError("fileData.name must be a non-empty string")

    mime_type = payload.get("type")
    if mime_type is None or mime_type == "":
        mime_type = DEFAULT_MIME_TYPE
    elif not isinstance(mime_type, str):
        raise ProtocolError("fileData.type must be a string")

    size = payload.get("size")
    # bool is an int subclass; reject it explicitly.
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ProtocolError("fileData.size must be a non-negative integer")

    key = _decode_field(payload, "key", decode_bytes)
    digest = _decode_field(payload, "hash", decode_digest)
    ciphertext = _decode_field(payload, "data", decode_bytes)

    return TransferEnvelope(
        name=name,
        mime_type=mime_type,
        size=size,
        key=key,
        digest=digest,
        ciphertext=ciphertext,
    )


def _decode_field(payload: Mapping[str, Any], field: str, decoder) -> bytes:
    value = payload.get(field)
    if not isinstance(value, str):
        raise ProtocolError(f"fileData.{field} must be an encoded string")
    try:
        return decoder(value)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolError(f"fileData.{field} could not be decoded") from exc


__all__ = [
    "FILE_INCOMING",
    "DEFAULT_MIME_TYPE",
    "TransferEnvelope",
    "FileIncoming",
    "OtherMessage",
    "InboundMessage",
    "parse_message",
]
