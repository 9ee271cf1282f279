"""Encoding of 128-bit identifiers used by KDBX documents.

KDBX stores UUIDs as 16 raw bytes: the 8 most significant bytes followed by
the 8 least significant bytes, each half big-endian. This is exactly the
layout of ``uuid.UUID.bytes``. Metadata elements (UUID, RecycleBinUUID,
LastTopVisibleEntry, ...) render those bytes as base64; diagnostics and some
plugins use hex.
"""

from __future__ import annotations

import base64
import binascii
import uuid as uuid_module

from Cryptodome.Random import get_random_bytes

from .exceptions import CodecError

ID_SIZE = 16


def _as_bytes(value: bytes | uuid_module.UUID) -> bytes:
    """Normalize an identifier argument to its 16-byte form."""
    if isinstance(value, uuid_module.UUID):
        return value.bytes
    data = bytes(value)
    if len(data) != ID_SIZE:
        raise CodecError(f"Identifier must be {ID_SIZE} bytes, got {len(data)}")
    return data


def new_random_id() -> bytes:
    """Generate a new random 128-bit identifier."""
    return get_random_bytes(ID_SIZE)


def encode_base64(value: bytes | uuid_module.UUID) -> str:
    """Render an identifier as padded standard base64 (24 characters)."""
    return base64.b64encode(_as_bytes(value)).decode("ascii")


def decode_base64(text: str) -> bytes:
    """Decode base64 identifier text to its 16 raw bytes.

    Both padded and unpadded input are accepted. Characters outside the
    standard alphabet are rejected rather than skipped.

    Raises:
        CodecError: If the text is not valid base64 or does not decode
            to exactly 16 bytes
    """
    stripped = text.strip().rstrip("=")
    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        data = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CodecError(f"Invalid base64 identifier: {text!r}") from e
    if len(data) != ID_SIZE:
        raise CodecError(f"Identifier must be {ID_SIZE} bytes, got {len(data)}")
    return data


def encode_hex(value: bytes | uuid_module.UUID, uppercase: bool = False) -> str:
    """Render an identifier as 32 hex digits."""
    text = _as_bytes(value).hex()
    return text.upper() if uppercase else text


def decode_hex(text: str) -> bytes:
    """Decode 32 hex digits (either case) to the 16 raw bytes."""
    try:
        data = bytes.fromhex(text.strip())
    except ValueError as e:
        raise CodecError(f"Invalid hex identifier: {text!r}") from e
    if len(data) != ID_SIZE:
        raise CodecError(f"Identifier must be {ID_SIZE} bytes, got {len(data)}")
    return data


def hex_from_base64(text: str, uppercase: bool = False) -> str:
    """Convert a base64 identifier directly to its hex form."""
    return encode_hex(decode_base64(text), uppercase=uppercase)


def uuid_from_base64(text: str) -> uuid_module.UUID:
    return uuid_module.UUID(bytes=decode_base64(text))


def base64_from_uuid(value: uuid_module.UUID) -> str:
    return encode_base64(value.bytes)


def hex_from_uuid(value: uuid_module.UUID) -> str:
    return encode_hex(value.bytes)


def random_base64_id() -> str:
    """Base64 text of a fresh random identifier, as written to UUID elements."""
    return encode_base64(new_random_id())
