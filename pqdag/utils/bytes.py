"""
pqdag.utils.bytes
=================

Byte handling helpers:

- Bytes-like normalization: b(), is_byteslike()
- Strict standard base64 (padded, RFC 4648 alphabet) used for keys,
  signatures and content hashes
- Base64 predicate: is_b64

Examples
--------
>>> b64encode(b"\\x00\\x01")
'AAE='
>>> b64decode('AAE=')
b'\\x00\\x01'
"""

from __future__ import annotations

import base64
import binascii
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]


def is_byteslike(x: object) -> bool:
    return isinstance(x, (bytes, bytearray, memoryview))


def b(data: BytesLike) -> bytes:
    """Normalize a bytes-like object to immutable ``bytes``."""
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"expected bytes-like, got {type(data).__name__}")


# -----------------------
# Base64
# -----------------------


def b64encode(data: BytesLike) -> str:
    """Standard padded base64 of ``data``."""
    return base64.b64encode(b(data)).decode("ascii")


def b64decode(text: str) -> bytes:
    """
    Strict inverse of :func:`b64encode`.

    Rejects characters outside the standard alphabet, missing padding,
    embedded whitespace and non-canonical encodings (non-zero trailing
    bits), so every accepted string has exactly one byte value and every
    byte value exactly one string. Raises ``ValueError``.
    """
    if not isinstance(text, str):
        raise ValueError(f"base64 input must be str, got {type(text).__name__}")
    try:
        raw = base64.b64decode(text.encode("ascii"), validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise ValueError(f"invalid base64: {e}") from e
    if base64.b64encode(raw).decode("ascii") != text:
        raise ValueError("non-canonical base64 encoding")
    return raw


def is_b64(text: object) -> bool:
    if not isinstance(text, str):
        return False
    try:
        b64decode(text)
    except ValueError:
        return False
    return True


__all__ = ["BytesLike", "is_byteslike", "b", "b64encode", "b64decode", "is_b64"]
