"""
pqdag.utils.hash
================

Content addressing for DAG vertices.

- digest(data)        -> 32-byte BLAKE3-256
- display(digest)     -> standard padded base64 string (44 chars)
- content_hash(data)  -> display(digest(data))

`content_hash` is total: every byte string has exactly one hash string, and
the same input always yields the same output.
"""

from __future__ import annotations

import blake3 as _blake3

from .bytes import BytesLike, b64encode
from .bytes import b as _b

DIGEST_SIZE = 32


def digest(data: BytesLike) -> bytes:
    """BLAKE3-256 digest of ``data``."""
    return _blake3.blake3(_b(data)).digest(length=DIGEST_SIZE)


def display(raw_digest: BytesLike) -> str:
    return b64encode(raw_digest)


def content_hash(data: BytesLike) -> str:
    return display(digest(data))


__all__ = ["DIGEST_SIZE", "digest", "display", "content_hash"]
