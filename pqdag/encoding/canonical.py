"""
Canonical JSON encoder
======================

Deterministic byte encoding for ledger payloads. Hashes and signatures are
computed over these bytes, so two independent implementations must produce
the same output for the same logical value.

Canonical form
--------------
- compact JSON: no insignificant whitespace, ``","`` and ``":"`` separators
- UTF-8, non-ASCII characters emitted raw (never ``\\uXXXX``-escaped)
- object keys in *insertion order*; callers build mappings in the fixed
  declaration order of their record type (``Transaction.to_obj``)
- integers only in the unsigned 64-bit range; no floats, no NaN/Infinity

This is byte-for-byte the output of a serde-style ``to_string`` over the
same struct, which is the interoperability contract for content hashes.

Public helpers:
- dumps(obj) -> bytes
- loads(data) -> Any
- pretty(obj) -> str   (cosmetic only, never hashed or signed)
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Tuple, Union

from ..errors import DecodeError, EncodingError

U64_MAX = 2**64 - 1
MAX_DEPTH = 64

Primitive = Union[None, bool, int, str]
Structured = Union[Primitive, Iterable["Structured"], Mapping[str, "Structured"]]

_ENCODER = json.JSONEncoder(
    ensure_ascii=False,
    allow_nan=False,
    separators=(",", ":"),
    sort_keys=False,
)


# --------------------------
# Type guards
# --------------------------


class CanonicalTypeError(EncodingError):
    pass


def _ensure_canonical_types(x: Any, *, _path: str = "$", _depth: int = 0) -> None:
    """
    Recursively ensure the payload only contains the subset the canonical form
    supports:
    - None, bool, str (UTF-8 encodable)
    - int with 0 <= n <= 2**64 - 1 (bool is not accepted where an int is meant)
    - list/tuple of allowed
    - dict with str keys and allowed values
    Floats, bytes, sets and custom classes are rejected before encoding.
    """
    if _depth > MAX_DEPTH:
        raise CanonicalTypeError("maximum nesting exceeded", path=_path)
    if x is None or isinstance(x, bool):
        return
    if isinstance(x, int):
        if not 0 <= x <= U64_MAX:
            raise CanonicalTypeError("integer outside u64 range", path=_path, value=str(x))
        return
    if isinstance(x, str):
        _ensure_utf8(x, _path)
        return
    if isinstance(x, (list, tuple)):
        for i, item in enumerate(x):
            _ensure_canonical_types(item, _path=f"{_path}[{i}]", _depth=_depth + 1)
        return
    if isinstance(x, dict):
        for k, v in x.items():
            if not isinstance(k, str):
                raise CanonicalTypeError(
                    f"unsupported map key type: {type(k).__name__}", path=_path
                )
            _ensure_utf8(k, _path)
            _ensure_canonical_types(v, _path=f"{_path}.{k}", _depth=_depth + 1)
        return
    raise CanonicalTypeError(f"unsupported value type: {type(x).__name__}", path=_path)


def _ensure_utf8(s: str, path: str) -> None:
    try:
        s.encode("utf-8")
    except UnicodeEncodeError as e:
        raise CanonicalTypeError("string is not valid UTF-8 (lone surrogate)", path=path) from e


def require_u64(value: Any, *, field: str) -> int:
    """Return ``value`` if it is a real int in u64 range, else raise EncodingError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{field} must be an integer", field=field, type=type(value).__name__)
    if not 0 <= value <= U64_MAX:
        raise EncodingError(f"{field} outside u64 range", field=field, value=str(value))
    return value


# --------------------------
# Encoding
# --------------------------


def dumps(obj: Structured) -> bytes:
    """Canonical bytes of ``obj``. Pure and deterministic."""
    _ensure_canonical_types(obj)
    return _ENCODER.encode(obj).encode("utf-8")


def pretty(obj: Structured) -> str:
    """Indented rendering for humans; not a valid hashing input."""
    _ensure_canonical_types(obj)
    return json.dumps(obj, ensure_ascii=False, allow_nan=False, indent=2)


# --------------------------
# Decoding
# --------------------------


def _no_duplicates(pairs: List[Tuple[str, Any]]) -> dict:
    out: dict = {}
    for k, v in pairs:
        if k in out:
            raise DecodeError("duplicate object key", key=k)
        out[k] = v
    return out


def _reject_float(text: str) -> Any:
    raise DecodeError("floating point numbers are not allowed", value=text)


def _reject_constant(text: str) -> Any:
    raise DecodeError("non-finite numbers are not allowed", value=text)


def loads(data: Union[bytes, bytearray, memoryview, str]) -> Any:
    """
    Parse JSON produced by :func:`dumps` (or any compatible producer).

    Strict: input must be UTF-8, object keys must be unique and only integer
    numbers are accepted. Raises DecodeError on any violation.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("input is not valid UTF-8", offset=e.start) from e
    elif isinstance(data, str):
        text = data
    else:
        raise DecodeError("expected bytes or str", type=type(data).__name__)

    try:
        return json.loads(
            text,
            object_pairs_hook=_no_duplicates,
            parse_float=_reject_float,
            parse_constant=_reject_constant,
        )
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e.msg}", line=e.lineno, column=e.colno) from e
    except RecursionError as e:
        raise DecodeError("JSON nesting too deep") from e


__all__ = [
    "U64_MAX",
    "CanonicalTypeError",
    "require_u64",
    "dumps",
    "pretty",
    "loads",
]
