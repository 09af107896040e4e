"""
pqdag.encoding.schema

JSON Schema (Draft 2020-12) definitions for externally supplied documents:

- TX_PAYLOAD_SCHEMA : an unsigned transaction payload
- SIGNED_TX_SCHEMA  : the canonical nested form {"transaction", "signature"}
- TX_RECORD_SCHEMA  : the flat wire record of a signed transaction
- SNAPSHOT_SCHEMA   : a WorldState snapshot (accounts, applied set, genesis)

`validate(instance, schema, what=...)` collects every violation and raises a
single DecodeError listing them, so callers get one actionable message.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from ..errors import DecodeError
from .canonical import U64_MAX

B64_PATTERN = r"^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$"

_B64 = {"type": "string", "pattern": B64_PATTERN}
_B64_NONEMPTY = {"type": "string", "pattern": B64_PATTERN, "minLength": 4}
_U64 = {"type": "integer", "minimum": 0, "maximum": U64_MAX}

_TX_FIELDS = ["parents", "sender", "timestamp", "amount", "receiver"]
_TX_PROPERTIES: Dict[str, Any] = {
    "parents": {"type": "array", "items": _B64_NONEMPTY},
    "sender": _B64_NONEMPTY,
    "timestamp": _U64,
    "amount": _U64,
    "receiver": _B64_NONEMPTY,
}

TX_PAYLOAD_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "pqdag:tx-payload/v1",
    "title": "Unsigned transaction payload",
    "type": "object",
    "additionalProperties": False,
    "required": _TX_FIELDS,
    "properties": _TX_PROPERTIES,
}

# Flat wire record: payload fields plus the signature at top level.
TX_RECORD_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "pqdag:tx-record/v1",
    "title": "Signed transaction wire record",
    "type": "object",
    "additionalProperties": False,
    "required": _TX_FIELDS + ["signature"],
    "properties": {**_TX_PROPERTIES, "signature": _B64},
}

# Canonical (hashed) shape: {"transaction": {...}, "signature": "..."}
SIGNED_TX_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "pqdag:signed-tx/v1",
    "title": "Signed transaction (canonical nested form)",
    "type": "object",
    "additionalProperties": False,
    "required": ["transaction", "signature"],
    "properties": {
        "transaction": {
            "type": "object",
            "additionalProperties": False,
            "required": _TX_FIELDS,
            "properties": _TX_PROPERTIES,
        },
        "signature": _B64,
    },
}

SNAPSHOT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "pqdag:world-snapshot/v1",
    "title": "WorldState snapshot",
    "type": "object",
    "additionalProperties": False,
    "required": ["version", "accounts"],
    "properties": {
        "version": {"const": 1},
        "genesis_policy": {"enum": ["bootstrap", "open"]},
        "accounts": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "additionalProperties": False,
                "required": ["balance"],
                "properties": {
                    "balance": _U64,
                    "history": {"type": "array", "items": _B64_NONEMPTY, "uniqueItems": True},
                },
            },
        },
        "applied": {"type": "array", "items": _B64_NONEMPTY, "uniqueItems": True},
        "genesis": {"type": "array", "items": _B64_NONEMPTY, "uniqueItems": True},
    },
}


@lru_cache(maxsize=None)
def _validator(schema_id: str) -> Draft202012Validator:
    schema = _SCHEMAS[schema_id]
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


_SCHEMAS = {
    TX_PAYLOAD_SCHEMA["$id"]: TX_PAYLOAD_SCHEMA,
    SIGNED_TX_SCHEMA["$id"]: SIGNED_TX_SCHEMA,
    TX_RECORD_SCHEMA["$id"]: TX_RECORD_SCHEMA,
    SNAPSHOT_SCHEMA["$id"]: SNAPSHOT_SCHEMA,
}


def iter_errors(instance: Any, schema: Dict[str, Any]) -> List[str]:
    """Return human-readable violations, sorted by location."""
    validator = _validator(schema["$id"])
    errors = sorted(validator.iter_errors(instance), key=lambda e: [str(p) for p in e.absolute_path])
    out = []
    for err in errors:
        loc = "/".join(str(p) for p in err.absolute_path) or "<root>"
        out.append(f"{loc}: {err.message}")
    return out


def validate(instance: Any, schema: Dict[str, Any], *, what: str = "document") -> None:
    problems = iter_errors(instance, schema)
    if problems:
        raise DecodeError(f"invalid {what}: {problems[0]}", schema=schema["$id"], errors=problems)


__all__ = [
    "TX_PAYLOAD_SCHEMA",
    "SIGNED_TX_SCHEMA",
    "TX_RECORD_SCHEMA",
    "SNAPSHOT_SCHEMA",
    "B64_PATTERN",
    "iter_errors",
    "validate",
]
