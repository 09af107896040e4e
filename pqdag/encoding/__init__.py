"""
pqdag.encoding
==============

Public encoding surface:

- canonical.py: deterministic compact-JSON dumps/loads (hash & sign input)
- schema.py:    JSON Schema validation of wire records and snapshots
"""

from __future__ import annotations

from .canonical import dumps, loads, pretty
from .schema import SNAPSHOT_SCHEMA, TX_RECORD_SCHEMA, validate

__all__ = [
    "dumps",
    "loads",
    "pretty",
    "validate",
    "TX_RECORD_SCHEMA",
    "SNAPSHOT_SCHEMA",
]
