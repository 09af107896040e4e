"""
pqdag
=====

Content-addressed, post-quantum signed transactions for DAG-structured ledgers.

Layout
------
- ``pqdag.encoding``  canonical (byte-stable) JSON codec and wire-record schema
- ``pqdag.utils``     BLAKE3 content hashing, base64 display encoding
- ``pqdag.pq``        explicit liboqs setup, key generation, signing, verification
- ``pqdag.types``     Transaction / SignedTransaction
- ``pqdag.state``     Wallet / WorldState (the ledger-state consumer)
- ``pqdag.errors``    error taxonomy; ``pqdag.logging`` / ``pqdag.config`` ambient stack

Only the version is resolved here to keep import-time side effects near zero;
in particular liboqs is *not* loaded until :func:`pqdag.pq.init_pq` is called.
"""

from __future__ import annotations

from .version import __version__


def get_version() -> str:
    """Return the semantic version string for this package."""
    return __version__


__all__ = ["__version__", "get_version"]
