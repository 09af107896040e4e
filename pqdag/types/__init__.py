"""
pqdag.types
===========

Ledger data types:

- tx: Transaction (unsigned payload), SignedTransaction (payload + signature)

Symbols resolve lazily on first access so importing the package stays cheap.

Example
-------
>>> from pqdag.types import Transaction, SignedTransaction
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

__all__ = ["tx", "Transaction", "SignedTransaction"]

_SYMBOLS = {
    "Transaction": ("pqdag.types.tx", "Transaction"),
    "SignedTransaction": ("pqdag.types.tx", "SignedTransaction"),
}


def __getattr__(name: str):
    if name == "tx":
        return importlib.import_module("pqdag.types.tx")
    target = _SYMBOLS.get(name)
    if target:
        return getattr(importlib.import_module(target[0]), target[1])
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(set(globals()) | set(_SYMBOLS) | {"tx"})


if TYPE_CHECKING:
    from .tx import SignedTransaction, Transaction  # noqa: F401
