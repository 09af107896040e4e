"""
pqdag.cli: command line tools (keygen, transfer, verify, hash, apply, bench).

Run as ``pqdag <command>`` or ``python -m pqdag <command>``.
"""

from .main import build_parser, main

__all__ = ["build_parser", "main"]
