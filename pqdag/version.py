"""
Version helpers for pqdag.

Resolution order:
    1) PQDAG_VERSION env var (authoritative override)
    2) installed distribution metadata ("pqdag")
    3) DEFAULT_VERSION
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError, version as _pkg_version

DEFAULT_VERSION = "0.1.0"


def _detect() -> str:
    override = os.environ.get("PQDAG_VERSION", "").strip()
    if override:
        return override
    try:
        return _pkg_version("pqdag")
    except PackageNotFoundError:  # local checkouts
        return DEFAULT_VERSION


__version__ = _detect()

__all__ = ["__version__", "DEFAULT_VERSION"]
