"""
pqdag.utils
-----------

Small helpers shared by the codec, the PQ layer and the ledger state.

- `bytes` : bytes-like normalization, strict base64, length guards
- `hash`  : BLAKE3-256 digest and the base64 content-hash display form

Names like `bytes` and `hash` shadow builtins if star-imported; prefer
module-qualified access (``from pqdag.utils import hash as hash_utils``).
"""

from . import bytes as bytes_utils
from . import hash as hash_utils

__all__ = ["bytes_utils", "hash_utils"]
