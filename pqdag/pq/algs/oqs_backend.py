from __future__ import annotations

"""
liboqs signature backend (python-oqs / liboqs-python).

What this module does
---------------------
- Imports python-oqs once and remembers a failed import, so a missing native
  library is reported as DependencyMissing on every call without re-probing.
- Wraps any enabled liboqs signature mechanism (Falcon-1024 by default) in
  the uniform ``SigBackend`` surface.
- Reports sizes and the claimed NIST level straight from liboqs.

A fresh ``oqs.Signature`` handle is created per operation; handles are never
shared between threads.
"""

import threading
from typing import Any, List, Optional, Tuple

from ...errors import ConfigError, DependencyMissing, KeypairError, SigningError
from . import SigSizes

_IMPORT_LOCK = threading.Lock()
_OQS: Any = None
_OQS_ERROR: Optional[BaseException] = None

_INSTALL_HINT = "pip install liboqs-python; liboqs shared library must be on the loader path"


def load_oqs() -> Any:
    """Return the imported ``oqs`` module or raise DependencyMissing."""
    global _OQS, _OQS_ERROR
    with _IMPORT_LOCK:
        if _OQS is None and _OQS_ERROR is None:
            try:
                import oqs  # type: ignore[import-not-found]

                _OQS = oqs
            # python-oqs raises RuntimeError (or exits) when liboqs cannot be loaded
            except (ImportError, OSError, RuntimeError, SystemExit) as e:
                _OQS_ERROR = e
        if _OQS is None:
            err = DependencyMissing("liboqs-python", hint=_INSTALL_HINT)
            raise err.with_cause(_OQS_ERROR) from _OQS_ERROR  # type: ignore[arg-type]
        return _OQS


def is_available() -> bool:
    try:
        load_oqs()
    except DependencyMissing:
        return False
    return True


def enabled_mechanisms() -> List[str]:
    return list(load_oqs().get_enabled_sig_mechanisms())


def liboqs_version() -> str:
    return str(load_oqs().oqs_version())


def switch_rng(name: str) -> None:
    """Select the process-wide liboqs randombytes implementation."""
    load_oqs()
    import oqs.rand  # type: ignore[import-not-found]

    try:
        oqs.rand.randombytes_switch_algorithm(name)
    except RuntimeError as e:
        raise ConfigError(f"liboqs rejected RNG {name!r}", rng=name).with_cause(e) from e


class OqsSigBackend:
    """SigBackend over one liboqs signature mechanism."""

    def __init__(self, name: str, *, rng: Optional[str] = None) -> None:
        oqs = load_oqs()
        if name not in oqs.get_enabled_sig_mechanisms():
            raise ConfigError(
                "signature mechanism not enabled in liboqs",
                alg=name,
                liboqs=liboqs_version(),
            )
        if rng is not None:
            switch_rng(rng)
        with oqs.Signature(name) as mech:
            self.sizes = SigSizes(
                pk=int(mech.length_public_key),
                sk=int(mech.length_secret_key),
                sig=int(mech.length_signature),
            )
            self.claimed_nist_level = int(mech.claimed_nist_level)
            self.is_euf_cma = bool(mech.is_euf_cma)
        self.name = name
        self._oqs = oqs

    def keypair(self) -> Tuple[bytes, bytes]:
        try:
            with self._oqs.Signature(self.name) as signer:
                pk = bytes(signer.generate_keypair())
                sk = bytes(signer.export_secret_key())
        except RuntimeError as e:
            raise KeypairError(str(e), alg=self.name).with_cause(e) from e
        return pk, sk

    def sign(self, sk: bytes, msg: bytes) -> bytes:
        try:
            with self._oqs.Signature(self.name, secret_key=sk) as signer:
                return bytes(signer.sign(msg))
        except RuntimeError as e:
            raise SigningError(str(e), alg=self.name).with_cause(e) from e

    def verify(self, pk: bytes, msg: bytes, sig: bytes) -> bool:
        with self._oqs.Signature(self.name) as verifier:
            return bool(verifier.verify(msg, sig, pk))

    def __repr__(self) -> str:
        return (
            f"OqsSigBackend({self.name}, level={self.claimed_nist_level}, "
            f"pk={self.sizes.pk}, sk={self.sizes.sk}, sig<={self.sizes.sig})"
        )


__all__ = [
    "load_oqs",
    "is_available",
    "enabled_mechanisms",
    "liboqs_version",
    "switch_rng",
    "OqsSigBackend",
]
