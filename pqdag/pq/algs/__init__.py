from __future__ import annotations

"""
pqdag.pq.algs: pluggable signature backends

Higher layers (pqdag.pq.context / sign / verify) resolve a backend by name
here. Backends only do raw crypto ops; length checks, base64 handling and
error mapping live in the layers above.

Resolution order for ``load_backend(name)``:
  1) backends registered at runtime with ``register_backend`` (exact name)
  2) liboqs via python-oqs (``oqs_backend.OqsSigBackend``), any enabled mechanism

Every backend exposes the same minimal surface (see ``SigBackend``):
  - name: str
  - claimed_nist_level: int
  - sizes: SigSizes(pk, sk, sig)
  - keypair() -> (pk: bytes, sk: bytes)
  - sign(sk: bytes, msg: bytes) -> sig: bytes
  - verify(pk: bytes, msg: bytes, sig: bytes) -> bool
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True)
class SigSizes:
    pk: int
    sk: int
    sig: int  # upper bound; some schemes (Falcon) emit shorter signatures


@runtime_checkable
class SigBackend(Protocol):
    name: str
    claimed_nist_level: int
    sizes: SigSizes

    def keypair(self) -> Tuple[bytes, bytes]: ...
    def sign(self, sk: bytes, msg: bytes) -> bytes: ...
    def verify(self, pk: bytes, msg: bytes, sig: bytes) -> bool: ...


BackendFactory = Callable[[], SigBackend]

_REGISTRY: Dict[str, BackendFactory] = {}
_REGISTRY_LOCK = threading.Lock()


def register_backend(name: str, factory: BackendFactory, *, replace: bool = False) -> None:
    """Make ``name`` resolve to ``factory()`` ahead of liboqs."""
    with _REGISTRY_LOCK:
        if name in _REGISTRY and not replace:
            raise ValueError(f"signature backend already registered: {name}")
        _REGISTRY[name] = factory


def unregister_backend(name: str) -> None:
    with _REGISTRY_LOCK:
        _REGISTRY.pop(name, None)


def registered_backends() -> List[str]:
    with _REGISTRY_LOCK:
        return sorted(_REGISTRY)


def load_backend(name: str, *, rng: Optional[str] = None) -> SigBackend:
    """
    Instantiate the backend for ``name``.

    ``rng`` selects the liboqs randombytes implementation and only applies to
    the liboqs path. Raises DependencyMissing if liboqs is needed but cannot be
    loaded, ConfigError if the mechanism is unknown or disabled.
    """
    with _REGISTRY_LOCK:
        factory = _REGISTRY.get(name)
    if factory is not None:
        return factory()

    from .oqs_backend import OqsSigBackend

    return OqsSigBackend(name, rng=rng)


def available_algorithms() -> List[str]:
    """Registered names followed by the mechanisms enabled in liboqs (if loadable)."""
    from ...errors import DependencyMissing
    from .oqs_backend import enabled_mechanisms

    names = registered_backends()
    try:
        names += [m for m in enabled_mechanisms() if m not in names]
    except DependencyMissing:
        pass  # liboqs absent: only registered backends are usable
    return names


__all__ = [
    "SigSizes",
    "SigBackend",
    "BackendFactory",
    "register_backend",
    "unregister_backend",
    "registered_backends",
    "load_backend",
    "available_algorithms",
]
