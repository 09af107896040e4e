"""
Explicit, idempotent post-quantum initialisation.

    ctx = init_pq("Falcon-1024")          # loads liboqs once, reads sizes
    signer, verifier = ctx.signer(), ctx.verifier()

``init_pq`` returns the same ``PqContext`` object for the same
``(alg, rng)`` pair, so it is safe to call from every entry point. Nothing
in pqdag touches liboqs before a context is created.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..config import DEFAULT_SIG_ALG
from ..logging import get_logger
from .algs import SigBackend, SigSizes, load_backend

if TYPE_CHECKING:  # pragma: no cover
    from .sign import Signer
    from .verify import Verifier

log = get_logger(__name__)

_CONTEXTS: Dict[Tuple[str, Optional[str]], "PqContext"] = {}
_CONTEXTS_LOCK = threading.Lock()


@dataclass(frozen=True)
class PqContext:
    alg: str
    claimed_nist_level: int
    sizes: SigSizes
    backend: SigBackend = field(repr=False, compare=False)
    rng: Optional[str] = None

    def signer(self) -> "Signer":
        from .sign import Signer

        return Signer(self)

    def verifier(self) -> "Verifier":
        from .verify import Verifier

        return Verifier(self)

    def describe(self) -> Dict[str, Any]:
        return {
            "alg": self.alg,
            "claimed_nist_level": self.claimed_nist_level,
            "public_key_bytes": self.sizes.pk,
            "secret_key_bytes": self.sizes.sk,
            "signature_max_bytes": self.sizes.sig,
            "rng": self.rng,
        }


def init_pq(alg: str = DEFAULT_SIG_ALG, *, rng: Optional[str] = None) -> PqContext:
    """
    Perform the one-time signature-library setup for ``alg``.

    Idempotent: repeated calls with the same arguments return the same
    context. Raises DependencyMissing when liboqs is required but absent and
    ConfigError when ``alg`` or ``rng`` is not supported.
    """
    key = (alg, rng)
    with _CONTEXTS_LOCK:
        ctx = _CONTEXTS.get(key)
        if ctx is not None:
            return ctx
        backend = load_backend(alg, rng=rng)
        ctx = PqContext(
            alg=backend.name,
            claimed_nist_level=int(backend.claimed_nist_level),
            sizes=backend.sizes,
            backend=backend,
            rng=rng,
        )
        _CONTEXTS[key] = ctx
    log.debug("pq context initialised", extra=ctx.describe())
    return ctx


def init_from_config(cfg: Any) -> PqContext:
    """``init_pq`` driven by a `pqdag.config.Config`."""
    return init_pq(cfg.crypto.sig_alg, rng=cfg.crypto.rng)


def clear_contexts() -> None:
    """Forget cached contexts (test isolation; backends are re-read on next init)."""
    with _CONTEXTS_LOCK:
        _CONTEXTS.clear()


__all__ = ["PqContext", "init_pq", "init_from_config", "clear_contexts"]
