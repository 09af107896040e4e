from __future__ import annotations

"""
sign.py: signing API bound to an initialised PqContext.

The message is signed as-is: callers pass the canonical encoding of the
payload (``Transaction.encode()``), never a structure that already carries
the signature.
"""

from typing import TYPE_CHECKING

from ..errors import PqdagError, SigningError
from ..logging import get_logger
from ..utils.bytes import BytesLike
from ..utils.bytes import b as _b
from .keygen import SigKeypair, generate_keypair

if TYPE_CHECKING:  # pragma: no cover
    from .context import PqContext

log = get_logger(__name__)


class Signer:
    def __init__(self, ctx: "PqContext") -> None:
        self._ctx = ctx

    @property
    def alg(self) -> str:
        return self._ctx.alg

    @property
    def context(self) -> "PqContext":
        return self._ctx

    def generate_keypair(self) -> SigKeypair:
        return generate_keypair(self._ctx)

    def sign(self, secret_key: BytesLike, message: BytesLike) -> bytes:
        """Detached signature over ``message``; raises SigningError on a bad key or backend failure."""
        sk, msg = _b(secret_key), _b(message)
        if len(sk) != self._ctx.sizes.sk:
            raise SigningError(
                f"secret key must be {self._ctx.sizes.sk} bytes for {self.alg}",
                alg=self.alg,
                got=len(sk),
            )
        try:
            sig = self._ctx.backend.sign(sk, msg)
        except PqdagError:
            raise
        except (RuntimeError, ValueError) as e:
            raise SigningError(str(e), alg=self.alg).with_cause(e) from e
        log.debug("signed", extra={"alg": self.alg, "msg_len": len(msg), "sig_len": len(sig)})
        return bytes(sig)

    def verify(self, public_key: BytesLike, message: BytesLike, signature: BytesLike) -> bool:
        return self._ctx.verifier().verify(public_key, message, signature)


__all__ = ["Signer"]
