from __future__ import annotations

"""
keygen.py: key pair generation and the on-disk key file shape.

Public API
----------
- generate_keypair(ctx) -> SigKeypair
- SigKeypair.to_obj() / SigKeypair.from_obj(obj)   (base64 JSON key file)

Keys are raw bytes in the backend's native format; the ledger refers to an
account by the standard base64 of its public key (``SigKeypair.public_b64``).
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping

from ..errors import DecodeError, KeypairError, PqdagError
from ..logging import get_logger
from ..utils.bytes import b64decode, b64encode

if TYPE_CHECKING:  # pragma: no cover
    from .context import PqContext

log = get_logger(__name__)


@dataclass(frozen=True)
class SigKeypair:
    alg: str
    public_key: bytes
    secret_key: bytes = field(repr=False)

    @property
    def public_b64(self) -> str:
        return b64encode(self.public_key)

    def __repr__(self) -> str:
        return f"SigKeypair(alg={self.alg}, pk={self.public_b64[:12]}…, sk=<{len(self.secret_key)} bytes>)"

    def to_obj(self) -> Dict[str, Any]:
        return {
            "alg": self.alg,
            "public_key": b64encode(self.public_key),
            "secret_key": b64encode(self.secret_key),
        }

    @classmethod
    def from_obj(cls, obj: Mapping[str, Any]) -> "SigKeypair":
        try:
            return cls(
                alg=str(obj["alg"]),
                public_key=b64decode(obj["public_key"]),
                secret_key=b64decode(obj["secret_key"]),
            )
        except KeyError as e:
            raise DecodeError("key file missing field", field=str(e.args[0])) from e
        except ValueError as e:
            raise DecodeError(f"key file field is not valid base64: {e}") from e


def generate_keypair(ctx: "PqContext") -> SigKeypair:
    """Fresh key pair from the context's backend; raises KeypairError on failure."""
    try:
        pk, sk = ctx.backend.keypair()
    except PqdagError:
        raise
    except (RuntimeError, ValueError) as e:
        raise KeypairError(str(e), alg=ctx.alg).with_cause(e) from e
    if len(pk) != ctx.sizes.pk or len(sk) != ctx.sizes.sk:
        raise KeypairError(
            "backend returned keys of unexpected size",
            alg=ctx.alg,
            pk=len(pk),
            sk=len(sk),
        )
    log.debug("generated key pair", extra={"alg": ctx.alg, "pk_len": len(pk)})
    return SigKeypair(alg=ctx.alg, public_key=bytes(pk), secret_key=bytes(sk))


__all__ = ["SigKeypair", "generate_keypair"]
