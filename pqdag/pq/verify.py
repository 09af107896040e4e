from __future__ import annotations

"""
verify.py: signature verification with a three-way outcome.

A boolean cannot tell "this signature is wrong" from "this input is not even
a key/signature". ``Verification`` keeps those apart:

- VALID      signature verifies for (public key, message)
- INVALID    well-formed inputs, signature does not verify (forgery, tamper)
- MALFORMED  key or signature cannot be decoded into the algorithm's shape

Public API
----------
- Verifier(ctx).verify(pk, msg, sig) -> bool           (raises on malformed)
- Verifier(ctx).check(pk, msg, sig) -> Verification
- Verifier(ctx).check_encoded(pk_b64, msg, sig_b64) -> Verification
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..errors import KeyDecodeError, SignatureDecodeError
from ..logging import get_logger
from ..utils.bytes import BytesLike, b64decode
from ..utils.bytes import b as _b

if TYPE_CHECKING:  # pragma: no cover
    from .context import PqContext

log = get_logger(__name__)


class VerifyStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class Verification:
    status: VerifyStatus
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.status is VerifyStatus.VALID

    @property
    def is_valid(self) -> bool:
        return self.status is VerifyStatus.VALID

    @property
    def is_malformed(self) -> bool:
        return self.status is VerifyStatus.MALFORMED

    @classmethod
    def valid(cls) -> "Verification":
        return cls(VerifyStatus.VALID)

    @classmethod
    def invalid(cls, reason: str = "signature does not verify") -> "Verification":
        return cls(VerifyStatus.INVALID, reason)

    @classmethod
    def malformed(cls, reason: str) -> "Verification":
        return cls(VerifyStatus.MALFORMED, reason)


class Verifier:
    def __init__(self, ctx: "PqContext") -> None:
        self._ctx = ctx

    @property
    def alg(self) -> str:
        return self._ctx.alg

    def _check_shapes(self, pk: bytes, sig: bytes) -> None:
        sizes = self._ctx.sizes
        if len(pk) != sizes.pk:
            raise KeyDecodeError(
                f"public key must be {sizes.pk} bytes for {self.alg}",
                alg=self.alg,
                got=len(pk),
            )
        if not 0 < len(sig) <= sizes.sig:
            raise SignatureDecodeError(
                f"signature must be 1..{sizes.sig} bytes for {self.alg}",
                alg=self.alg,
                got=len(sig),
            )

    def verify(self, public_key: BytesLike, message: BytesLike, signature: BytesLike) -> bool:
        """
        True iff ``signature`` is a valid signature of ``message`` under
        ``public_key``. A mismatch returns False; KeyDecodeError or
        SignatureDecodeError is raised only for inputs of the wrong shape.
        """
        pk, msg, sig = _b(public_key), _b(message), _b(signature)
        self._check_shapes(pk, sig)
        ok = self._ctx.backend.verify(pk, msg, sig)
        log.debug("verified", extra={"alg": self.alg, "ok": ok})
        return ok

    def check(self, public_key: BytesLike, message: BytesLike, signature: BytesLike) -> Verification:
        try:
            ok = self.verify(public_key, message, signature)
        except KeyDecodeError as e:
            return Verification.malformed(f"public key: {e.message}")
        except SignatureDecodeError as e:
            return Verification.malformed(f"signature: {e.message}")
        return Verification.valid() if ok else Verification.invalid()

    def decode_public_key(self, public_key_b64: str) -> bytes:
        try:
            return b64decode(public_key_b64)
        except ValueError as e:
            raise KeyDecodeError(f"public key is not valid base64: {e}", alg=self.alg) from e

    def decode_signature(self, signature_b64: str) -> bytes:
        try:
            return b64decode(signature_b64)
        except ValueError as e:
            raise SignatureDecodeError(f"signature is not valid base64: {e}", alg=self.alg) from e

    def verify_encoded(self, public_key_b64: str, message: BytesLike, signature_b64: str) -> bool:
        """``verify`` over base64 text forms; decode failures raise like shape errors."""
        return self.verify(
            self.decode_public_key(public_key_b64),
            message,
            self.decode_signature(signature_b64),
        )

    def check_encoded(self, public_key_b64: str, message: BytesLike, signature_b64: str) -> Verification:
        try:
            pk = self.decode_public_key(public_key_b64)
        except KeyDecodeError as e:
            return Verification.malformed(f"public key: {e.message}")
        try:
            sig = self.decode_signature(signature_b64)
        except SignatureDecodeError as e:
            return Verification.malformed(f"signature: {e.message}")
        return self.check(pk, message, sig)


__all__ = ["VerifyStatus", "Verification", "Verifier"]
