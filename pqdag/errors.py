"""
pqdag.errors
------------

A small, consistent error system for the codec, the PQ signing layer and the
ledger state.

Design goals
------------
- One root `PqdagError` with machine-friendly `code` and optional `data`.
- Concrete subclasses per failure domain (encoding, crypto, config, rejection).
- Safe JSON representation (`to_dict`) suitable for logs and CLI output.
- Clear separation of *retryable* vs *permanent* failures.

Taxonomy
--------
Fatal for the operation (no retry):
    EncodingError, KeypairError, SigningError, DependencyMissing, ConfigError
Malformed external input (reject the specific item, keep running):
    DecodeError, KeyDecodeError, SignatureDecodeError
Transaction rejections raised by WorldState.apply (all subclass TxRejected):
    InvalidSignature (MalformedTransaction), DuplicateTransaction,
    InsufficientFunds, UnknownParent

This module uses only stdlib to avoid import cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar


class ErrorCode(str, Enum):
    # Generic
    INTERNAL = "PQDAG/INTERNAL"
    DEP_MISSING = "PQDAG/DEPENDENCY_MISSING"
    CONFIG = "PQDAG/CONFIG"

    # Codec
    ENCODING = "PQDAG/ENCODING"
    DECODING = "PQDAG/DECODING"

    # Crypto primitives
    KEYPAIR = "PQDAG/KEYPAIR"
    SIGNING = "PQDAG/SIGNING"
    KEY_DECODE = "PQDAG/KEY_DECODE"
    SIG_DECODE = "PQDAG/SIG_DECODE"

    # Ledger-state rejections
    TX_REJECTED = "PQDAG/TX_REJECTED"
    TX_INVALID_SIGNATURE = "PQDAG/TX_INVALID_SIGNATURE"
    TX_MALFORMED = "PQDAG/TX_MALFORMED"
    TX_DUPLICATE = "PQDAG/TX_DUPLICATE"
    TX_INSUFFICIENT_FUNDS = "PQDAG/TX_INSUFFICIENT_FUNDS"
    TX_UNKNOWN_PARENT = "PQDAG/TX_UNKNOWN_PARENT"


@dataclass(eq=False)
class PqdagError(Exception):
    """
    Root error for pqdag components.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs; never includes secret key material.
    data: dict
        Optional machine data (hashes, keys, sizes). JSON-serializable.
    retryable: bool
        Whether the operation may succeed later without changing its inputs.
    cause: Optional[BaseException]
        Wrapped original exception; not part of the repr.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def _clone(self) -> "PqdagError":
        # Subclass __init__ signatures differ, so bypass them.
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.args = self.args
        return clone

    def with_context(self, **ctx: Any) -> "PqdagError":
        """Return a *new* error with extra context merged (does not mutate)."""
        clone = self._clone()
        clone.data = {**self.data, **_jsonmap(ctx)}
        return clone

    def with_cause(self, exc: BaseException) -> "PqdagError":
        """Attach/replace the causal exception (returns a new instance)."""
        clone = self._clone()
        clone.data = dict(self.data)
        clone.cause = exc
        clone.__cause__ = exc
        return clone

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs and CLI output."""
        out = {
            "code": str(self.code.value if isinstance(self.code, Enum) else self.code),
            "message": self.message,
            "data": _coerce_json(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        code = self.code.value if isinstance(self.code, Enum) else self.code
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Generic / environment
# ---------------------------------------------------------------------------


class InternalError(PqdagError):
    def __init__(self, message="internal error", **data: Any) -> None:
        super().__init__(code=ErrorCode.INTERNAL, message=message, data=_jsonmap(data))


class DependencyMissing(PqdagError):
    def __init__(self, package: str, hint: str = "") -> None:
        msg = f"missing dependency: {package}"
        if hint:
            msg += f" ({hint})"
        super().__init__(
            code=ErrorCode.DEP_MISSING,
            message=msg,
            data={"package": package, "hint": hint},
        )


class ConfigError(PqdagError):
    def __init__(self, message="invalid configuration", **data: Any) -> None:
        super().__init__(code=ErrorCode.CONFIG, message=message, data=_jsonmap(data))


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class EncodingError(PqdagError):
    """Payload cannot be canonically serialized."""

    def __init__(self, message="value cannot be canonically encoded", **data: Any) -> None:
        super().__init__(code=ErrorCode.ENCODING, message=message, data=_jsonmap(data))


class DecodeError(PqdagError):
    """Externally supplied bytes/JSON do not describe a valid record."""

    def __init__(self, message="record cannot be decoded", **data: Any) -> None:
        super().__init__(code=ErrorCode.DECODING, message=message, data=_jsonmap(data))


# ---------------------------------------------------------------------------
# Crypto primitives
# ---------------------------------------------------------------------------


class KeypairError(PqdagError):
    def __init__(self, message="key pair generation failed", **data: Any) -> None:
        super().__init__(code=ErrorCode.KEYPAIR, message=message, data=_jsonmap(data))


class SigningError(PqdagError):
    def __init__(self, message="signing failed", **data: Any) -> None:
        super().__init__(code=ErrorCode.SIGNING, message=message, data=_jsonmap(data))


class KeyDecodeError(PqdagError):
    """Encoded public key cannot be parsed into the algorithm's key shape."""

    def __init__(self, message="malformed public key", **data: Any) -> None:
        super().__init__(code=ErrorCode.KEY_DECODE, message=message, data=_jsonmap(data))


class SignatureDecodeError(PqdagError):
    """Encoded signature cannot be parsed into the algorithm's signature shape."""

    def __init__(self, message="malformed signature", **data: Any) -> None:
        super().__init__(code=ErrorCode.SIG_DECODE, message=message, data=_jsonmap(data))


# ---------------------------------------------------------------------------
# Ledger-state rejections
# ---------------------------------------------------------------------------


class TxRejected(PqdagError):
    """Base for expected, recoverable rejections of one transaction."""

    def __init__(
        self, message="transaction rejected", retryable: bool = False, **data: Any
    ) -> None:
        super().__init__(
            code=ErrorCode.TX_REJECTED,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
        )


class InvalidSignature(TxRejected):
    def __init__(self, tx_hash: str, reason: str = "signature does not verify") -> None:
        super().__init__(message="invalid signature", tx=tx_hash, reason=reason)
        self.code = ErrorCode.TX_INVALID_SIGNATURE


class MalformedTransaction(InvalidSignature):
    """Sender key or signature could not be decoded (corrupt data, not forgery)."""

    def __init__(self, tx_hash: str, reason: str) -> None:
        super().__init__(tx_hash, reason=reason)
        self.message = "malformed transaction"
        self.code = ErrorCode.TX_MALFORMED


class DuplicateTransaction(TxRejected):
    def __init__(self, tx_hash: str, account: str) -> None:
        super().__init__(message="transaction already applied", tx=tx_hash, account=account)
        self.code = ErrorCode.TX_DUPLICATE


class InsufficientFunds(TxRejected):
    def __init__(self, tx_hash: str, sender: str, needed: int, balance: Optional[int]) -> None:
        super().__init__(
            message="insufficient funds",
            retryable=True,
            tx=tx_hash,
            sender=sender,
            needed=needed,
            balance=balance,
        )
        self.code = ErrorCode.TX_INSUFFICIENT_FUNDS


class UnknownParent(TxRejected):
    def __init__(self, tx_hash: str, parent: Optional[str], reason: str = "parent not applied") -> None:
        super().__init__(
            message="unknown parent",
            retryable=True,
            tx=tx_hash,
            parent=parent,
            reason=reason,
        )
        self.code = ErrorCode.TX_UNKNOWN_PARENT


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

T = TypeVar("T", bound=PqdagError)


def wrap(exc: BaseException, *, as_: Type[T] = InternalError, **ctx: Any) -> T:
    """
    Wrap any exception into a PqdagError subclass, attaching context.
    If `exc` is already a PqdagError, returns a context-enriched copy.
    """
    if isinstance(exc, PqdagError):
        return exc.with_context(**ctx)  # type: ignore[return-value]
    err = as_(str(exc) or type(exc).__name__, **ctx)  # type: ignore[call-arg]
    return err.with_cause(exc)  # type: ignore[return-value]


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; stringify the rest; hex-encode bytes.
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (list, tuple)):
        return [_coerce_json(i) for i in v]
    if isinstance(v, dict):
        return {str(k): _coerce_json(i) for k, i in v.items()}
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    if isinstance(v, Enum):
        return v.value
    return str(v)


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "ErrorCode",
    "PqdagError",
    "InternalError",
    "DependencyMissing",
    "ConfigError",
    "EncodingError",
    "DecodeError",
    "KeypairError",
    "SigningError",
    "KeyDecodeError",
    "SignatureDecodeError",
    "TxRejected",
    "InvalidSignature",
    "MalformedTransaction",
    "DuplicateTransaction",
    "InsufficientFunds",
    "UnknownParent",
    "wrap",
]
