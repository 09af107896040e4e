from __future__ import annotations

"""
pqdag/types/tx.py
=================

Transaction model (unsigned/signed), canonical JSON encoding, content hash.

Design highlights
-----------------
- **Encoding**: canonical compact JSON (pqdag.encoding.canonical), keys in the
  declaration order ``parents, sender, timestamp, amount, receiver``.
- **Signing**: the signature covers ``Transaction.encode()`` only, never the
  signed wrapper, so it cannot cover itself.
- **Hash**: base64(BLAKE3-256(canonical ``{"transaction": {...}, "signature": "..."}``)).
  It includes the signature, so two signatures over the same payload give two
  distinct DAG vertices. The hash is derived, never stored on the record.
- **Accounts**: public keys travel as standard base64 strings.
- **Wire**: a flat JSON record (payload fields + ``signature``) validated with
  JSON Schema on input; see pqdag.encoding.schema.
"""

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from ..encoding import canonical
from ..encoding.schema import SIGNED_TX_SCHEMA, TX_PAYLOAD_SCHEMA, TX_RECORD_SCHEMA, validate
from ..errors import DecodeError, EncodingError
from ..utils.bytes import BytesLike, b64encode, is_byteslike
from ..utils.hash import content_hash

if TYPE_CHECKING:  # pragma: no cover
    from ..pq.sign import Signer
    from ..pq.verify import Verification, Verifier

Clock = Callable[[], int]
KeyLike = Union[str, BytesLike]


def system_clock_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


def _account(key: KeyLike, *, field: str) -> str:
    if isinstance(key, str):
        return key
    if is_byteslike(key):
        return b64encode(key)
    raise TypeError(f"{field} must be a base64 string or raw key bytes, got {type(key).__name__}")


def _parent_hash(parent: Union[str, "SignedTransaction"]) -> str:
    if isinstance(parent, SignedTransaction):
        return parent.hash()
    if isinstance(parent, str):
        return parent
    raise TypeError(f"parent must be a hash string or SignedTransaction, got {type(parent).__name__}")


@dataclass(frozen=True)
class Transaction:
    """
    Unsigned transfer payload.

    ``amount`` and ``timestamp`` are not range-checked here; encoding rejects
    values outside the unsigned 64-bit range with EncodingError.
    """

    parents: Tuple[str, ...]
    sender: str
    timestamp: int
    amount: int
    receiver: str

    def __post_init__(self) -> None:
        if not isinstance(self.parents, tuple):
            object.__setattr__(self, "parents", tuple(self.parents))

    # construction

    @classmethod
    def new(
        cls,
        parents: Iterable[Union[str, "SignedTransaction"]],
        sender_public_key: KeyLike,
        amount: int,
        receiver_public_key: KeyLike,
        *,
        clock: Optional[Clock] = None,
    ) -> "Transaction":
        """
        Build a payload stamped with ``clock()`` (defaults to wall-clock ms).

        Parents may be content-hash strings or SignedTransactions (hashed
        here). Keys may be raw bytes or their base64 text.
        """
        return cls(
            parents=tuple(_parent_hash(p) for p in parents),
            sender=_account(sender_public_key, field="sender"),
            timestamp=(clock or system_clock_ms)(),
            amount=amount,
            receiver=_account(receiver_public_key, field="receiver"),
        )

    # encoding

    def to_obj(self) -> Dict[str, Any]:
        return {
            "parents": list(self.parents),
            "sender": self.sender,
            "timestamp": self.timestamp,
            "amount": self.amount,
            "receiver": self.receiver,
        }

    def encode(self) -> bytes:
        """Canonical bytes; this is exactly what gets signed."""
        canonical.require_u64(self.timestamp, field="timestamp")
        canonical.require_u64(self.amount, field="amount")
        for name in ("sender", "receiver"):
            if not isinstance(getattr(self, name), str):
                raise EncodingError(f"{name} must be a string", field=name)
        if not all(isinstance(p, str) for p in self.parents):
            raise EncodingError("parents must be hash strings", field="parents")
        return canonical.dumps(self.to_obj())

    @staticmethod
    def from_obj(o: Mapping[str, Any]) -> "Transaction":
        validate(o, TX_PAYLOAD_SCHEMA, what="transaction")
        return Transaction(
            parents=tuple(o["parents"]),
            sender=o["sender"],
            timestamp=o["timestamp"],
            amount=o["amount"],
            receiver=o["receiver"],
        )

    @staticmethod
    def decode(data: Union[bytes, str]) -> "Transaction":
        return Transaction.from_obj(canonical.loads(data))

    # signing

    def sign(self, signer: "Signer", secret_key: BytesLike) -> "SignedTransaction":
        signature = signer.sign(secret_key, self.encode())
        return SignedTransaction(transaction=self, signature=b64encode(signature))

    @property
    def is_genesis(self) -> bool:
        return not self.parents


@dataclass(frozen=True)
class SignedTransaction:
    """
    A Transaction plus the base64 signature over its canonical encoding.
    """

    transaction: Transaction
    signature: str

    # encoding

    def to_obj(self) -> Dict[str, Any]:
        return {"transaction": self.transaction.to_obj(), "signature": self.signature}

    def encode(self) -> bytes:
        """Canonical bytes of the nested form; the hashing input."""
        self.transaction.encode()  # field checks
        if not isinstance(self.signature, str):
            raise EncodingError("signature must be a base64 string", field="signature")
        return canonical.dumps(self.to_obj())

    @staticmethod
    def from_obj(o: Mapping[str, Any]) -> "SignedTransaction":
        validate(o, SIGNED_TX_SCHEMA, what="signed transaction")
        t = o["transaction"]
        return SignedTransaction(
            transaction=Transaction(
                parents=tuple(t["parents"]),
                sender=t["sender"],
                timestamp=t["timestamp"],
                amount=t["amount"],
                receiver=t["receiver"],
            ),
            signature=o["signature"],
        )

    @staticmethod
    def decode(data: Union[bytes, str]) -> "SignedTransaction":
        return SignedTransaction.from_obj(canonical.loads(data))

    # wire record

    def to_record(self) -> Dict[str, Any]:
        return {**self.transaction.to_obj(), "signature": self.signature}

    @staticmethod
    def from_record(rec: Any) -> "SignedTransaction":
        validate(rec, TX_RECORD_SCHEMA, what="transaction record")
        return SignedTransaction(
            transaction=Transaction(
                parents=tuple(rec["parents"]),
                sender=rec["sender"],
                timestamp=rec["timestamp"],
                amount=rec["amount"],
                receiver=rec["receiver"],
            ),
            signature=rec["signature"],
        )

    def to_json(self, *, pretty: bool = False) -> str:
        rec = self.to_record()
        if pretty:
            return canonical.pretty(rec)
        return canonical.dumps(rec).decode("utf-8")

    @staticmethod
    def from_json(data: Union[bytes, str]) -> "SignedTransaction":
        obj = canonical.loads(data)
        if not isinstance(obj, dict):
            raise DecodeError("transaction record must be a JSON object", type=type(obj).__name__)
        return SignedTransaction.from_record(obj)

    # hashing & verification

    def hash(self) -> str:
        """Content hash (base64 BLAKE3-256 of ``encode()``). Pure and repeatable."""
        return content_hash(self.encode())

    def verify(self, verifier: "Verifier") -> bool:
        """
        True iff the signature verifies against the sender key for exactly
        this payload. An undecodable sender or signature is False as well;
        use ``check`` to tell malformed input from a mismatch.
        """
        return self.check(verifier).is_valid

    def check(self, verifier: "Verifier") -> "Verification":
        """Three-way verification (valid / invalid / malformed)."""
        return verifier.check_encoded(
            self.transaction.sender, self.transaction.encode(), self.signature
        )

    # human helpers

    def __str__(self) -> str:
        t = self.transaction
        return f"SignedTransaction<{self.hash()[:12]}… amount={t.amount} parents={len(t.parents)}>"

    def summary(self) -> Mapping[str, Any]:
        t = self.transaction
        return {
            "hash": self.hash(),
            "sender": t.sender[:16] + "…",
            "receiver": t.receiver[:16] + "…",
            "amount": t.amount,
            "timestamp": t.timestamp,
            "parents": list(t.parents),
            "signatureBytes": len(self.signature) * 3 // 4 - self.signature.count("="),
        }


__all__ = ["Clock", "system_clock_ms", "Transaction", "SignedTransaction"]
