"""
WorldState: account balances and per-wallet history over applied DAG vertices.

``apply(stx)`` runs these checks in order and either commits every effect or
none of them:

  1. signature                      -> InvalidSignature / MalformedTransaction
  2. hash in sender/receiver history -> DuplicateTransaction
  3. sender exists, balance >= amount -> InsufficientFunds
  4. every parent applied or whitelisted (genesis policy for parent-less)
                                      -> UnknownParent
  5. debit sender, credit receiver (created at zero), record the hash

Locking
-------
Accounts hash onto a fixed set of lock stripes. ``apply`` takes the sender and
receiver stripes in index order, so transfers between disjoint pairs usually
run in parallel and overlapping ones serialise. Queries never allocate locks.
The DAG lock guards the applied/genesis sets and is always taken after the
stripes. Signature verification runs before any lock.
"""

from __future__ import annotations

import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Union

from ..encoding.canonical import U64_MAX
from ..encoding.schema import SNAPSHOT_SCHEMA, validate
from ..errors import (
    DecodeError,
    DuplicateTransaction,
    EncodingError,
    InsufficientFunds,
    InvalidSignature,
    MalformedTransaction,
    TxRejected,
    UnknownParent,
)
from ..logging import get_logger, trace_scope
from ..pq.verify import VerifyStatus
from ..utils.bytes import BytesLike, b64encode, is_byteslike

if TYPE_CHECKING:  # pragma: no cover
    from ..pq.verify import Verifier
    from ..types.tx import SignedTransaction

log = get_logger(__name__)

SNAPSHOT_VERSION = 1
LOCK_STRIPES = 64


class GenesisPolicy(str, Enum):
    """
    How parent-less transactions are treated.

    BOOTSTRAP: accepted only while nothing has been applied yet; afterwards a
               transaction must name at least one known parent.
    OPEN:      any transaction may be a root of the DAG.
    """

    BOOTSTRAP = "bootstrap"
    OPEN = "open"


@dataclass
class Wallet:
    balance: int = 0
    history: Set[str] = field(default_factory=set)

    def to_obj(self) -> Dict[str, Any]:
        return {"balance": self.balance, "history": sorted(self.history)}

    def copy(self) -> "Wallet":
        return Wallet(balance=self.balance, history=set(self.history))


@dataclass(frozen=True)
class ApplyReceipt:
    tx_hash: str
    sender: str
    receiver: str
    amount: int
    sender_balance: int
    receiver_balance: int
    genesis: bool = False

    def to_obj(self) -> Dict[str, Any]:
        return {
            "hash": self.tx_hash,
            "sender": self.sender,
            "receiver": self.receiver,
            "amount": self.amount,
            "senderBalance": self.sender_balance,
            "receiverBalance": self.receiver_balance,
            "genesis": self.genesis,
        }


def _key(account: Union[str, BytesLike]) -> str:
    if isinstance(account, str):
        return account
    if is_byteslike(account):
        return b64encode(account)
    raise TypeError(f"account must be base64 str or key bytes, got {type(account).__name__}")


class WorldState:
    """
    In-memory ledger state. Wallets are never removed and the sum of balances
    is conserved by every transfer.
    """

    def __init__(
        self,
        verifier: "Verifier",
        *,
        genesis_policy: Union[GenesisPolicy, str] = GenesisPolicy.BOOTSTRAP,
        wallets: Optional[Mapping[str, Wallet]] = None,
        applied: Iterable[str] = (),
        genesis: Iterable[str] = (),
    ) -> None:
        self._verifier = verifier
        self.genesis_policy = GenesisPolicy(genesis_policy)
        self._wallets: Dict[str, Wallet] = {k: w.copy() for k, w in (wallets or {}).items()}
        self._applied: Set[str] = set(applied)
        self._genesis: Set[str] = set(genesis)
        supply = sum(w.balance for w in self._wallets.values())
        if supply > U64_MAX:
            raise ValueError(f"total supply {supply} exceeds the u64 range")
        self._stripes = tuple(threading.Lock() for _ in range(LOCK_STRIPES))
        self._registry_lock = threading.Lock()
        self._dag_lock = threading.Lock()

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    @classmethod
    def from_allocations(
        cls,
        verifier: "Verifier",
        allocations: Mapping[Union[str, bytes], int],
        *,
        genesis_policy: Union[GenesisPolicy, str] = GenesisPolicy.BOOTSTRAP,
    ) -> "WorldState":
        """
        Start a ledger with the given opening balances and empty histories.

        The total may not exceed the u64 range; transfers conserve it, so no
        later credit can overflow a balance.
        """
        wallets: Dict[str, Wallet] = {}
        for account, balance in allocations.items():
            if isinstance(balance, bool) or not isinstance(balance, int) or not 0 <= balance <= U64_MAX:
                raise ValueError(f"opening balance must be a u64 integer, got {balance!r}")
            wallets[_key(account)] = Wallet(balance=balance)
        return cls(verifier, genesis_policy=genesis_policy, wallets=wallets)

    @classmethod
    def from_snapshot(
        cls,
        verifier: "Verifier",
        snapshot: Mapping[str, Any],
        *,
        genesis_policy: Union[GenesisPolicy, str, None] = None,
    ) -> "WorldState":
        """Rebuild from ``snapshot()`` output; raises DecodeError on a bad document."""
        validate(snapshot, SNAPSHOT_SCHEMA, what="world snapshot")
        wallets = {
            k: Wallet(balance=v["balance"], history=set(v.get("history", ())))
            for k, v in snapshot["accounts"].items()
        }
        supply = sum(w.balance for w in wallets.values())
        if supply > U64_MAX:
            raise DecodeError("invalid world snapshot: total supply exceeds the u64 range", supply=str(supply))
        applied = snapshot.get("applied")
        if applied is None:
            applied = set().union(*(w.history for w in wallets.values()))
        policy = genesis_policy or snapshot.get("genesis_policy") or GenesisPolicy.BOOTSTRAP
        return cls(
            verifier,
            genesis_policy=policy,
            wallets=wallets,
            applied=applied,
            genesis=snapshot.get("genesis", ()),
        )

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe, consistent copy of the whole state."""
        with self._all_locks():
            return {
                "version": SNAPSHOT_VERSION,
                "genesis_policy": self.genesis_policy.value,
                "accounts": {k: self._wallets[k].to_obj() for k in sorted(self._wallets)},
                "applied": sorted(self._applied),
                "genesis": sorted(self._genesis),
            }

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def whitelist_genesis(self, tx_hash: str) -> None:
        """Treat ``tx_hash`` as a known parent without it having been applied."""
        with self._dag_lock:
            self._genesis.add(tx_hash)

    def is_known(self, tx_hash: str) -> bool:
        with self._dag_lock:
            return tx_hash in self._applied or tx_hash in self._genesis

    def wallet(self, account: Union[str, BytesLike]) -> Optional[Wallet]:
        """Copy of the wallet, or None if the account has never been seen."""
        key = _key(account)
        with self._stripe(key):
            w = self._wallets.get(key)
            return None if w is None else w.copy()

    def balance_of(self, account: Union[str, BytesLike]) -> int:
        w = self.wallet(account)
        return 0 if w is None else w.balance

    def total_supply(self) -> int:
        with self._all_locks():
            return sum(w.balance for w in self._wallets.values())

    def accounts(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._wallets)

    def __contains__(self, account: object) -> bool:
        if not isinstance(account, (str, bytes, bytearray, memoryview)):
            return False
        key = _key(account)
        with self._registry_lock:
            return key in self._wallets

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._wallets)

    # ------------------------------------------------------------------
    # apply
    # ------------------------------------------------------------------

    def apply(self, stx: "SignedTransaction") -> ApplyReceipt:
        """
        Apply one signed transfer atomically, or raise a TxRejected subclass
        and leave the state untouched.
        """
        try:
            tx_hash = stx.hash()
        except EncodingError as e:
            err = MalformedTransaction("<unencodable>", reason=e.message)
            log.warning("rejected transaction", extra={"code": err.code.value, **err.data})
            raise err from e

        with trace_scope(component="world", tx=tx_hash):
            try:
                receipt = self._apply(stx, tx_hash)
            except TxRejected as e:
                log.warning(
                    "rejected transaction",
                    extra={"code": e.code.value, "retryable": e.retryable, **e.data},
                )
                raise
            log.info(
                "applied transaction",
                extra={
                    "amount": receipt.amount,
                    "sender_balance": receipt.sender_balance,
                    "receiver_balance": receipt.receiver_balance,
                    "genesis": receipt.genesis,
                },
            )
            return receipt

    def _apply(self, stx: "SignedTransaction", tx_hash: str) -> ApplyReceipt:
        tx = stx.transaction

        # 1) signature, outside any lock
        verification = stx.check(self._verifier)
        if verification.status is VerifyStatus.MALFORMED:
            raise MalformedTransaction(tx_hash, reason=verification.reason or "malformed")
        if verification.status is not VerifyStatus.VALID:
            raise InvalidSignature(tx_hash)

        sender, receiver = tx.sender, tx.receiver
        with self._pair_locks(sender, receiver):
            src = self._wallets.get(sender)
            dst = self._wallets.get(receiver)

            # 2) duplicate
            for account, w in ((sender, src), (receiver, dst)):
                if w is not None and tx_hash in w.history:
                    raise DuplicateTransaction(tx_hash, account=account)

            # 3) funds
            if src is None or src.balance < tx.amount:
                raise InsufficientFunds(
                    tx_hash,
                    sender=sender,
                    needed=tx.amount,
                    balance=None if src is None else src.balance,
                )

            with self._dag_lock:
                # 4) parents
                self._check_parents(tx_hash, tx.parents)

                # 5) commit
                if dst is None:
                    with self._registry_lock:
                        dst = self._wallets.setdefault(receiver, Wallet())
                src.balance -= tx.amount
                dst.balance += tx.amount
                src.history.add(tx_hash)
                dst.history.add(tx_hash)
                self._applied.add(tx_hash)

            return ApplyReceipt(
                tx_hash=tx_hash,
                sender=sender,
                receiver=receiver,
                amount=tx.amount,
                sender_balance=src.balance,
                receiver_balance=dst.balance,
                genesis=not tx.parents,
            )

    def _check_parents(self, tx_hash: str, parents: Iterable[str]) -> None:
        parents = tuple(parents)
        if not parents:
            if self.genesis_policy is GenesisPolicy.BOOTSTRAP and self._applied:
                raise UnknownParent(
                    tx_hash,
                    parent=None,
                    reason="parent-less transactions are only accepted before the first apply",
                )
            return
        for parent in parents:
            if parent not in self._applied and parent not in self._genesis:
                raise UnknownParent(tx_hash, parent=parent)

    # ------------------------------------------------------------------
    # locking
    # ------------------------------------------------------------------

    def _stripe_index(self, account: str) -> int:
        return hash(account) % len(self._stripes)

    def _stripe(self, account: str) -> threading.Lock:
        return self._stripes[self._stripe_index(account)]

    def _pair_locks(self, *accounts: str) -> ExitStack:
        stack = ExitStack()
        for i in sorted({self._stripe_index(a) for a in accounts}):
            stack.enter_context(self._stripes[i])
        return stack

    def _all_locks(self) -> ExitStack:
        stack = ExitStack()
        for lock in self._stripes:
            stack.enter_context(lock)
        stack.enter_context(self._dag_lock)
        return stack

    def __iter__(self) -> Iterator[str]:
        return iter(self.accounts())

    def __repr__(self) -> str:
        return f"WorldState(accounts={len(self)}, applied={len(self._applied)}, policy={self.genesis_policy.value})"


__all__ = ["GenesisPolicy", "Wallet", "ApplyReceipt", "WorldState", "SNAPSHOT_VERSION", "LOCK_STRIPES"]
