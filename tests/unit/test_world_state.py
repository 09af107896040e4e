from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from pqdag.errors import (
    DecodeError,
    DuplicateTransaction,
    ErrorCode,
    InsufficientFunds,
    InvalidSignature,
    MalformedTransaction,
    TxRejected,
    UnknownParent,
)
from pqdag.encoding.canonical import U64_MAX
from pqdag.state import GenesisPolicy, WorldState
from pqdag.state.world import LOCK_STRIPES
from pqdag.types import SignedTransaction, Transaction


def _transfer(signer, src, dst, amount, clock, parents=()):
    return Transaction.new(list(parents), src.public_key, amount, dst.public_key, clock=clock).sign(
        signer, src.secret_key
    )


def test_transfer_moves_funds_and_rejects_replay(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    stx = _transfer(signer, alice, bob, 100, clock)

    receipt = world.apply(stx)
    assert receipt.tx_hash == stx.hash()
    assert receipt.sender_balance == 900 and receipt.receiver_balance == 100
    assert receipt.genesis is True
    assert world.balance_of(alice.public_key) == 900
    assert world.balance_of(bob.public_b64) == 100
    assert stx.hash() in world.wallet(alice.public_key).history
    assert stx.hash() in world.wallet(bob.public_key).history
    assert world.is_known(stx.hash())

    with pytest.raises(DuplicateTransaction) as ei:
        world.apply(stx)
    assert ei.value.code is ErrorCode.TX_DUPLICATE
    assert world.balance_of(alice.public_key) == 900


def test_receiver_is_created_on_first_credit(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 10})
    assert bob.public_b64 not in world
    assert world.wallet(bob.public_key) is None
    world.apply(_transfer(signer, alice, bob, 0, clock))
    assert bob.public_b64 in world
    assert world.balance_of(bob.public_key) == 0
    assert len(world) == 2


def test_forged_signature_is_rejected_without_effect(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    before = world.snapshot()

    tx = Transaction.new([], alice.public_key, 500, bob.public_key, clock=clock)
    forged = tx.sign(signer, bob.secret_key)
    with pytest.raises(InvalidSignature) as ei:
        world.apply(forged)
    assert type(ei.value) is InvalidSignature
    assert not ei.value.retryable
    assert world.snapshot() == before


def test_tampered_amount_is_rejected(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    stx = _transfer(signer, alice, bob, 1, clock)
    tampered = dataclasses.replace(stx, transaction=dataclasses.replace(stx.transaction, amount=999))
    with pytest.raises(InvalidSignature):
        world.apply(tampered)
    assert world.balance_of(alice.public_key) == 1000


def test_undecodable_signature_is_malformed(make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    tx = Transaction.new([], alice.public_key, 1, bob.public_key, clock=clock)
    with pytest.raises(MalformedTransaction) as ei:
        world.apply(SignedTransaction(tx, "%%%"))
    assert ei.value.code is ErrorCode.TX_MALFORMED
    assert isinstance(ei.value, InvalidSignature)


def test_unencodable_transaction_is_malformed(make_world, alice, bob):
    world = make_world({alice.public_b64: 1000})
    tx = Transaction.new([], alice.public_key, -1, bob.public_key, clock=lambda: 0)
    with pytest.raises(MalformedTransaction) as ei:
        world.apply(SignedTransaction(tx, "AAAA"))
    assert ei.value.data["tx"] == "<unencodable>"


def test_insufficient_funds_is_retryable(signer, make_world, alice, bob, carol, clock):
    world = make_world({alice.public_b64: 50})
    with pytest.raises(InsufficientFunds) as ei:
        world.apply(_transfer(signer, alice, bob, 51, clock))
    assert ei.value.retryable
    assert ei.value.data["balance"] == 50 and ei.value.data["needed"] == 51

    with pytest.raises(InsufficientFunds) as ei:
        world.apply(_transfer(signer, carol, bob, 1, clock))
    assert ei.value.data["balance"] is None
    assert carol.public_b64 not in world


def test_exact_balance_can_be_spent(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 50})
    world.apply(_transfer(signer, alice, bob, 50, clock))
    assert world.balance_of(alice.public_key) == 0


def test_unknown_parent_then_success_once_parent_applied(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    parent = _transfer(signer, alice, bob, 10, clock)
    child = _transfer(signer, alice, bob, 20, clock, parents=[parent])

    with pytest.raises(UnknownParent) as ei:
        world.apply(child)
    assert ei.value.retryable
    assert ei.value.data["parent"] == parent.hash()
    assert world.balance_of(bob.public_key) == 0

    world.apply(parent)
    receipt = world.apply(child)
    assert receipt.genesis is False
    assert world.balance_of(bob.public_key) == 30


def test_bootstrap_policy_allows_only_the_first_root(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    world.apply(_transfer(signer, alice, bob, 1, clock))
    with pytest.raises(UnknownParent) as ei:
        world.apply(_transfer(signer, alice, bob, 1, clock))
    assert ei.value.data["parent"] is None


def test_open_policy_accepts_any_root(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000}, GenesisPolicy.OPEN)
    for _ in range(3):
        world.apply(_transfer(signer, alice, bob, 1, clock))
    assert world.balance_of(bob.public_key) == 3


def test_whitelisted_genesis_counts_as_known_parent(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    world.apply(_transfer(signer, alice, bob, 1, clock))
    genesis = "Z2VuZXNpcw=="
    world.whitelist_genesis(genesis)
    assert world.is_known(genesis)
    world.apply(_transfer(signer, alice, bob, 1, clock, parents=[genesis]))
    assert world.balance_of(bob.public_key) == 2


def test_self_transfer_keeps_balance_and_records_history(signer, make_world, alice, clock):
    world = make_world({alice.public_b64: 100})
    stx = _transfer(signer, alice, alice, 40, clock)
    receipt = world.apply(stx)
    assert receipt.sender_balance == receipt.receiver_balance == 100
    assert world.wallet(alice.public_key).history == {stx.hash()}
    assert world.total_supply() == 100


def test_supply_is_conserved(signer, make_world, alice, bob, carol, clock):
    world = make_world({alice.public_b64: 600, bob.public_b64: 400}, GenesisPolicy.OPEN)
    for src, dst, amt in [(alice, bob, 100), (bob, carol, 250), (carol, alice, 50), (alice, carol, 1)]:
        world.apply(_transfer(signer, src, dst, amt, clock))
    assert world.total_supply() == 1000
    assert world.accounts() == sorted([alice.public_b64, bob.public_b64, carol.public_b64])


def test_snapshot_roundtrip(signer, verifier, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    stx = _transfer(signer, alice, bob, 100, clock)
    world.apply(stx)
    world.whitelist_genesis("Z2VuZXNpcw==")

    snap = world.snapshot()
    assert snap["accounts"][alice.public_b64] == {"balance": 900, "history": [stx.hash()]}
    restored = WorldState.from_snapshot(verifier, snap)
    assert restored.snapshot() == snap

    with pytest.raises(DuplicateTransaction):
        restored.apply(stx)


def test_snapshot_without_applied_derives_it_from_histories(verifier, alice):
    snap = {"version": 1, "accounts": {alice.public_b64: {"balance": 5, "history": ["aGFzaA=="]}}}
    world = WorldState.from_snapshot(verifier, snap, genesis_policy="open")
    assert world.is_known("aGFzaA==")
    assert world.genesis_policy is GenesisPolicy.OPEN


@pytest.mark.parametrize(
    "snap",
    [
        {"version": 2, "accounts": {}},
        {"version": 1},
        {"version": 1, "accounts": {"a": {"balance": -1}}},
        {"version": 1, "accounts": {}, "genesis_policy": "closed"},
    ],
)
def test_bad_snapshot_is_a_decode_error(verifier, snap):
    with pytest.raises(DecodeError):
        WorldState.from_snapshot(verifier, snap)


@pytest.mark.parametrize("balance", [-1, 2**64, True, "10"])
def test_bad_allocation_is_refused(verifier, alice, balance):
    with pytest.raises(ValueError):
        WorldState.from_allocations(verifier, {alice.public_b64: balance})


def test_disjoint_transfers_run_concurrently(signer, verifier):
    pairs = [(signer.generate_keypair(), signer.generate_keypair()) for _ in range(8)]
    world = WorldState.from_allocations(
        verifier, {src.public_b64: 100 for src, _ in pairs}, genesis_policy=GenesisPolicy.OPEN
    )
    batches = [
        [
            Transaction.new([], src.public_key, 1, dst.public_key, clock=lambda i=i: i).sign(
                signer, src.secret_key
            )
            for i in range(25)
        ]
        for src, dst in pairs
    ]

    def run(batch):
        for stx in batch:
            world.apply(stx)

    with ThreadPoolExecutor(max_workers=len(batches)) as pool:
        list(pool.map(run, batches))

    for src, dst in pairs:
        assert world.balance_of(src.public_key) == 75
        assert world.balance_of(dst.public_key) == 25
        assert len(world.wallet(dst.public_key).history) == 25
    assert world.total_supply() == 800


def test_same_transaction_from_many_threads_applies_once(signer, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: 1000})
    stx = _transfer(signer, alice, bob, 100, clock)
    n = 8
    barrier = threading.Barrier(n)

    def attempt():
        barrier.wait()
        try:
            world.apply(stx)
            return "ok"
        except TxRejected as e:
            return type(e).__name__

    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(pool.map(lambda _: attempt(), range(n)))

    assert results.count("ok") == 1
    assert results.count("DuplicateTransaction") == n - 1
    assert world.balance_of(alice.public_key) == 900


def test_apply_logs_outcomes(signer, make_world, alice, bob, clock, caplog):
    caplog.set_level(logging.INFO, logger="pqdag")
    world = make_world({alice.public_b64: 1000})
    stx = _transfer(signer, alice, bob, 100, clock)
    world.apply(stx)
    with pytest.raises(DuplicateTransaction):
        world.apply(stx)

    applied = [r for r in caplog.records if r.getMessage() == "applied transaction"]
    rejected = [r for r in caplog.records if r.getMessage() == "rejected transaction"]
    assert len(applied) == 1 and applied[0].levelno == logging.INFO
    assert applied[0].amount == 100
    assert len(rejected) == 1 and rejected[0].levelno == logging.WARNING
    assert rejected[0].code == ErrorCode.TX_DUPLICATE.value


def test_supply_above_u64_is_refused(verifier, alice, bob):
    with pytest.raises(ValueError):
        WorldState.from_allocations(verifier, {alice.public_b64: U64_MAX, bob.public_b64: 1})


def test_full_supply_transfer_stays_restorable(signer, verifier, make_world, alice, bob, clock):
    world = make_world({alice.public_b64: U64_MAX})
    world.apply(_transfer(signer, alice, bob, U64_MAX, clock))
    assert world.balance_of(bob.public_key) == U64_MAX

    restored = WorldState.from_snapshot(verifier, world.snapshot())
    assert restored.balance_of(bob.public_key) == U64_MAX
    assert restored.total_supply() == U64_MAX


def test_snapshot_with_supply_above_u64_is_a_decode_error(verifier, alice, bob):
    snap = {
        "version": 1,
        "accounts": {alice.public_b64: {"balance": U64_MAX}, bob.public_b64: {"balance": U64_MAX}},
    }
    with pytest.raises(DecodeError):
        WorldState.from_snapshot(verifier, snap)


def test_queries_and_rejections_do_not_grow_lock_state(signer, make_world, alice, clock):
    world = make_world({alice.public_b64: 1})
    strangers = [signer.generate_keypair() for _ in range(200)]
    for kp in strangers:
        assert world.wallet(kp.public_key) is None
        assert world.balance_of(kp.public_b64) == 0
        with pytest.raises(InsufficientFunds):
            world.apply(_transfer(signer, alice, kp, 5, clock))

    assert len(world._stripes) == LOCK_STRIPES
    assert vars(world).keys() == make_world({}).__dict__.keys()
    assert len(world) == 1
