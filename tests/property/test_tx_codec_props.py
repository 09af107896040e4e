"""
Property tests for the transaction codec: canonical bytes are a pure function
of the fields, the wire forms decode back to the same value, and any change to
a signed field breaks verification.
"""
from __future__ import annotations

import base64
import dataclasses

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from pqdag.encoding import canonical
from pqdag.types import SignedTransaction, Transaction

U64 = st.integers(min_value=0, max_value=2**64 - 1)
B64 = st.binary(min_size=1, max_size=48).map(lambda b: base64.b64encode(b).decode("ascii"))

transactions = st.builds(
    Transaction,
    parents=st.lists(B64, max_size=4).map(tuple),
    sender=B64,
    timestamp=U64,
    amount=U64,
    receiver=B64,
)

PROFILE = settings(max_examples=60, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])


@PROFILE
@given(tx=transactions)
def test_encoding_is_deterministic_and_decodable(tx):
    raw = tx.encode()
    assert raw == dataclasses.replace(tx).encode()
    assert Transaction.decode(raw) == tx
    assert list(canonical.loads(raw)) == ["parents", "sender", "timestamp", "amount", "receiver"]


@PROFILE
@given(tx=transactions, sig=B64)
def test_wire_forms_roundtrip(tx, sig):
    stx = SignedTransaction(tx, sig)
    assert SignedTransaction.decode(stx.encode()) == stx
    assert SignedTransaction.from_record(stx.to_record()) == stx
    assert SignedTransaction.from_json(stx.to_json()).hash() == stx.hash()


@PROFILE
@given(amount=U64, timestamp=U64, delta=st.integers(min_value=1, max_value=1000))
def test_signed_fields_are_bound(signer, verifier, alice, bob, amount, timestamp, delta):
    tx = Transaction.new([], alice.public_key, amount, bob.public_key, clock=lambda: timestamp)
    stx = tx.sign(signer, alice.secret_key)
    assert stx.verify(verifier)

    bumped = (amount + delta) % 2**64
    altered = dataclasses.replace(stx, transaction=dataclasses.replace(tx, amount=bumped))
    assert not altered.verify(verifier)
    assert altered.hash() != stx.hash()

    later = dataclasses.replace(stx, transaction=dataclasses.replace(tx, timestamp=(timestamp + delta) % 2**64))
    assert not later.verify(verifier)


@PROFILE
@given(amount=U64, data=st.data())
def test_any_flipped_payload_byte_fails_verification(signer, verifier, alice, bob, amount, data):
    tx = Transaction.new([], alice.public_key, amount, bob.public_key, clock=lambda: 1)
    payload = tx.encode()
    sig = signer.sign(alice.secret_key, payload)
    assert verifier.verify(alice.public_key, payload, sig)

    i = data.draw(st.integers(min_value=0, max_value=len(payload) - 1), label="index")
    mask = data.draw(st.integers(min_value=1, max_value=255), label="mask")
    flipped = bytearray(payload)
    flipped[i] ^= mask
    assert verifier.verify(alice.public_key, bytes(flipped), sig) is False
