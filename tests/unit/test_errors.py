from __future__ import annotations

import json

import pytest

from pqdag.errors import (
    ConfigError,
    DecodeError,
    DependencyMissing,
    ErrorCode,
    InsufficientFunds,
    InternalError,
    InvalidSignature,
    MalformedTransaction,
    PqdagError,
    TxRejected,
    UnknownParent,
    wrap,
)


def test_rejection_hierarchy():
    assert issubclass(MalformedTransaction, InvalidSignature)
    for cls in (InvalidSignature, InsufficientFunds, UnknownParent):
        assert issubclass(cls, TxRejected)
        assert issubclass(cls, PqdagError)


def test_retryability_per_kind():
    assert InsufficientFunds("h", sender="s", needed=2, balance=1).retryable
    assert UnknownParent("h", parent="p").retryable
    assert not InvalidSignature("h").retryable
    assert not MalformedTransaction("h", reason="bad b64").retryable


def test_to_dict_is_json_safe():
    err = DecodeError("bad record", raw=b"\x01\x02", errors=["a", "b"])
    d = err.to_dict()
    assert d["code"] == ErrorCode.DECODING.value
    assert d["data"]["raw"] == "0102"
    json.dumps(d)


def test_with_context_returns_a_new_error():
    err = InsufficientFunds("h", sender="s", needed=2, balance=1)
    enriched = err.with_context(attempt=3)
    assert enriched is not err
    assert type(enriched) is InsufficientFunds
    assert enriched.data["attempt"] == 3 and "attempt" not in err.data
    assert enriched.code is ErrorCode.TX_INSUFFICIENT_FUNDS


def test_with_cause_keeps_the_original_exception():
    cause = RuntimeError("native failure")
    err = ConfigError("rng rejected", rng="NIST-KAT").with_cause(cause)
    assert err.cause is cause and err.__cause__ is cause
    assert err.to_dict(include_cause=True)["cause"] == {"type": "RuntimeError", "message": "native failure"}


def test_wrap():
    w = wrap(ValueError("boom"), stage="decode")
    assert isinstance(w, InternalError)
    assert w.data == {"stage": "decode"}
    assert isinstance(w.cause, ValueError)

    original = UnknownParent("h", parent="p")
    again = wrap(original, stage="apply")
    assert type(again) is UnknownParent and again.data["stage"] == "apply"


def test_str_carries_code_and_data():
    err = DependencyMissing("liboqs-python", hint="pip install liboqs-python")
    text = str(err)
    assert text.startswith(ErrorCode.DEP_MISSING.value)
    assert "liboqs-python" in text


def test_errors_raise_and_catch_as_exceptions():
    with pytest.raises(TxRejected):
        raise MalformedTransaction("h", reason="x")
