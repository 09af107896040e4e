from __future__ import annotations

import io
import json
import logging

from pqdag import logging as plog


def _lines(buf: io.StringIO):
    return [line for line in buf.getvalue().splitlines() if line]


def test_json_formatter_merges_context_and_extras():
    buf = io.StringIO()
    plog.configure(json=True, level="DEBUG", stream=buf)
    log = plog.get_logger("pqdag.test")

    with plog.trace_scope(trace_id="t-1", component="world"):
        log.info("applied transaction", extra={"amount": 5, "raw": b"\x00\xff"})

    rec = json.loads(_lines(buf)[-1])
    assert rec["msg"] == "applied transaction"
    assert rec["level"] == "INFO"
    assert rec["trace_id"] == "t-1" and rec["component"] == "world"
    assert rec["amount"] == 5
    assert "message" not in rec


def test_text_formatter_is_single_line():
    buf = io.StringIO()
    plog.configure(json=False, level="INFO", stream=buf)
    with plog.trace_scope(component="cli"):
        plog.get_logger("pqdag.cli").warning("rejected transaction", extra={"code": "PQDAG/TX_DUPLICATE"})
    (line,) = _lines(buf)
    assert "WARN" in line and "component=cli" in line and "code=PQDAG/TX_DUPLICATE" in line


def test_level_filters(monkeypatch):
    monkeypatch.setenv(plog.ENV_LEVEL, "warning")
    buf = io.StringIO()
    plog.configure(json=True, stream=buf)
    log = plog.get_logger("pqdag.test")
    log.info("hidden")
    log.error("shown")
    assert [json.loads(x)["msg"] for x in _lines(buf)] == ["shown"]


def test_non_tty_stream_defaults_to_json(monkeypatch):
    monkeypatch.delenv(plog.ENV_FORMAT, raising=False)
    buf = io.StringIO()
    plog.configure(level="INFO", stream=buf)
    plog.get_logger("pqdag.test").info("hello")
    assert json.loads(_lines(buf)[0])["msg"] == "hello"


def test_file_sink_receives_json(tmp_path):
    path = tmp_path / "logs" / "pqdag.log"
    plog.configure(json=False, level="INFO", stream=io.StringIO(), file_path=path)
    plog.get_logger("pqdag.test").info("to file")
    for h in logging.getLogger("pqdag").handlers:
        h.flush()
    assert json.loads(path.read_text().splitlines()[0])["msg"] == "to file"


def test_context_is_restored_after_scope():
    plog.clear_context()
    plog.bind(alg="Falcon-1024")
    with plog.trace_scope(tx="abc") as ctx:
        assert ctx["tx"] == "abc" and ctx["alg"] == "Falcon-1024"
        assert len(ctx["trace_id"]) == 12
    assert plog.context() == {"alg": "Falcon-1024"}
    plog.unbind("alg")
    assert plog.context() == {}


def test_adapter_injects_constant_fields():
    buf = io.StringIO()
    plog.configure(json=True, level="INFO", stream=buf)
    adapter = plog.with_fields(plog.get_logger("pqdag.test"), alg="TEST")
    adapter.info("bench", extra={"ms": 1})
    rec = json.loads(_lines(buf)[-1])
    assert rec["alg"] == "TEST" and rec["ms"] == 1
