from __future__ import annotations

"""
pqdag: command line front-end.

Examples:
  # New Falcon-1024 key pair (JSON, mode 0600); prints the base64 public key
  pqdag keygen --out alice.key.json

  # Sign a transfer of 100 from alice to bob on top of one parent
  pqdag transfer --key alice.key.json --to bob.key.json --amount 100 --parent <hash> > tx.json

  # Three-way verification (exit 0 valid, 1 invalid, 2 malformed)
  pqdag verify tx.json

  # Content hash of a record
  pqdag hash tx.json

  # Apply records to a fresh ledger and write the resulting snapshot
  pqdag apply --alloc <alice-pk>=1000 --out state.json tx.json

  # Sign/verify timings and encoded size for one genesis transfer
  pqdag bench

Global options select the algorithm (--alg), liboqs RNG (--rng), config file
and logging; see ``pqdag --help``.
"""

import argparse
import json
import os
import stat
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .. import config as pconfig
from .. import logging as plog
from ..encoding import canonical
from ..errors import DecodeError, PqdagError, TxRejected, wrap
from ..pq import PqContext, SigKeypair, init_from_config
from ..state import GenesisPolicy, WorldState
from ..types import SignedTransaction, Transaction
from ..utils.bytes import is_b64
from ..version import __version__

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2

log = plog.get_logger("pqdag.cli")


# --------------------------------------------------------------------------------------
# I/O helpers
# --------------------------------------------------------------------------------------


def _secure_write(path: Path, data: bytes, secret: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if secret:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)  # 0o600 even if the file existed
    else:
        path.write_bytes(data)


def _read_input(src: str) -> bytes:
    if src == "-":
        return sys.stdin.buffer.read()
    p = Path(src)
    if not p.exists():
        raise SystemExit(f"Input file not found: {p}")
    return p.read_bytes()


def _load_key(path: Path) -> SigKeypair:
    if not path.exists():
        raise SystemExit(f"Key file not found: {path}")
    obj = canonical.loads(path.read_bytes())
    if not isinstance(obj, dict):
        raise DecodeError("key file must be a JSON object", path=str(path))
    return SigKeypair.from_obj(obj)


def _resolve_account(value: str) -> str:
    """A base64 public key, or a key file whose public key is used."""
    p = Path(value)
    if p.suffix.lower() == ".json" and p.exists():
        return _load_key(p).public_b64
    if not is_b64(value):
        raise SystemExit(f"Not a base64 public key or key file: {value}")
    return value


def _iter_records(data: bytes) -> Iterable[Any]:
    """One JSON record, a JSON array of records, or JSON lines."""
    if not data.strip():
        return []
    try:
        obj = canonical.loads(data)
    except DecodeError:
        lines = [ln for ln in data.splitlines() if ln.strip()]
        if len(lines) < 2:
            raise
        return [canonical.loads(ln) for ln in lines]
    return obj if isinstance(obj, list) else [obj]


def _print_json(obj: Any, *, pretty: bool = False) -> None:
    if pretty:
        print(canonical.pretty(obj))
    else:
        print(canonical.dumps(obj).decode("utf-8"))


def _fmt_duration(seconds: float) -> str:
    if seconds >= 1.0:
        return f"{seconds:.3f}s"
    if seconds >= 1e-3:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds * 1e6:.3f}µs"


# --------------------------------------------------------------------------------------
# Commands
# --------------------------------------------------------------------------------------


def cmd_keygen(args: argparse.Namespace, ctx: PqContext) -> int:
    out: Path = args.out
    if out.exists() and not args.force:
        raise SystemExit(f"Refusing to overwrite {out} (use --force).")
    kp = ctx.signer().generate_keypair()
    body = json.dumps(kp.to_obj(), indent=2).encode("utf-8") + b"\n"
    _secure_write(out, body, secret=True)
    print(kp.public_b64)
    sys.stderr.write(f"[ok] {ctx.alg} key pair written to {out}\n")
    return EXIT_OK


def cmd_transfer(args: argparse.Namespace, ctx: PqContext) -> int:
    kp = _load_key(args.key)
    if kp.alg != ctx.alg:
        raise SystemExit(f"Key file is for {kp.alg}, but --alg is {ctx.alg}.")
    clock = (lambda: args.timestamp) if args.timestamp is not None else None
    tx = Transaction.new(
        args.parent or [],
        kp.public_key,
        args.amount,
        _resolve_account(args.to),
        clock=clock,
    )
    stx = tx.sign(ctx.signer(), kp.secret_key)
    print(stx.to_json(pretty=args.pretty))
    sys.stderr.write(f"[ok] {stx.hash()}\n")
    return EXIT_OK


def cmd_verify(args: argparse.Namespace, ctx: PqContext) -> int:
    try:
        stx = SignedTransaction.from_json(_read_input(args.record))
    except DecodeError as e:
        _print_json({"status": "malformed", "reason": e.message})
        return EXIT_ERROR
    result = stx.check(ctx.verifier())
    _print_json({"hash": stx.hash(), "status": result.status.value, "reason": result.reason})
    if result.is_valid:
        return EXIT_OK
    return EXIT_ERROR if result.is_malformed else EXIT_REJECTED


def cmd_hash(args: argparse.Namespace, ctx: PqContext) -> int:
    stx = SignedTransaction.from_json(_read_input(args.record))
    print(stx.hash())
    return EXIT_OK


def _parse_alloc(items: List[str]) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for item in items:
        account, sep, amount = item.rpartition("=")
        if not sep or not account:
            raise SystemExit(f"--alloc expects ACCOUNT=AMOUNT, got {item!r}")
        try:
            value = int(amount)
        except ValueError:
            raise SystemExit(f"--alloc amount must be an integer, got {amount!r}")
        if value < 0:
            raise SystemExit(f"--alloc amount must be non-negative, got {value}")
        out[_resolve_account(account)] = value
    return out


def cmd_apply(args: argparse.Namespace, ctx: PqContext) -> int:
    cfg: pconfig.Config = args.cfg
    policy = GenesisPolicy(args.genesis_policy or cfg.ledger.genesis_policy)
    if args.state:
        snap = canonical.loads(_read_input(args.state))
        world = WorldState.from_snapshot(ctx.verifier(), snap, genesis_policy=args.genesis_policy)
    else:
        try:
            world = WorldState.from_allocations(
                ctx.verifier(), _parse_alloc(args.alloc or []), genesis_policy=policy
            )
        except ValueError as e:
            raise SystemExit(f"--alloc: {e}")
    for h in args.whitelist or []:
        world.whitelist_genesis(h)

    applied = rejected = 0
    for src in args.records:
        for rec in _iter_records(_read_input(src)):
            try:
                receipt = world.apply(SignedTransaction.from_record(rec))
            except (TxRejected, DecodeError) as e:
                rejected += 1
                _print_json({"status": "rejected", "error": e.to_dict()})
                continue
            applied += 1
            _print_json({"status": "applied", **receipt.to_obj()})

    log.info("apply finished", extra={"applied": applied, "rejected": rejected})

    if args.out:
        body = json.dumps(world.snapshot(), indent=2).encode("utf-8") + b"\n"
        _secure_write(args.out, body)
        sys.stderr.write(f"[ok] snapshot written to {args.out}\n")
    return EXIT_REJECTED if rejected else EXIT_OK


def cmd_bench(args: argparse.Namespace, ctx: PqContext) -> int:
    signer, verifier = ctx.signer(), ctx.verifier()
    sender = signer.generate_keypair()
    receiver = signer.generate_keypair()

    start = time.perf_counter()
    stx = Transaction.new([], sender.public_key, args.amount, receiver.public_key).sign(
        signer, sender.secret_key
    )
    sign_elapsed = time.perf_counter() - start

    start = time.perf_counter()
    verified = stx.verify(verifier)
    verify_elapsed = time.perf_counter() - start

    print(canonical.pretty(stx.to_obj()))
    print(
        f"VERIFIED: {str(verified).lower()}, {_fmt_duration(sign_elapsed)} sign, "
        f"{_fmt_duration(verify_elapsed)} verify, NIST Level {ctx.claimed_nist_level}"
    )

    start = time.perf_counter()
    encoded = stx.encode()
    ser_elapsed = time.perf_counter() - start

    start = time.perf_counter()
    SignedTransaction.decode(encoded)
    de_elapsed = time.perf_counter() - start

    print(
        f"JSON: {len(encoded)} bytes, {_fmt_duration(ser_elapsed)} ser, "
        f"{_fmt_duration(de_elapsed)} de"
    )
    plog.with_fields(log, alg=ctx.alg, nist_level=ctx.claimed_nist_level).info(
        "bench finished",
        extra={
            "verified": verified,
            "sign_s": sign_elapsed,
            "verify_s": verify_elapsed,
            "encoded_bytes": len(encoded),
        },
    )
    return EXIT_OK if verified else EXIT_REJECTED


# --------------------------------------------------------------------------------------
# Main
# --------------------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pqdag", description="Post-quantum signed, content-addressed DAG transactions."
    )
    ap.add_argument("--version", action="version", version=f"pqdag {__version__}")
    ap.add_argument("--config", type=Path, default=None, help="TOML or JSON config file.")
    ap.add_argument("--alg", default=None, help="Signature mechanism (default Falcon-1024).")
    ap.add_argument("--rng", default=None, help="liboqs RNG: system | OpenSSL | NIST-KAT.")
    ap.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    ap.add_argument("--log-format", choices=["auto", "json", "text"], default=None)

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("keygen", help="Generate a signature key pair file.")
    p.add_argument("--out", type=Path, required=True, help="Key file to write (mode 0600).")
    p.add_argument("--force", action="store_true", help="Overwrite an existing file.")
    p.set_defaults(func=cmd_keygen)

    p = sub.add_parser("transfer", help="Build and sign a transfer; print the wire record.")
    p.add_argument("--key", type=Path, required=True, help="Sender key file.")
    p.add_argument("--to", required=True, help="Receiver base64 public key or key file.")
    p.add_argument("--amount", type=int, required=True)
    p.add_argument("--parent", action="append", help="Parent content hash (repeatable).")
    p.add_argument("--timestamp", type=int, default=None, help="Fixed timestamp in ms.")
    p.add_argument("--pretty", action="store_true", help="Indent the output record.")
    p.set_defaults(func=cmd_transfer)

    p = sub.add_parser("verify", help="Verify a wire record (exit 0/1/2).")
    p.add_argument("record", help="Record file, or - for stdin.")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("hash", help="Print the content hash of a wire record.")
    p.add_argument("record", help="Record file, or - for stdin.")
    p.set_defaults(func=cmd_hash)

    p = sub.add_parser("apply", help="Apply wire records to a ledger state.")
    g = p.add_mutually_exclusive_group()
    g.add_argument("--state", default=None, help="Snapshot JSON to start from.")
    g.add_argument("--alloc", action="append", help="Opening balance ACCOUNT=AMOUNT (repeatable).")
    p.add_argument("--genesis-policy", choices=[x.value for x in GenesisPolicy], default=None)
    p.add_argument("--whitelist", action="append", help="Hash accepted as a known parent.")
    p.add_argument("--out", type=Path, default=None, help="Write the resulting snapshot here.")
    p.add_argument("records", nargs="+", help="Record files (object, array or JSON lines).")
    p.set_defaults(func=cmd_apply)

    p = sub.add_parser("bench", help="Sign/verify one genesis transfer and report timings.")
    p.add_argument("--amount", type=int, default=1000)
    p.set_defaults(func=cmd_bench)

    return ap


def _load_config(args: argparse.Namespace) -> pconfig.Config:
    overrides: Dict[str, Dict[str, Any]] = {}
    if args.alg:
        overrides.setdefault("crypto", {})["sig_alg"] = args.alg
    if args.rng:
        overrides.setdefault("crypto", {})["rng"] = args.rng
    if args.log_level:
        overrides.setdefault("log", {})["level"] = args.log_level
    if args.log_format:
        overrides.setdefault("log", {})["format"] = args.log_format
    return pconfig.load(args.config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = _load_config(args)
        plog.configure_from_config(cfg)
        args.cfg = cfg
        with plog.trace_scope(component="cli"):
            ctx = init_from_config(cfg)
            return int(args.func(args, ctx))
    except PqdagError as e:
        sys.stderr.write(json.dumps({"error": e.to_dict()}) + "\n")
        return EXIT_ERROR
    except OSError as e:
        err = wrap(e, command=args.command)
        sys.stderr.write(json.dumps({"error": err.to_dict(include_cause=True)}) + "\n")
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
