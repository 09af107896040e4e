"""
Shared pytest fixtures:
- A deterministic, test-only signature backend (registered as ``TEST-SHA3``)
  so ledger tests run without the native liboqs library
- The real liboqs context (``oqs_ctx``), skipped cleanly when liboqs is absent
- Key pairs, a monotonic fake clock and a ledger factory
- Logger isolation: handlers installed by ``pqdag.logging.configure`` are
  removed after each test
"""
from __future__ import annotations

import hashlib
import hmac
import itertools
import logging
import os
from typing import Callable, Dict, Iterator, Tuple

import pytest

from pqdag.errors import DependencyMissing
from pqdag.pq import (
    PqContext,
    SigKeypair,
    SigSizes,
    Signer,
    Verifier,
    init_pq,
    register_backend,
    unregister_backend,
)
from pqdag.state import GenesisPolicy, WorldState

DEV_ALG = "TEST-SHA3"
_DEV_TAG = b"pqdag-test-sig|"


class Sha3DevBackend:
    """
    Deterministic stand-in satisfying SigBackend. NOT a signature scheme:
    anyone holding the public key can produce a valid tag. Tests only.
    """

    name = DEV_ALG
    claimed_nist_level = 0
    sizes = SigSizes(pk=32, sk=32, sig=64)

    def keypair(self) -> Tuple[bytes, bytes]:
        sk = os.urandom(32)
        return hashlib.sha3_256(sk).digest(), sk

    def sign(self, sk: bytes, msg: bytes) -> bytes:
        pk = hashlib.sha3_256(sk).digest()
        return hashlib.sha3_512(_DEV_TAG + pk + msg).digest()

    def verify(self, pk: bytes, msg: bytes, sig: bytes) -> bool:
        return hmac.compare_digest(sig, hashlib.sha3_512(_DEV_TAG + pk + msg).digest())


# ---------- PQ CONTEXTS ----------

@pytest.fixture(scope="session")
def dev_ctx() -> Iterator[PqContext]:
    register_backend(DEV_ALG, Sha3DevBackend, replace=True)
    try:
        yield init_pq(DEV_ALG)
    finally:
        unregister_backend(DEV_ALG)


@pytest.fixture(scope="session")
def oqs_ctx() -> PqContext:
    try:
        return init_pq()
    except DependencyMissing as exc:
        pytest.skip(f"liboqs unavailable: {exc.message}")


@pytest.fixture
def signer(dev_ctx: PqContext) -> Signer:
    return dev_ctx.signer()


@pytest.fixture
def verifier(dev_ctx: PqContext) -> Verifier:
    return dev_ctx.verifier()


# ---------- ACCOUNTS & CLOCK ----------

@pytest.fixture
def alice(signer: Signer) -> SigKeypair:
    return signer.generate_keypair()


@pytest.fixture
def bob(signer: Signer) -> SigKeypair:
    return signer.generate_keypair()


@pytest.fixture
def carol(signer: Signer) -> SigKeypair:
    return signer.generate_keypair()


@pytest.fixture
def clock() -> Callable[[], int]:
    """Monotonic millisecond clock starting at a fixed instant."""
    counter = itertools.count(1_700_000_000_000)
    return lambda: next(counter)


@pytest.fixture
def make_world(verifier: Verifier) -> Callable[..., WorldState]:
    def _make(allocations: Dict[str, int], policy: GenesisPolicy = GenesisPolicy.BOOTSTRAP) -> WorldState:
        return WorldState.from_allocations(verifier, allocations, genesis_policy=policy)

    return _make


# ---------- LOGGING ISOLATION ----------

@pytest.fixture(autouse=True)
def _isolate_pqdag_logger() -> Iterator[None]:
    logger = logging.getLogger("pqdag")
    handlers, level = list(logger.handlers), logger.level
    yield
    for h in list(logger.handlers):
        if h not in handlers:
            logger.removeHandler(h)
            h.close()
    logger.setLevel(level)
