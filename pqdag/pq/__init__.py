"""
pqdag.pq: post-quantum signatures for ledger transactions.

    from pqdag.pq import init_pq

    ctx = init_pq()                       # Falcon-1024 via liboqs
    kp = ctx.signer().generate_keypair()
    sig = ctx.signer().sign(kp.secret_key, b"msg")
    assert ctx.verifier().check(kp.public_key, b"msg", sig)

Modules
-------
- context.py : init_pq / PqContext (explicit, idempotent setup)
- keygen.py  : SigKeypair, generate_keypair
- sign.py    : Signer
- verify.py  : Verifier, Verification, VerifyStatus
- algs/      : SigBackend protocol, backend registry, liboqs backend
"""

from .algs import SigBackend, SigSizes, available_algorithms, register_backend, unregister_backend
from .context import PqContext, clear_contexts, init_from_config, init_pq
from .keygen import SigKeypair, generate_keypair
from .sign import Signer
from .verify import Verification, Verifier, VerifyStatus

__all__ = [
    "SigBackend",
    "SigSizes",
    "available_algorithms",
    "register_backend",
    "unregister_backend",
    "PqContext",
    "init_pq",
    "init_from_config",
    "clear_contexts",
    "SigKeypair",
    "generate_keypair",
    "Signer",
    "Verification",
    "Verifier",
    "VerifyStatus",
]
