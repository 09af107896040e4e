"""
pqdag.state
===========

In-memory ledger state: wallets, balances, per-wallet history and the set of
applied DAG vertices.

- world: WorldState, Wallet, ApplyReceipt, GenesisPolicy
"""

from .world import ApplyReceipt, GenesisPolicy, Wallet, WorldState

__all__ = ["ApplyReceipt", "GenesisPolicy", "Wallet", "WorldState"]
