# collective_node/runtime/__init__.py
"""
Collective pool runtime: pure domain logic, no HTTP.

    errors       -> error taxonomy
    lifecycle    -> Pool + state machine
    ledger       -> proportional stake accounting
    staking      -> staking service adapter (+ in-process simulation)
    wallet       -> fund transfer primitive
    governance   -> delegation-target proposals
    events       -> deposit / withdrawal event log
    atomic_store -> JSON snapshot persistence
"""

from .errors import PoolError
from .governance import Proposal, TargetGovernance
from .ledger import StakeLedger
from .lifecycle import Pool, PoolState
from .staking import SimulatedStakingService, StakingService
from .wallet import Wallet

__all__ = [
    "PoolError",
    "Pool",
    "PoolState",
    "Proposal",
    "TargetGovernance",
    "StakeLedger",
    "StakingService",
    "SimulatedStakingService",
    "Wallet",
]
