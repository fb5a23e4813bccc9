import pytest

from collective_node.executor import PoolExecutor
from collective_node.runtime.staking import SimulatedStakingService
from collective_node.runtime.wallet import Wallet
from collective_node.security.permissions import RoleRegistry

POOL = "@pool"
ADMIN = "@admin"
MEMBERS = ("@alice", "@bob", "@carol")
TARGET = "@collator"


@pytest.fixture
def make_executor():
    """Factory for memory-only executors with a fresh simulated service."""

    def _make(**overrides):
        wallet = Wallet()
        staking = SimulatedStakingService(
            wallet,
            revoke_delay_rounds=overrides.pop("revoke_delay_rounds", 2),
            min_delegation=overrides.pop("service_min_delegation", 1),
        )
        kwargs = dict(
            account=POOL,
            staking=staking,
            wallet=wallet,
            target=TARGET,
            min_delegation=4,
            roles=RoleRegistry.seeded(admins=[ADMIN], members=MEMBERS),
        )
        kwargs.update(overrides)
        return PoolExecutor(**kwargs)

    return _make


@pytest.fixture
def executor(make_executor):
    """Fresh executor per test: threshold 4, target @collator."""
    return make_executor()


@pytest.fixture
def staked(executor):
    """Pool after deposits 2, 2, 1: bonded for 5 with @collator."""
    executor.deposit("@alice", 2)
    executor.deposit("@bob", 2)
    executor.deposit("@carol", 1)
    return executor


@pytest.fixture
def revoking(staked):
    staked.revoke(ADMIN)
    return staked
