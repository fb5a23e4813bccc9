import pytest

from collective_node.runtime.errors import (
    ConsistencyFatalError,
    StatePreconditionError,
    StakingServiceError,
    UnbondingPendingError,
)
from collective_node.runtime.lifecycle import Pool, PoolState

from .conftest import ADMIN, POOL, TARGET


def test_threshold_bonds_full_balance_on_third_deposit(executor):
    """Deposits 2, 2, 1 with threshold 4: only the third deposit bonds, for 5."""
    r1 = executor.deposit("@alice", 2)
    r2 = executor.deposit("@bob", 2)
    assert not r1["bonded"] and not r2["bonded"]
    assert executor.state == PoolState.COLLECTING

    r3 = executor.deposit("@carol", 1)
    assert r3["bonded"] is True
    assert executor.state == PoolState.STAKING

    bonds = [c for c in executor.staking.calls if c["op"] == "delegate" and c["ok"]]
    assert len(bonds) == 1
    assert bonds[0]["amount"] == 5
    assert bonds[0]["target"] == TARGET
    assert executor.staking.bonded(POOL, TARGET) == 5
    assert executor.free_balance() == 0


def test_total_at_threshold_bonds_one_below_does_not(make_executor):
    below = make_executor()
    below.deposit("@alice", 3)
    below.deposit("@bob", 1)
    assert below.state == PoolState.COLLECTING  # recorded total was 3 < 4

    at = make_executor()
    at.deposit("@alice", 4)
    at.deposit("@bob", 1)
    assert at.state == PoolState.STAKING  # recorded total was exactly 4


def test_deposit_while_staking_bonds_more(staked):
    staked.deposit("@alice", 3)
    assert staked.staking.bonded(POOL, TARGET) == 8
    assert staked.ledger.total_stake == 8
    assert staked.state == PoolState.STAKING


def test_withdraw_while_staking_is_rejected(staked):
    before = staked.ledger.to_dict()
    with pytest.raises(StatePreconditionError):
        staked.withdraw("@alice")
    assert staked.ledger.to_dict() == before
    assert staked.state == PoolState.STAKING


def test_withdraw_before_delay_keeps_revoking(revoking):
    with pytest.raises(UnbondingPendingError):
        revoking.withdraw("@alice")
    assert revoking.state == PoolState.REVOKING
    assert revoking.ledger.stake_of("@alice") == 2
    assert revoking.staking.is_delegator(POOL)


def test_withdraw_after_delay_revokes_and_pays_share(revoking):
    revoking.staking.advance_rounds(2)
    out = revoking.withdraw("@alice")

    assert revoking.state == PoolState.REVOKED
    assert out["amount"] == (5 * 2) // 5
    assert revoking.ledger.stake_of("@alice") == 0
    assert revoking.ledger.total_stake == 3
    assert revoking.wallet.balance("@alice") == 2
    assert not revoking.staking.is_delegator(POOL)


def test_deposit_rejected_while_revoking(revoking):
    with pytest.raises(StatePreconditionError):
        revoking.deposit("@alice", 1)


def test_revoke_requires_staking(executor):
    with pytest.raises(StatePreconditionError):
        executor.revoke(ADMIN)


def test_reset_from_revoked_is_idempotent(revoking):
    revoking.staking.advance_rounds(2)
    revoking.withdraw("@alice")
    ledger = revoking.ledger.to_dict()

    for _ in range(3):
        revoking.reset(ADMIN)
        assert revoking.state == PoolState.COLLECTING
        assert revoking.ledger.to_dict() == ledger


def test_reset_rejected_while_staking(staked):
    with pytest.raises(StatePreconditionError):
        staked.reset(ADMIN)


def test_change_target_only_when_unbonded(staked, make_executor):
    with pytest.raises(StatePreconditionError):
        staked.change_target(ADMIN, "@other")
    assert staked.pool.target == TARGET

    executor = make_executor()
    executor.change_target(ADMIN, "@other")
    assert executor.pool.target == "@other"

    with pytest.raises(StatePreconditionError):
        executor.change_target(ADMIN, "  ")


def test_bond_without_target_rejects_deposit(make_executor):
    ex = make_executor(target="")
    ex.deposit("@alice", 4)
    with pytest.raises(StatePreconditionError):
        ex.deposit("@bob", 1)
    assert ex.ledger.total_stake == 4
    assert ex.wallet.balance(POOL) == 4
    assert ex.state == PoolState.COLLECTING


def test_failed_bond_rolls_back_deposit(make_executor):
    ex = make_executor(service_min_delegation=100)
    ex.deposit("@alice", 4)
    with pytest.raises(StakingServiceError):
        ex.deposit("@bob", 1)

    assert ex.state == PoolState.COLLECTING
    assert ex.ledger.stake_of("@bob") == 0
    assert ex.ledger.total_stake == 4
    assert ex.wallet.balance(POOL) == 4
    assert len(ex.event_records("deposit")) == 1


def test_deposit_while_staking_detects_lost_delegation(staked):
    staked.staking.delegations.clear()
    with pytest.raises(ConsistencyFatalError):
        staked.deposit("@alice", 1)
    assert staked.ledger.total_stake == 5


def test_withdraw_while_collecting_detects_unexpected_delegation(executor):
    executor.deposit("@alice", 2)
    executor.staking.delegations[POOL] = {"@elsewhere": 1}
    with pytest.raises(ConsistencyFatalError):
        executor.withdraw("@alice")
    assert executor.ledger.stake_of("@alice") == 2


def test_pool_transition_table():
    pool = Pool(account=POOL, target=TARGET)
    with pytest.raises(StatePreconditionError):
        pool.transition_to(PoolState.REVOKED)
    pool.transition_to(PoolState.STAKING)
    pool.transition_to(PoolState.REVOKING)
    pool.transition_to(PoolState.REVOKED)
    pool.transition_to(PoolState.COLLECTING)
    assert Pool.from_dict(pool.to_dict()) == pool
