import pytest

from collective_node.runtime.errors import (
    InsufficientFundsError,
    InvalidAmountError,
    NoStakeError,
    PermissionDenied,
    PoolPaused,
    StatePreconditionError,
    ZeroTotalStakeError,
)
from collective_node.runtime.lifecycle import PoolState

from .conftest import ADMIN, POOL


def test_stake_sum_invariant_through_full_cycle(revoking):
    """sum(member_stake) == total_stake after every committed call."""
    ex = revoking
    assert ex.ledger.audit()
    ex.staking.advance_rounds(2)
    for m in ("@alice", "@bob", "@carol"):
        ex.withdraw(m)
        assert ex.ledger.audit()
    assert ex.ledger.total_stake == 0
    assert ex.wallet.balance(POOL) == 0
    assert sum(ex.wallet.balance(m) for m in ("@alice", "@bob", "@carol")) == 5


def test_dust_stays_in_pool(make_executor):
    ex = make_executor(min_delegation=100)
    for m in ("@alice", "@bob", "@carol"):
        ex.deposit(m, 1)
    ex.emergency_withdraw(ADMIN, "@vault", 1)

    paid = [ex.withdraw(m)["amount"] for m in ("@alice", "@bob", "@carol")]
    assert paid == [0, 1, 1]
    assert sum(paid) <= 2
    assert ex.wallet.balance(POOL) == 0


def test_withdraw_to_destination_emits_event(make_executor):
    ex = make_executor(min_delegation=100)
    ex.deposit("@alice", 3)
    out = ex.withdraw("@alice", destination="@cold")
    assert out["destination"] == "@cold"
    assert ex.wallet.balance("@cold") == 3

    ev = ex.event_records("withdrawal")
    assert len(ev) == 1
    assert ev[0]["data"] == {"account": "@alice", "destination": "@cold", "amount": 3}


def test_events_only_for_committed_calls(executor):
    executor.deposit("@alice", 1)
    with pytest.raises(InvalidAmountError):
        executor.deposit("@alice", 0)
    with pytest.raises(PermissionDenied):
        executor.deposit("@mallory", 1)
    assert [e["type"] for e in executor.event_records()] == ["deposit"]


def test_zero_total_stake_and_no_stake(executor):
    with pytest.raises(ZeroTotalStakeError):
        executor.withdraw("@alice")
    with pytest.raises(ZeroTotalStakeError):
        executor.compute_share("@alice")

    executor.deposit("@alice", 1)
    with pytest.raises(NoStakeError):
        executor.withdraw("@bob")


def test_compute_share_view(make_executor):
    ex = make_executor(min_delegation=100)
    ex.deposit("@alice", 1)
    ex.deposit("@bob", 2)
    assert ex.compute_share("@alice") == 1
    assert ex.compute_share("@bob") == 2


def test_permission_gate_runs_first(executor):
    for op, args in (
        (executor.deposit, ("@mallory", 1)),
        (executor.withdraw, ("@mallory",)),
        (executor.revoke, ("@alice",)),
        (executor.reset, ("@alice",)),
        (executor.change_target, ("@alice", "@x")),
        (executor.pause, ("@alice",)),
        (executor.add_member, ("@alice", "@mallory")),
        (executor.emergency_withdraw, ("@alice", "@x", 1)),
    ):
        with pytest.raises(PermissionDenied):
            op(*args)
    assert executor.ledger.total_stake == 0
    assert not executor.paused


def test_admin_is_not_a_member(executor):
    with pytest.raises(PermissionDenied):
        executor.deposit(ADMIN, 1)
    executor.add_member(ADMIN, ADMIN)
    assert executor.deposit(ADMIN, 1)["stake"] == 1


def test_pause_blocks_deposit_and_withdraw_only(make_executor):
    ex = make_executor(min_delegation=100)
    ex.deposit("@alice", 2)
    ex.pause(ADMIN)
    assert ex.status()["paused"] is True

    with pytest.raises(PoolPaused):
        ex.deposit("@alice", 1)
    with pytest.raises(PoolPaused):
        ex.withdraw("@alice")

    # proposals, votes and emergency withdrawal still go through
    pid = ex.create_proposal("@alice", "@x")["proposal"]["id"]
    ex.vote("@bob", pid, True)
    ex.emergency_withdraw(ADMIN, "@vault", 2)
    assert ex.wallet.balance("@vault") == 2

    ex.unpause(ADMIN)
    ex.deposit("@alice", 1)
    assert ex.ledger.stake_of("@alice") == 3


def test_emergency_withdraw_limited_to_free_balance(staked):
    assert staked.free_balance() == 0
    with pytest.raises(InsufficientFundsError):
        staked.emergency_withdraw(ADMIN, "@vault", 1)
    assert staked.ledger.total_stake == 5


def test_emergency_withdraw_leaves_ledger(make_executor):
    ex = make_executor(min_delegation=100)
    ex.deposit("@alice", 5)
    out = ex.emergency_withdraw(ADMIN, "@vault", 3)
    assert out["free_balance"] == 2
    assert ex.ledger.stake_of("@alice") == 5
    assert ex.event_records("withdrawal")[-1]["data"]["account"] == ADMIN


def test_role_management(executor):
    assert executor.add_member(ADMIN, "@dave")["changed"] is True
    assert executor.add_member(ADMIN, "@dave")["changed"] is False
    executor.deposit("@dave", 1)

    executor.remove_member(ADMIN, "@dave")
    assert executor.member_stake("@dave") == {
        "ok": True,
        "account": "@dave",
        "stake": 1,
        "is_member": False,
        "is_admin": False,
    }
    with pytest.raises(PermissionDenied):
        executor.withdraw("@dave")


def test_last_admin_cannot_be_removed(executor):
    with pytest.raises(StatePreconditionError):
        executor.remove_admin(ADMIN, ADMIN)
    executor.add_admin(ADMIN, "@root")
    executor.remove_admin("@root", ADMIN)
    assert executor.roles.admins == {"@root"}


def test_status_view(staked):
    s = staked.status()
    assert s["state"] == PoolState.STAKING.value
    assert s["total_stake"] == 5
    assert s["balance"] == 5
    assert s["locked_balance"] == 5
    assert s["free_balance"] == 0
    assert s["contributors"] == 3
    assert s["paused"] is False


def test_advance_clock_requires_admin(revoking):
    with pytest.raises(PermissionDenied):
        revoking.advance_staking_rounds("@alice", 5)
    assert revoking.staking.round == 0
    assert revoking.advance_staking_rounds(ADMIN, 2) == 2


def test_compute_share_matches_withdraw_payout(revoking):
    """The share view uses the same balance withdraw pays from, bonded or not."""
    assert revoking.compute_share("@alice") == 2
    assert revoking.compute_share("@carol") == 1

    revoking.advance_staking_rounds(ADMIN, 2)
    expected = revoking.compute_share("@alice")
    assert revoking.withdraw("@alice")["amount"] == expected


class _FailingStore:
    def save(self, state):
        raise OSError("disk full")


def test_failed_save_keeps_committed_operation(make_executor, caplog):
    ex = make_executor(store=_FailingStore())
    with caplog.at_level("CRITICAL", logger="collective_node.executor"):
        out = ex.deposit("@alice", 2)

    assert out["stake"] == 2
    assert ex.ledger.total_stake == 2
    assert len(ex.event_records("deposit")) == 1
    assert any("could not be persisted" in rec.getMessage() for rec in caplog.records)
