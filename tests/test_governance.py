import pytest

from collective_node.runtime.errors import (
    DuplicateVoteError,
    PermissionDenied,
    PoolPaused,
    StatePreconditionError,
    UnknownProposalError,
)
from collective_node.runtime.governance import TargetGovernance
from collective_node.runtime.lifecycle import PoolState

from .conftest import ADMIN


def test_majority_executes_tie_does_not(executor):
    """2 for / 1 against passes; 1 / 1 does not."""
    p0 = executor.create_proposal("@alice", "@x")["proposal"]["id"]
    executor.vote("@alice", p0, True)
    executor.vote("@bob", p0, True)
    executor.vote("@carol", p0, False)

    out = executor.execute_proposal(ADMIN, p0)
    assert out["target"] == "@x"
    assert executor.pool.target == "@x"

    p1 = executor.create_proposal("@bob", "@y")["proposal"]["id"]
    executor.vote("@alice", p1, True)
    executor.vote("@bob", p1, False)
    with pytest.raises(StatePreconditionError):
        executor.execute_proposal(ADMIN, p1)
    assert executor.pool.target == "@x"


def test_proposals_are_indexed_and_not_deduplicated(executor):
    a = executor.create_proposal("@alice", "@x")["proposal"]
    b = executor.create_proposal("@bob", "@x")["proposal"]
    assert (a["id"], b["id"]) == (0, 1)
    assert a["votes_for"] == a["votes_against"] == 0
    assert len(executor.proposals()) == 2


def test_double_vote_is_rejected_by_default(executor):
    pid = executor.create_proposal("@alice", "@x")["proposal"]["id"]
    executor.vote("@alice", pid, True)
    with pytest.raises(DuplicateVoteError):
        executor.vote("@alice", pid, True)
    assert executor.proposal(pid)["votes_for"] == 1


def test_double_vote_allowed_when_guard_off(make_executor):
    ex = make_executor(one_vote_per_member=False)
    pid = ex.create_proposal("@alice", "@x")["proposal"]["id"]
    ex.vote("@alice", pid, True)
    ex.vote("@alice", pid, True)
    assert ex.proposal(pid)["votes_for"] == 2


def test_vote_on_missing_proposal(executor):
    with pytest.raises(UnknownProposalError):
        executor.vote("@alice", 7, True)
    with pytest.raises(UnknownProposalError):
        executor.execute_proposal(ADMIN, 0)


def test_roles_for_governance(executor):
    with pytest.raises(PermissionDenied):
        executor.create_proposal("@mallory", "@x")
    pid = executor.create_proposal("@alice", "@x")["proposal"]["id"]
    executor.vote("@alice", pid, True)
    with pytest.raises(PermissionDenied):
        executor.execute_proposal("@alice", pid)
    with pytest.raises(PermissionDenied):
        executor.vote(ADMIN, pid, True)


def test_execute_respects_lifecycle_when_enforced(staked):
    pid = staked.create_proposal("@alice", "@x")["proposal"]["id"]
    staked.vote("@alice", pid, True)
    with pytest.raises(StatePreconditionError):
        staked.execute_proposal(ADMIN, pid)
    assert staked.state == PoolState.STAKING
    assert staked.pool.target == "@collator"


def test_execute_overwrites_target_when_not_enforced(make_executor):
    ex = make_executor(enforce_target_lifecycle=False)
    ex.deposit("@alice", 4)
    ex.deposit("@bob", 1)
    assert ex.state == PoolState.STAKING

    pid = ex.create_proposal("@alice", "@x")["proposal"]["id"]
    ex.vote("@alice", pid, True)
    ex.execute_proposal(ADMIN, pid)
    assert ex.pool.target == "@x"


def test_execute_blocked_while_paused(executor):
    pid = executor.create_proposal("@alice", "@x")["proposal"]["id"]
    executor.vote("@alice", pid, True)
    executor.pause(ADMIN)
    with pytest.raises(PoolPaused):
        executor.execute_proposal(ADMIN, pid)
    executor.unpause(ADMIN)
    assert executor.execute_proposal(ADMIN, pid)["target"] == "@x"


def test_empty_target_is_rejected():
    gov = TargetGovernance()
    with pytest.raises(StatePreconditionError):
        gov.create_proposal("alice", "")
    assert gov.proposals == []


def test_from_dict_takes_guard_from_caller():
    gov = TargetGovernance(one_vote_per_member=False)
    gov.create_proposal("alice", "@x")
    restored = TargetGovernance.from_dict(gov.to_dict(), one_vote_per_member=True)
    assert restored.one_vote_per_member is True
    assert restored.proposals == gov.proposals
