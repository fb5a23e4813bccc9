"""
collective_node/runtime/lifecycle.py
------------------------------------

Pool lifecycle state machine.

    COLLECTING -> STAKING     (deposit pushes total stake to the threshold)
    STAKING    -> REVOKING    (admin schedules the unbond)
    REVOKING   -> REVOKED     (lazily, on withdraw, once the service
                               no longer reports a delegation)
    REVOKED    -> COLLECTING  (admin reset)
    COLLECTING -> COLLECTING  (admin reset, no-op)

Transitions are fail-closed: anything not in the table raises
StatePreconditionError. The helpers that talk to the staking service
perform the external call first and only flip local state once it
returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Set, Tuple

from .errors import StatePreconditionError, UnbondingPendingError
from .staking import StakingService, require_delegation_status

log = logging.getLogger(__name__)


class PoolState(str, Enum):
    COLLECTING = "collecting"
    STAKING = "staking"
    REVOKING = "revoking"
    REVOKED = "revoked"


_TRANSITIONS: Set[Tuple[PoolState, PoolState]] = {
    (PoolState.COLLECTING, PoolState.STAKING),
    (PoolState.STAKING, PoolState.REVOKING),
    (PoolState.REVOKING, PoolState.REVOKED),
    (PoolState.REVOKED, PoolState.COLLECTING),
    (PoolState.COLLECTING, PoolState.COLLECTING),
}

DEPOSIT_STATES: FrozenSet[PoolState] = frozenset({PoolState.COLLECTING, PoolState.STAKING})
WITHDRAW_STATES: FrozenSet[PoolState] = frozenset(
    {PoolState.COLLECTING, PoolState.REVOKING, PoolState.REVOKED}
)
TARGET_CHANGE_STATES: FrozenSet[PoolState] = frozenset({PoolState.COLLECTING, PoolState.REVOKED})
RESET_STATES: FrozenSet[PoolState] = frozenset({PoolState.COLLECTING, PoolState.REVOKED})


@dataclass
class Pool:
    """
    The pool aggregate: who we are, who we delegate to, and where in the
    lifecycle we are. Total stake lives in the StakeLedger.
    """

    account: str
    target: str = ""
    state: PoolState = PoolState.COLLECTING

    def require_state(self, allowed: Iterable[PoolState], action: str) -> None:
        allowed = frozenset(allowed)
        if self.state not in allowed:
            names = ", ".join(sorted(s.value for s in allowed))
            raise StatePreconditionError(
                f"{action} is not allowed while {self.state.value} (needs one of: {names})",
                detail={"state": self.state.value, "action": action},
            )

    def transition_to(self, new_state: PoolState) -> None:
        if (self.state, new_state) not in _TRANSITIONS:
            raise StatePreconditionError(
                f"Illegal transition: {self.state.value} -> {new_state.value}",
                detail={"state": self.state.value, "requested": new_state.value},
            )
        if new_state != self.state:
            log.info("pool %s: %s -> %s", self.account, self.state.value, new_state.value)
        self.state = new_state

    def change_target(self, target: str) -> None:
        target = str(target or "").strip()
        if not target:
            raise StatePreconditionError("delegation target must not be empty")
        self.require_state(TARGET_CHANGE_STATES, "change_target")
        log.info("pool %s: target %r -> %r", self.account, self.target, target)
        self.target = target

    def to_dict(self) -> Dict[str, Any]:
        return {"account": self.account, "target": self.target, "state": self.state.value}

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "Pool":
        return cls(
            account=str(obj["account"]),
            target=str(obj.get("target", "") or ""),
            state=PoolState(obj.get("state", PoolState.COLLECTING.value)),
        )


# ---------------------------------------------------------------------------
# Transitions that involve the staking service
# ---------------------------------------------------------------------------


def bond(pool: Pool, service: StakingService, amount: int) -> None:
    """
    COLLECTING -> STAKING. One bonding call for `amount`, passing the
    service's own delegation-count hints for the target and for us.
    """
    pool.require_state({PoolState.COLLECTING}, "bond")
    if not pool.target:
        raise StatePreconditionError("cannot bond: no delegation target configured")

    candidate_count = service.candidate_delegation_count(pool.target)
    delegator_count = service.delegator_delegation_count(pool.account)
    service.delegate(pool.account, pool.target, amount, candidate_count, delegator_count)

    pool.transition_to(PoolState.STAKING)
    log.info("pool %s bonded %d with %s", pool.account, amount, pool.target)


def bond_more(pool: Pool, service: StakingService, amount: int) -> None:
    """Top up an existing bond. Only valid while STAKING."""
    pool.require_state({PoolState.STAKING}, "bond_more")
    require_delegation_status(service, pool.account, expected=True, context="deposit while staking")
    service.delegator_bond_more(pool.account, pool.target, amount)


def schedule_revoke(pool: Pool, service: StakingService) -> None:
    """STAKING -> REVOKING."""
    pool.require_state({PoolState.STAKING}, "revoke")
    service.schedule_revoke_delegation(pool.account, pool.target)
    pool.transition_to(PoolState.REVOKING)


def complete_revoke(pool: Pool, service: StakingService) -> None:
    """
    REVOKING -> REVOKED, attempted lazily from withdraw.

    The execute call is only issued while the service still reports a
    delegation; if it still does afterwards the unbonding delay has not
    elapsed and nothing changes locally.
    """
    pool.require_state({PoolState.REVOKING}, "complete_revoke")

    if service.is_delegator(pool.account):
        service.execute_delegation_request(pool.account, pool.target)

    if service.is_delegator(pool.account):
        raise UnbondingPendingError(
            "unbonding delay has not elapsed yet; retry later",
            detail={"state": pool.state.value, "target": pool.target},
        )

    pool.transition_to(PoolState.REVOKED)


def reset(pool: Pool) -> None:
    """REVOKED|COLLECTING -> COLLECTING."""
    pool.require_state(RESET_STATES, "reset")
    pool.transition_to(PoolState.COLLECTING)
