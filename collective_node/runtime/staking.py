"""
collective_node/runtime/staking.py
----------------------------------

Staking service adapter.

The pool talks to exactly one external staking service. Calls are
synchronous from our side, but their effects (unbonding in particular)
only mature after a delay the service enforces. The only way we learn
about that is `is_delegator` polling.

This module provides:
- StakingService: the interface the pool consumes
- SimulatedStakingService: an in-process implementation with round-based
  delays, used by the dev server and the tests
- require_delegation_status(): the last-line consistency check between
  local lifecycle state and the service's view
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional

from .errors import ConsistencyFatalError, StakingServiceError, require_positive_amount
from .wallet import Wallet

log = logging.getLogger(__name__)


class StakingService(abc.ABC):
    """
    Every method either returns or raises StakingServiceError. A raised
    error means the call had no effect on the service.
    """

    @abc.abstractmethod
    def delegate(
        self,
        delegator: str,
        target: str,
        amount: int,
        target_delegation_count: int,
        delegator_delegation_count: int,
    ) -> None: ...

    @abc.abstractmethod
    def delegator_bond_more(self, delegator: str, target: str, amount: int) -> None: ...

    @abc.abstractmethod
    def schedule_revoke_delegation(self, delegator: str, target: str) -> None: ...

    @abc.abstractmethod
    def execute_delegation_request(self, delegator: str, target: str) -> None: ...

    @abc.abstractmethod
    def is_delegator(self, delegator: str) -> bool: ...

    @abc.abstractmethod
    def candidate_delegation_count(self, target: str) -> int: ...

    @abc.abstractmethod
    def delegator_delegation_count(self, delegator: str) -> int: ...


def require_delegation_status(
    service: StakingService,
    account: str,
    *,
    expected: bool,
    context: str,
) -> None:
    """
    Raise ConsistencyFatalError when the service's delegation status for
    `account` differs from what the local lifecycle state implies.
    """
    observed = bool(service.is_delegator(account))
    if observed != expected:
        log.critical(
            "CONSISTENCY ALARM (%s): pool %s expected delegated=%s, service reports %s",
            context,
            account,
            expected,
            observed,
        )
        raise ConsistencyFatalError(
            f"staking service reports delegated={observed} for {account} during {context}",
            detail={"expected": expected, "observed": observed, "context": context},
        )


# ---------------------------------------------------------------------------
# In-process simulation
# ---------------------------------------------------------------------------


class SimulatedStakingService(StakingService):
    """
    Round-based simulation of a delegated staking service.

    - bonding locks funds in the shared Wallet
    - schedule_revoke_delegation records a request due `revoke_delay_rounds`
      rounds later
    - execute_delegation_request before the due round leaves the delegation
      in place; afterwards it unlocks the funds and drops the delegation
    - delegation-count hints must be >= the service's current counts

    Every accepted or rejected call is appended to `calls`.
    """

    def __init__(
        self,
        wallet: Wallet,
        *,
        revoke_delay_rounds: int = 2,
        min_delegation: int = 1,
    ) -> None:
        self.wallet = wallet
        self.revoke_delay_rounds = max(0, int(revoke_delay_rounds))
        self.min_delegation = max(1, int(min_delegation))
        self.round: int = 0
        # delegator -> target -> bonded amount
        self.delegations: Dict[str, Dict[str, int]] = {}
        # delegator -> target -> round at which the revoke becomes executable
        self.requests: Dict[str, Dict[str, int]] = {}
        self.calls: List[Dict[str, Any]] = []

    # ----- helpers -----
    def _record(self, op: str, ok: bool, **data: Any) -> None:
        self.calls.append({"op": op, "ok": ok, "round": self.round, **data})

    def _fail(self, op: str, reason: str, **data: Any) -> StakingServiceError:
        self._record(op, False, error=reason, **data)
        log.warning("staking service rejected %s: %s", op, reason)
        return StakingServiceError(f"{op} failed: {reason}", detail={"op": op, "reason": reason})

    def bonded(self, delegator: str, target: str) -> int:
        return int(self.delegations.get(delegator, {}).get(target, 0))

    def pending_request(self, delegator: str, target: str) -> Optional[int]:
        return self.requests.get(delegator, {}).get(target)

    def advance_rounds(self, rounds: int = 1) -> int:
        self.round += max(0, int(rounds))
        return self.round

    # ----- interface -----
    def delegate(
        self,
        delegator: str,
        target: str,
        amount: int,
        target_delegation_count: int,
        delegator_delegation_count: int,
    ) -> None:
        op = "delegate"
        if not target:
            raise self._fail(op, "empty_target")
        try:
            amount = require_positive_amount(amount)
        except ValueError:
            raise self._fail(op, "invalid_amount", amount=amount)
        if amount < self.min_delegation:
            raise self._fail(op, "below_min_delegation", amount=amount)
        if target in self.delegations.get(delegator, {}):
            raise self._fail(op, "already_delegated", target=target)
        if int(target_delegation_count) < self.candidate_delegation_count(target):
            raise self._fail(op, "candidate_count_hint_too_low", target=target)
        if int(delegator_delegation_count) < self.delegator_delegation_count(delegator):
            raise self._fail(op, "delegator_count_hint_too_low", target=target)
        if self.wallet.free_balance(delegator) < amount:
            raise self._fail(op, "insufficient_free_balance", amount=amount)

        self.wallet.lock(delegator, amount)
        self.delegations.setdefault(delegator, {})[target] = amount
        self._record(op, True, delegator=delegator, target=target, amount=amount)

    def delegator_bond_more(self, delegator: str, target: str, amount: int) -> None:
        op = "delegator_bond_more"
        try:
            amount = require_positive_amount(amount)
        except ValueError:
            raise self._fail(op, "invalid_amount", amount=amount)
        if target not in self.delegations.get(delegator, {}):
            raise self._fail(op, "no_delegation", target=target)
        if self.pending_request(delegator, target) is not None:
            raise self._fail(op, "revoke_pending", target=target)
        if self.wallet.free_balance(delegator) < amount:
            raise self._fail(op, "insufficient_free_balance", amount=amount)

        self.wallet.lock(delegator, amount)
        self.delegations[delegator][target] += amount
        self._record(op, True, delegator=delegator, target=target, amount=amount)

    def schedule_revoke_delegation(self, delegator: str, target: str) -> None:
        op = "schedule_revoke_delegation"
        if target not in self.delegations.get(delegator, {}):
            raise self._fail(op, "no_delegation", target=target)
        if self.pending_request(delegator, target) is not None:
            raise self._fail(op, "revoke_already_pending", target=target)

        due = self.round + self.revoke_delay_rounds
        self.requests.setdefault(delegator, {})[target] = due
        self._record(op, True, delegator=delegator, target=target, due_round=due)

    def execute_delegation_request(self, delegator: str, target: str) -> None:
        op = "execute_delegation_request"
        due = self.pending_request(delegator, target)
        if due is None:
            raise self._fail(op, "no_pending_request", target=target)

        if self.round < due:
            # Not matured: the delegation stays active.
            self._record(op, True, delegator=delegator, target=target, matured=False, due_round=due)
            return

        amount = self.delegations[delegator].pop(target)
        if not self.delegations[delegator]:
            del self.delegations[delegator]
        del self.requests[delegator][target]
        if not self.requests[delegator]:
            del self.requests[delegator]
        self.wallet.unlock(delegator, amount)
        self._record(op, True, delegator=delegator, target=target, matured=True, amount=amount)

    def is_delegator(self, delegator: str) -> bool:
        return bool(self.delegations.get(delegator))

    def candidate_delegation_count(self, target: str) -> int:
        return sum(1 for targets in self.delegations.values() if target in targets)

    def delegator_delegation_count(self, delegator: str) -> int:
        return len(self.delegations.get(delegator, {}))

    # ----- persistence -----
    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "revoke_delay_rounds": self.revoke_delay_rounds,
            "min_delegation": self.min_delegation,
            "delegations": {d: dict(t) for d, t in self.delegations.items()},
            "requests": {d: dict(t) for d, t in self.requests.items()},
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any], wallet: Wallet) -> "SimulatedStakingService":
        svc = cls(
            wallet,
            revoke_delay_rounds=int(obj.get("revoke_delay_rounds", 2)),
            min_delegation=int(obj.get("min_delegation", 1)),
        )
        svc.round = int(obj.get("round", 0))
        svc.delegations = {
            str(d): {str(t): int(a) for t, a in targets.items()}
            for d, targets in (obj.get("delegations") or {}).items()
        }
        svc.requests = {
            str(d): {str(t): int(r) for t, r in targets.items()}
            for d, targets in (obj.get("requests") or {}).items()
        }
        return svc
