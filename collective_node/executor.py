from __future__ import annotations

"""
Collective pool executor.

One PoolExecutor owns one pool: lifecycle state, stake ledger, target
governance, role sets, pause flag, wallet view and event log. Every
public operation:

    1. checks roles and the pause gate
    2. validates lifecycle / arithmetic preconditions
    3. calls the staking service (if the operation needs it)
    4. mutates local state
    5. emits events
    6. persists the snapshot (when a store is attached); a failed save is
       logged at CRITICAL and does not undo the committed operation

and runs under the executor's lock with a snapshot taken beforehand: if
any step raises, the snapshot is restored and the error propagates, so a
failed call leaves no partial effect behind. Nothing is retried.

Several independent executors can live in one process; there is no
module-level pool.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .config import Settings, get_data_dir
from .runtime import lifecycle
from .runtime.atomic_store import AtomicLedgerStore
from .runtime.errors import (
    InsufficientFundsError,
    NoStakeError,
    StatePreconditionError,
    ZeroTotalStakeError,
    require_positive_amount,
)
from .runtime.events import EventLog
from .runtime.governance import TargetGovernance
from .runtime.ledger import StakeLedger
from .runtime.lifecycle import DEPOSIT_STATES, WITHDRAW_STATES, Pool, PoolState
from .runtime.staking import SimulatedStakingService, StakingService, require_delegation_status
from .runtime.wallet import Wallet
from .security.permissions import Capability, Role, RoleRegistry, ensure_not_paused

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class PoolExecutor:
    def __init__(
        self,
        *,
        account: str,
        staking: StakingService,
        wallet: Wallet,
        target: str = "",
        min_delegation: int = 5,
        roles: Optional[RoleRegistry] = None,
        one_vote_per_member: bool = True,
        enforce_target_lifecycle: bool = True,
        store: Optional[AtomicLedgerStore] = None,
        state: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.staking = staking
        self.wallet = wallet
        self.min_delegation = require_positive_amount(int(min_delegation))
        self.enforce_target_lifecycle = bool(enforce_target_lifecycle)
        self.store = store

        self.pool = Pool(account=str(account), target=str(target or ""))
        self.ledger = StakeLedger()
        self.governance = TargetGovernance(one_vote_per_member=bool(one_vote_per_member))
        self.roles = roles or RoleRegistry()
        self.paused = False
        self.events = EventLog()

        self._lock = threading.RLock()

        if state:
            self._load_state(state)

    # ----------------------- construction ------------------

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        repo_root: Optional[str] = None,
        persist: Optional[bool] = None,
    ) -> "PoolExecutor":
        """
        Build an executor (plus wallet and simulated staking service) from
        config, reloading the last persisted snapshot if there is one.
        """
        persist = settings.persistence.enabled if persist is None else persist
        store: Optional[AtomicLedgerStore] = None
        snapshot: Dict[str, Any] = {}
        if persist:
            store = AtomicLedgerStore(
                get_data_dir(settings, repo_root),
                filename=settings.persistence.filename,
                keep_backups=settings.persistence.keep_backups,
            )
            snapshot = store.load() or {}

        wallet = Wallet.from_dict(snapshot.get("wallet") or {})
        if snapshot.get("staking"):
            staking = SimulatedStakingService.from_dict(snapshot["staking"], wallet)
        else:
            staking = SimulatedStakingService(
                wallet,
                revoke_delay_rounds=settings.staking.revoke_delay_rounds,
                min_delegation=settings.staking.min_delegation,
            )

        ex = cls(
            account=settings.pool.account,
            staking=staking,
            wallet=wallet,
            target=settings.pool.target,
            min_delegation=settings.pool.min_delegation,
            roles=RoleRegistry.seeded(settings.pool.admins, settings.pool.members),
            one_vote_per_member=settings.governance.one_vote_per_member,
            enforce_target_lifecycle=settings.governance.enforce_target_lifecycle,
            store=store,
            state=snapshot or None,
        )
        log.info(
            "pool %s ready: state=%s target=%r total_stake=%d",
            ex.pool.account,
            ex.pool.state.value,
            ex.pool.target,
            ex.ledger.total_stake,
        )
        return ex

    def _load_state(self, state: Dict[str, Any]) -> None:
        if state.get("pool"):
            self.pool = Pool.from_dict(state["pool"])
        self.ledger = StakeLedger.from_dict(state.get("ledger") or {})
        self.governance = TargetGovernance.from_dict(
            state.get("governance") or {},
            one_vote_per_member=self.governance.one_vote_per_member,
        )
        if state.get("roles"):
            self.roles = RoleRegistry.from_dict(state["roles"])
        self.paused = bool(state.get("paused", False))
        self.events = EventLog(records=list(state.get("events") or []))
        if not self.ledger.audit():
            raise StatePreconditionError("persisted ledger violates sum(member_stake) == total_stake")

    # ----------------------- snapshot / commit ------------------

    def _snapshot(self) -> Dict[str, Any]:
        # Wallet locks belong to the staking service and are not rolled back.
        return copy.deepcopy(
            {
                "pool": self.pool.to_dict(),
                "ledger": self.ledger.to_dict(),
                "governance": self.governance.to_dict(),
                "roles": self.roles.to_dict(),
                "paused": self.paused,
                "events": self.events.records,
                "balances": self.wallet.balances,
            }
        )

    def _restore(self, snap: Dict[str, Any]) -> None:
        self.pool = Pool.from_dict(snap["pool"])
        self.ledger = StakeLedger.from_dict(snap["ledger"])
        self.governance = TargetGovernance.from_dict(
            snap["governance"], one_vote_per_member=self.governance.one_vote_per_member
        )
        self.roles = RoleRegistry.from_dict(snap["roles"])
        self.paused = snap["paused"]
        self.events = EventLog(records=snap["events"])
        self.wallet.balances.clear()
        self.wallet.balances.update(snap["balances"])

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        with self._lock:
            snap = self._snapshot()
            try:
                yield
            except Exception as e:
                self._restore(snap)
                log.warning("%s rejected: %s", name, e)
                raise
            try:
                self.save_state()
            except OSError as e:
                # The operation has committed in memory; only the snapshot is stale.
                log.critical("%s committed but could not be persisted: %s", name, e)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "pool": self.pool.to_dict(),
            "ledger": self.ledger.to_dict(),
            "governance": self.governance.to_dict(),
            "roles": self.roles.to_dict(),
            "paused": self.paused,
            "events": list(self.events.records),
            "wallet": self.wallet.to_dict(),
        }
        to_dict = getattr(self.staking, "to_dict", None)
        if callable(to_dict):
            out["staking"] = to_dict()
        return out

    def save_state(self) -> None:
        if self.store is None:
            return
        with self._lock:
            self.store.save(self.to_dict())

    # ----------------------- views ------------------

    @property
    def state(self) -> PoolState:
        return self.pool.state

    def free_balance(self) -> int:
        return self.wallet.free_balance(self.pool.account)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "ok": True,
                "account": self.pool.account,
                "state": self.pool.state.value,
                "target": self.pool.target,
                "total_stake": self.ledger.total_stake,
                "min_delegation": self.min_delegation,
                "balance": self.wallet.balance(self.pool.account),
                "free_balance": self.free_balance(),
                "locked_balance": self.wallet.locked_balance(self.pool.account),
                "paused": self.paused,
                "contributors": len(self.ledger.contributors()),
                "proposals": len(self.governance.proposals),
            }

    def member_stake(self, account: str) -> Dict[str, Any]:
        with self._lock:
            return {
                "ok": True,
                "account": account,
                "stake": self.ledger.stake_of(account),
                "is_member": self.roles.has_role(Role.MEMBER, account),
                "is_admin": self.roles.has_role(Role.ADMIN, account),
            }

    def compute_share(self, account: str) -> int:
        """
        Current entitlement of `account`: the same floor(balance * stake /
        total) that withdraw pays, over the pool's whole balance.
        """
        with self._lock:
            return self.ledger.compute_share(account, self.wallet.balance(self.pool.account))

    def proposal(self, proposal_id: int) -> Dict[str, Any]:
        with self._lock:
            return self.governance.get(proposal_id).to_dict()

    def proposals(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [p.to_dict() for p in self.governance.proposals]

    def event_records(self, typ: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return self.events.of_type(typ)

    # ----------------------- member operations ------------------

    def deposit(self, caller: str, amount: int) -> Dict[str, Any]:
        """
        Add `amount` (attached to the call) to the pool and to the caller's
        stake. While COLLECTING, a deposit that finds the recorded total
        already at min_delegation bonds the whole free balance (this
        deposit included); while STAKING the deposit tops up the bond.
        """
        with self._operation("deposit"):
            self.roles.require(Capability.DEPOSIT, caller)
            ensure_not_paused(self.paused, Capability.DEPOSIT)
            amount = require_positive_amount(amount)
            self.pool.require_state(DEPOSIT_STATES, "deposit")

            self.wallet.credit(self.pool.account, amount)

            bonded = False
            if self.pool.state == PoolState.STAKING:
                lifecycle.bond_more(self.pool, self.staking, amount)
            elif self.ledger.total_stake >= self.min_delegation:
                lifecycle.bond(self.pool, self.staking, self.free_balance())
                bonded = True

            stake = self.ledger.deposit(caller, amount)
            self.events.deposit(caller, amount)

            return {
                "ok": True,
                "account": caller,
                "amount": amount,
                "stake": stake,
                "total_stake": self.ledger.total_stake,
                "state": self.pool.state.value,
                "bonded": bonded,
            }

    def withdraw(self, caller: str, destination: Optional[str] = None) -> Dict[str, Any]:
        """
        Fully exit the caller: pay floor(balance * stake / total) to
        `destination` (default: the caller) and zero their stake.

        While REVOKING this first tries to complete the unbonding; if the
        service still reports a delegation the call fails and nothing
        changes.
        """
        with self._operation("withdraw"):
            self.roles.require(Capability.WITHDRAW, caller)
            ensure_not_paused(self.paused, Capability.WITHDRAW)
            destination = str(destination or caller)
            self.pool.require_state(WITHDRAW_STATES, "withdraw")

            if self.ledger.total_stake == 0:
                raise ZeroTotalStakeError("total stake is zero; nothing can be withdrawn")
            if self.ledger.stake_of(caller) == 0:
                raise NoStakeError(f"{caller} has no stake to withdraw")

            if self.pool.state == PoolState.REVOKING:
                lifecycle.complete_revoke(self.pool, self.staking)
            else:
                require_delegation_status(
                    self.staking, self.pool.account, expected=False, context="withdraw"
                )

            share, stake = self.ledger.withdraw(
                caller,
                self.wallet.balance(self.pool.account),
                self.free_balance(),
            )
            self.wallet.send(self.pool.account, destination, share)
            self.events.withdrawal(caller, destination, share)

            return {
                "ok": True,
                "account": caller,
                "destination": destination,
                "amount": share,
                "stake": stake,
                "total_stake": self.ledger.total_stake,
                "state": self.pool.state.value,
            }

    # ----------------------- governance ------------------

    def create_proposal(self, caller: str, target: str) -> Dict[str, Any]:
        with self._operation("create_proposal"):
            self.roles.require(Capability.CREATE_PROPOSAL, caller)
            proposal = self.governance.create_proposal(caller, target)
            return {"ok": True, "proposal": proposal.to_dict()}

    def vote(self, caller: str, proposal_id: int, support: bool) -> Dict[str, Any]:
        with self._operation("vote"):
            self.roles.require(Capability.VOTE, caller)
            proposal = self.governance.vote(caller, proposal_id, bool(support))
            return {"ok": True, "proposal": proposal.to_dict()}

    def execute_proposal(self, caller: str, proposal_id: int) -> Dict[str, Any]:
        """
        Copy a passing proposal's target into the pool. With
        enforce_target_lifecycle the same COLLECTING/REVOKED rule as
        change_target applies; without it the target is overwritten in
        any state.
        """
        with self._operation("execute_proposal"):
            self.roles.require(Capability.EXECUTE_PROPOSAL, caller)
            ensure_not_paused(self.paused, Capability.EXECUTE_PROPOSAL)
            target = self.governance.passing_target(proposal_id)

            if self.enforce_target_lifecycle:
                self.pool.change_target(target)
            else:
                if self.pool.state not in lifecycle.TARGET_CHANGE_STATES:
                    log.warning(
                        "proposal %s changes target while %s", proposal_id, self.pool.state.value
                    )
                self.pool.target = target

            log.info("proposal %s executed by %s: target=%s", proposal_id, caller, target)
            return {"ok": True, "proposal_id": int(proposal_id), "target": self.pool.target}

    # ----------------------- admin operations ------------------

    def revoke(self, caller: str) -> Dict[str, Any]:
        with self._operation("revoke"):
            self.roles.require(Capability.REVOKE, caller)
            lifecycle.schedule_revoke(self.pool, self.staking)
            return {"ok": True, "state": self.pool.state.value, "target": self.pool.target}

    def reset(self, caller: str) -> Dict[str, Any]:
        with self._operation("reset"):
            self.roles.require(Capability.RESET, caller)
            lifecycle.reset(self.pool)
            return {"ok": True, "state": self.pool.state.value}

    def change_target(self, caller: str, target: str) -> Dict[str, Any]:
        with self._operation("change_target"):
            self.roles.require(Capability.CHANGE_TARGET, caller)
            self.pool.change_target(target)
            return {"ok": True, "target": self.pool.target}

    def pause(self, caller: str) -> Dict[str, Any]:
        with self._operation("pause"):
            self.roles.require(Capability.PAUSE, caller)
            self.paused = True
            log.warning("pool %s paused by %s", self.pool.account, caller)
            return {"ok": True, "paused": True}

    def unpause(self, caller: str) -> Dict[str, Any]:
        with self._operation("unpause"):
            self.roles.require(Capability.PAUSE, caller)
            self.paused = False
            log.info("pool %s unpaused by %s", self.pool.account, caller)
            return {"ok": True, "paused": False}

    def add_member(self, caller: str, account: str) -> Dict[str, Any]:
        return self._grant(caller, Role.MEMBER, account)

    def remove_member(self, caller: str, account: str) -> Dict[str, Any]:
        """Removes the role only; the account's ledger entry is kept."""
        return self._revoke_role(caller, Role.MEMBER, account)

    def add_admin(self, caller: str, account: str) -> Dict[str, Any]:
        return self._grant(caller, Role.ADMIN, account)

    def remove_admin(self, caller: str, account: str) -> Dict[str, Any]:
        return self._revoke_role(caller, Role.ADMIN, account)

    def _grant(self, caller: str, role: Role, account: str) -> Dict[str, Any]:
        with self._operation(f"grant_{role.value}"):
            self.roles.require(Capability.MANAGE_ROLES, caller)
            changed = self.roles.grant(role, account)
            return {"ok": True, "account": account, "role": role.value, "changed": changed}

    def _revoke_role(self, caller: str, role: Role, account: str) -> Dict[str, Any]:
        with self._operation(f"revoke_{role.value}"):
            self.roles.require(Capability.MANAGE_ROLES, caller)
            if role == Role.ADMIN and self.roles.admins == {account}:
                raise StatePreconditionError("cannot remove the last admin")
            changed = self.roles.revoke(role, account)
            return {"ok": True, "account": account, "role": role.value, "changed": changed}

    def emergency_withdraw(self, caller: str, destination: str, amount: int) -> Dict[str, Any]:
        """
        Move `amount` of the pool's free balance to `destination` without
        touching the stake ledger. Available while paused.
        """
        with self._operation("emergency_withdraw"):
            self.roles.require(Capability.EMERGENCY_WITHDRAW, caller)
            amount = require_positive_amount(amount)
            destination = str(destination or "").strip()
            if not destination:
                raise StatePreconditionError("destination must not be empty")
            free = self.free_balance()
            if amount > free:
                raise InsufficientFundsError(
                    f"emergency withdrawal of {amount} exceeds holdings of {free}",
                    detail={"free": free, "requested": amount},
                )
            self.wallet.send(self.pool.account, destination, amount)
            self.events.withdrawal(caller, destination, amount)
            log.warning("emergency withdrawal: %s moved %d to %s", caller, amount, destination)
            return {"ok": True, "destination": destination, "amount": amount, "free_balance": self.free_balance()}

    # ----------------------- simulation ------------------

    def advance_staking_rounds(self, caller: str, rounds: int) -> int:
        """Admin-only: move the simulated service clock forward."""
        advance = getattr(self.staking, "advance_rounds", None)
        with self._lock:
            self.roles.require(Capability.ADVANCE_CLOCK, caller)
            if not callable(advance):
                raise StatePreconditionError("staking service has no simulated clock")
            log.info("staking clock advanced %d rounds by %s", int(rounds), caller)
            current = advance(int(rounds))
            self.save_state()
            return current


def build_executor(settings: Settings, repo_root: Optional[str] = None) -> PoolExecutor:
    """Convenience used by the app factory and the launcher."""
    root = repo_root or str(Path.cwd())
    return PoolExecutor.from_settings(settings, repo_root=root)
