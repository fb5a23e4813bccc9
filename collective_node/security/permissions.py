from __future__ import annotations

"""
collective_node/security/permissions.py
---------------------------------------

Permission gate for pool operations.

Two roles, each a set of account ids:

- MEMBER: deposit, withdraw, propose, vote
- ADMIN:  execute proposals, revoke/reset, change target, pause/unpause,
          grant/revoke roles, emergency withdrawal,
          advancing the simulated staking clock

ADMIN does not imply MEMBER: an admin who wants to contribute funds must
also be granted MEMBER.

Every check runs before any state is touched.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from ..runtime.errors import PermissionDenied, PoolPaused, StatePreconditionError


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Capability(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CREATE_PROPOSAL = "create_proposal"
    VOTE = "vote"
    EXECUTE_PROPOSAL = "execute_proposal"
    REVOKE = "revoke"
    RESET = "reset"
    CHANGE_TARGET = "change_target"
    PAUSE = "pause"
    MANAGE_ROLES = "manage_roles"
    EMERGENCY_WITHDRAW = "emergency_withdraw"
    ADVANCE_CLOCK = "advance_clock"


_ROLE_CAPS: Dict[Role, FrozenSet[Capability]] = {
    Role.MEMBER: frozenset(
        {
            Capability.DEPOSIT,
            Capability.WITHDRAW,
            Capability.CREATE_PROPOSAL,
            Capability.VOTE,
        }
    ),
    Role.ADMIN: frozenset(
        {
            Capability.EXECUTE_PROPOSAL,
            Capability.REVOKE,
            Capability.RESET,
            Capability.CHANGE_TARGET,
            Capability.PAUSE,
            Capability.MANAGE_ROLES,
            Capability.EMERGENCY_WITHDRAW,
            Capability.ADVANCE_CLOCK,
        }
    ),
}

# Operations refused while the pool is paused. Emergency withdrawal is not
# in this set.
PAUSABLE: FrozenSet[Capability] = frozenset(
    {Capability.DEPOSIT, Capability.WITHDRAW, Capability.EXECUTE_PROPOSAL}
)


def role_for(capability: Capability) -> Role:
    for role, caps in _ROLE_CAPS.items():
        if capability in caps:
            return role
    raise KeyError(capability)


@dataclass
class RoleRegistry:
    members: Set[str] = field(default_factory=set)
    admins: Set[str] = field(default_factory=set)

    def _set_for(self, role: Role) -> Set[str]:
        return self.admins if Role(role) == Role.ADMIN else self.members

    def has_role(self, role: Role, account: Optional[str]) -> bool:
        if not account:
            return False
        return str(account) in self._set_for(role)

    def grant(self, role: Role, account: str) -> bool:
        """Returns False if the account already held the role."""
        account = str(account or "").strip()
        if not account:
            raise StatePreconditionError("account must not be empty")
        target = self._set_for(role)
        if account in target:
            return False
        target.add(account)
        return True

    def revoke(self, role: Role, account: str) -> bool:
        target = self._set_for(role)
        if account not in target:
            return False
        target.discard(account)
        return True

    def require(self, capability: Capability, account: Optional[str]) -> None:
        role = role_for(capability)
        if not self.has_role(role, account):
            raise PermissionDenied(
                f"{account or '<anonymous>'} lacks role '{role.value}' for '{capability.value}'",
                detail={"role": role.value, "action": capability.value},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {"members": sorted(self.members), "admins": sorted(self.admins)}

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "RoleRegistry":
        return cls(
            members={str(a) for a in obj.get("members", [])},
            admins={str(a) for a in obj.get("admins", [])},
        )

    @classmethod
    def seeded(cls, admins: Iterable[str] = (), members: Iterable[str] = ()) -> "RoleRegistry":
        return cls(
            members={str(a) for a in members if str(a).strip()},
            admins={str(a) for a in admins if str(a).strip()},
        )


def ensure_not_paused(paused: bool, capability: Capability) -> None:
    """
    Pause gate: refuse pausable operations while the emergency stop is set.
    """
    if paused and capability in PAUSABLE:
        raise PoolPaused(
            f"pool is paused; '{capability.value}' is disabled",
            detail={"action": capability.value, "reason": "paused"},
        )
