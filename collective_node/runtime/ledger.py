"""
collective_node/runtime/ledger.py
---------------------------------

Proportional-share accounting for the pool.

Tracks:
- member_stake: account -> units contributed (entries are zeroed, never
  deleted, so a member can re-deposit later)
- total_stake:  running sum of all member_stake values

Invariants:
- sum(member_stake.values()) == total_stake after every committed call
- shares are floor(pool_balance * stake / total_stake); the sum of shares
  handed out never exceeds the pool balance, dust stays in the pool
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .errors import (
    InsufficientFundsError,
    NoStakeError,
    ZeroTotalStakeError,
    require_positive_amount,
)

log = logging.getLogger(__name__)


@dataclass
class StakeLedger:
    member_stake: Dict[str, int] = field(default_factory=dict)
    total_stake: int = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def stake_of(self, member: str) -> int:
        return int(self.member_stake.get(member, 0))

    def contributors(self) -> Dict[str, int]:
        """Members with a non-zero stake."""
        return {m: s for m, s in self.member_stake.items() if s > 0}

    def compute_share(self, member: str, pool_balance: int) -> int:
        """
        floor(pool_balance * stake / total_stake).

        Raises ZeroTotalStakeError instead of dividing by zero.
        """
        if self.total_stake == 0:
            raise ZeroTotalStakeError("total stake is zero; no share can be computed")
        return (int(pool_balance) * self.stake_of(member)) // self.total_stake

    def audit(self) -> bool:
        """Integrity check: non-negative entries that add up to total_stake."""
        if any(v < 0 for v in self.member_stake.values()):
            return False
        return sum(self.member_stake.values()) == self.total_stake

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def deposit(self, member: str, amount: int) -> int:
        amount = require_positive_amount(amount)
        self.member_stake[member] = self.stake_of(member) + amount
        self.total_stake += amount
        log.debug("ledger: %s +%d (total %d)", member, amount, self.total_stake)
        return self.member_stake[member]

    def withdraw(
        self,
        member: str,
        pool_balance: int,
        free_balance: Optional[int] = None,
    ) -> Tuple[int, int]:
        """
        Fully exit `member`. Returns (share, stake_removed).

        The caller moves `share` out of the pool; this only updates the
        books. `free_balance` defaults to `pool_balance`.
        """
        share = self.compute_share(member, pool_balance)
        stake = self.stake_of(member)
        if stake == 0:
            raise NoStakeError(f"{member} has no stake to withdraw")

        free = int(pool_balance if free_balance is None else free_balance)
        if share > free:
            raise InsufficientFundsError(
                f"share {share} exceeds free pool balance {free}",
                detail={"share": share, "free": free},
            )

        self.total_stake -= stake
        self.member_stake[member] = 0
        log.debug("ledger: %s exits with stake %d, share %d (total %d)", member, stake, share, self.total_stake)
        return share, stake

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {"member_stake": dict(self.member_stake), "total_stake": self.total_stake}

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "StakeLedger":
        return cls(
            member_stake={str(k): int(v) for k, v in (obj.get("member_stake") or {}).items()},
            total_stake=int(obj.get("total_stake", 0)),
        )
