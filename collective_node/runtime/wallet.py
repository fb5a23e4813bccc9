"""
collective_node/runtime/wallet.py
---------------------------------

Minimal balance book used as the fund transfer primitive.

- balances: account -> integer units held
- locked:   account -> units locked by the staking service (bonded)

Free balance is `balances - locked`. `send` fails loudly and moves
either the full amount or nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from .errors import InsufficientFundsError, require_positive_amount

log = logging.getLogger(__name__)


@dataclass
class Wallet:
    balances: Dict[str, int] = field(default_factory=dict)
    locked: Dict[str, int] = field(default_factory=dict)

    # ---------- Core ----------
    def balance(self, account: str) -> int:
        return int(self.balances.get(account, 0))

    def locked_balance(self, account: str) -> int:
        return int(self.locked.get(account, 0))

    def free_balance(self, account: str) -> int:
        return self.balance(account) - self.locked_balance(account)

    def credit(self, account: str, amount: int) -> None:
        """Funds arriving with a call (e.g. the value attached to a deposit)."""
        amount = require_positive_amount(amount)
        self.balances[account] = self.balance(account) + amount

    def send(self, source: str, destination: str, amount: int) -> None:
        if amount == 0:
            return
        amount = require_positive_amount(amount)
        free = self.free_balance(source)
        if free < amount:
            raise InsufficientFundsError(
                f"{source} cannot send {amount}: only {free} free",
                detail={"free": free, "requested": amount},
            )
        self.balances[source] = self.balance(source) - amount
        self.balances[destination] = self.balance(destination) + amount
        log.debug("wallet: %s -> %s %d", source, destination, amount)

    # ---------- Locks (driven by the staking service) ----------
    def lock(self, account: str, amount: int) -> None:
        amount = require_positive_amount(amount)
        free = self.free_balance(account)
        if free < amount:
            raise InsufficientFundsError(
                f"{account} cannot lock {amount}: only {free} free",
                detail={"free": free, "requested": amount},
            )
        self.locked[account] = self.locked_balance(account) + amount

    def unlock(self, account: str, amount: int) -> None:
        current = self.locked_balance(account)
        remaining = max(0, current - int(amount))
        if remaining:
            self.locked[account] = remaining
        else:
            self.locked.pop(account, None)

    # ---------- Persistence ----------
    def to_dict(self) -> Dict[str, Any]:
        return {"balances": dict(self.balances), "locked": dict(self.locked)}

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "Wallet":
        return cls(
            balances={str(k): int(v) for k, v in (obj.get("balances") or {}).items()},
            locked={str(k): int(v) for k, v in (obj.get("locked") or {}).items()},
        )
