"""
collective_node/runtime/errors.py
---------------------------------

Error taxonomy for pool operations.

Every error aborts the whole enclosing operation; the executor restores
its pre-call snapshot before the exception propagates. Nothing here is
retried automatically.

Categories:
- permission        -> PermissionDenied, PoolPaused
- state precondition -> StatePreconditionError (+ UnbondingPendingError)
- consistency fatal -> ConsistencyFatalError
- arithmetic        -> ZeroTotalStakeError
- resources         -> InsufficientFundsError
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PoolError(Exception):
    """
    Base class. `code` is a short machine-readable tag that the HTTP layer
    returns as `detail`.
    """

    code: str = "pool_error"

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.detail = dict(detail or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code, "message": str(self), **self.detail}


class PermissionDenied(PoolError):
    code = "missing_role"


class PoolPaused(PoolError):
    code = "paused"


class StatePreconditionError(PoolError):
    code = "bad_state"


class UnbondingPendingError(StatePreconditionError):
    code = "unbonding_pending"


class ConsistencyFatalError(PoolError):
    """
    Local lifecycle state contradicts the staking service's view.
    Operators must look at this by hand.
    """

    code = "consistency_fatal"


class ZeroTotalStakeError(PoolError, ZeroDivisionError):
    code = "zero_total_stake"


class InsufficientFundsError(PoolError):
    code = "insufficient_funds"


class InvalidAmountError(PoolError, ValueError):
    code = "invalid_amount"


class NoStakeError(PoolError):
    code = "no_stake"


class UnknownProposalError(PoolError, LookupError):
    code = "unknown_proposal"


class DuplicateVoteError(PoolError):
    code = "already_voted"


class StakingServiceError(PoolError):
    code = "staking_call_failed"


def require_positive_amount(amount: Any) -> int:
    """
    Amounts are integers in the smallest unit. bool is rejected even though
    it is an int subclass.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmountError(f"amount must be positive, got {amount}")
    return amount
