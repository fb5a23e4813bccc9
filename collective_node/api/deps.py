from __future__ import annotations

"""
Shared FastAPI helpers: executor lookup and PoolError -> HTTPException.

Every route runs its executor call through `call()`, so the domain layer
never has to know about HTTP.
"""

import threading
from typing import Any, Callable, Dict, Type

from fastapi import HTTPException, Request, status

from ..executor import PoolExecutor
from ..runtime import errors

_build_lock = threading.Lock()


_STATUS: Dict[Type[errors.PoolError], int] = {
    errors.PermissionDenied: status.HTTP_403_FORBIDDEN,
    errors.PoolPaused: status.HTTP_423_LOCKED,
    errors.UnknownProposalError: status.HTTP_404_NOT_FOUND,
    errors.DuplicateVoteError: status.HTTP_409_CONFLICT,
    errors.NoStakeError: status.HTTP_409_CONFLICT,
    errors.StatePreconditionError: status.HTTP_409_CONFLICT,
    errors.InvalidAmountError: status.HTTP_400_BAD_REQUEST,
    errors.ZeroTotalStakeError: status.HTTP_400_BAD_REQUEST,
    errors.InsufficientFundsError: status.HTTP_402_PAYMENT_REQUIRED,
    errors.StakingServiceError: status.HTTP_502_BAD_GATEWAY,
    errors.ConsistencyFatalError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: errors.PoolError) -> int:
    # Walk the MRO so subclasses (UnbondingPendingError) map like their parent.
    for cls in type(exc).__mro__:
        code = _STATUS.get(cls)
        if code is not None:
            return code
    return status.HTTP_400_BAD_REQUEST


def get_executor(request: Request) -> PoolExecutor:
    state = request.app.state
    ex = getattr(state, "executor", None)
    if ex is None:
        factory = getattr(state, "executor_factory", None)
        if factory is None:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="pool_not_ready")
        with _build_lock:
            ex = getattr(state, "executor", None)
            if ex is None:
                ex = factory()
                state.executor = ex
    return ex


def call(fn: Callable[..., Dict[str, Any]], *args: Any, **kwargs: Any) -> Dict[str, Any]:
    try:
        return fn(*args, **kwargs)
    except errors.PoolError as e:
        raise HTTPException(status_code=status_for(e), detail=e.code) from e
