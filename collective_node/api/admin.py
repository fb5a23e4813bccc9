"""
collective_node/api/admin.py
--------------------------------------------------
Admin routes. Every route requires X-Collective-User and the ADMIN role
(checked inside the executor, surfaced here as 403).

    POST   /admin/revoke                  STAKING -> REVOKING
    POST   /admin/reset                   REVOKED|COLLECTING -> COLLECTING
    POST   /admin/target                  change delegation target
    POST   /admin/pause | /admin/unpause  emergency stop
    POST   /admin/members/{account}       grant MEMBER
    DELETE /admin/members/{account}       revoke MEMBER
    POST   /admin/admins/{account}        grant ADMIN
    DELETE /admin/admins/{account}        revoke ADMIN
    POST   /admin/emergency-withdraw      move free funds out

    POST   /staking/advance               dev only (ADMIN): advance the simulated
                                          staking service clock
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..executor import PoolExecutor
from ..security.current_user import require_current_user_id
from .deps import call, get_executor

router = APIRouter(prefix="/admin", tags=["admin"])
staking_router = APIRouter(prefix="/staking", tags=["staking"])


# ============================================================
# Models
# ============================================================

class TargetRequest(BaseModel):
    target: str = Field(..., min_length=1)


class EmergencyWithdrawRequest(BaseModel):
    destination: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)


class AdvanceRequest(BaseModel):
    rounds: int = Field(default=1, ge=0)


# ============================================================
# Lifecycle
# ============================================================

@router.post("/revoke")
def revoke(user_id: str = Depends(require_current_user_id), ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return call(ex.revoke, user_id)


@router.post("/reset")
def reset(user_id: str = Depends(require_current_user_id), ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return call(ex.reset, user_id)


@router.post("/target")
def change_target(
    payload: TargetRequest,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.change_target, user_id, payload.target)


@router.post("/pause")
def pause(user_id: str = Depends(require_current_user_id), ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return call(ex.pause, user_id)


@router.post("/unpause")
def unpause(user_id: str = Depends(require_current_user_id), ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return call(ex.unpause, user_id)


# ============================================================
# Roles
# ============================================================

@router.post("/members/{account}")
def add_member(
    account: str,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.add_member, user_id, account)


@router.delete("/members/{account}")
def remove_member(
    account: str,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.remove_member, user_id, account)


@router.post("/admins/{account}")
def add_admin(
    account: str,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.add_admin, user_id, account)


@router.delete("/admins/{account}")
def remove_admin(
    account: str,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.remove_admin, user_id, account)


# ============================================================
# Funds
# ============================================================

@router.post("/emergency-withdraw")
def emergency_withdraw(
    payload: EmergencyWithdrawRequest,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.emergency_withdraw, user_id, payload.destination, payload.amount)


# ============================================================
# Simulated staking service (dev)
# ============================================================

@staking_router.post("/advance")
def advance_rounds(
    payload: AdvanceRequest,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    """
    Move the simulated service's clock so scheduled unbonds can mature.
    Admin only.
    """
    return {"ok": True, "round": call(ex.advance_staking_rounds, user_id, payload.rounds)}
