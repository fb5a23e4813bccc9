"""
collective_node/api/pool.py
--------------------------------------------------
Member-facing pool routes.

API surface:

    GET  /pool/status
        -> lifecycle state, target, total stake, balances, pause flag

    GET  /pool/members/{account}
        -> recorded stake and roles for one account

    GET  /pool/events?type=deposit|withdrawal
        -> event log (optionally filtered)

    POST /pool/deposit
        -> add funds and stake (requires X-Collective-User with MEMBER)

    POST /pool/withdraw
        -> full exit of the caller's share (requires MEMBER)
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..executor import PoolExecutor
from ..security.current_user import require_current_user_id
from .deps import call, get_executor

router = APIRouter(prefix="/pool", tags=["pool"])


# ============================================================
# Models
# ============================================================

class DepositRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Units to contribute (smallest indivisible unit)")


class WithdrawRequest(BaseModel):
    destination: Optional[str] = Field(
        default=None,
        description="Account receiving the payout; defaults to the caller",
    )


class PoolStatusResponse(BaseModel):
    ok: bool = True
    account: str
    state: str
    target: str
    total_stake: int
    min_delegation: int
    balance: int
    free_balance: int
    locked_balance: int
    paused: bool
    contributors: int
    proposals: int


class MemberStakeResponse(BaseModel):
    ok: bool = True
    account: str
    stake: int
    is_member: bool
    is_admin: bool


class DepositResponse(BaseModel):
    ok: bool = True
    account: str
    amount: int
    stake: int
    total_stake: int
    state: str
    bonded: bool


class WithdrawResponse(BaseModel):
    ok: bool = True
    account: str
    destination: str
    amount: int
    stake: int
    total_stake: int
    state: str


class EventsResponse(BaseModel):
    ok: bool = True
    events: List[Dict[str, Any]]


# ============================================================
# Routes
# ============================================================

@router.get("/status", response_model=PoolStatusResponse)
def pool_status(ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return ex.status()


@router.get("/members/{account}", response_model=MemberStakeResponse)
def member_stake(account: str, ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return ex.member_stake(account)


@router.get("/events", response_model=EventsResponse)
def list_events(
    type: Optional[str] = Query(default=None, description="Filter by event type"),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return {"ok": True, "events": ex.event_records(type)}


@router.post("/deposit", response_model=DepositResponse)
def deposit(
    payload: DepositRequest,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.deposit, user_id, payload.amount)


@router.post("/withdraw", response_model=WithdrawResponse)
def withdraw(
    payload: Optional[WithdrawRequest] = None,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    destination = payload.destination if payload else None
    return call(ex.withdraw, user_id, destination)
