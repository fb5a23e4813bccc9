from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..executor import PoolExecutor
from ..security.current_user import require_current_user_id
from .deps import call, get_executor

router = APIRouter(prefix="/governance", tags=["governance"])


class Proposal(BaseModel):
    id: int
    proposed_target: str
    proposer: str = ""
    votes_for: int = 0
    votes_against: int = 0
    voters: List[str] = Field(default_factory=list)


class ProposalCreate(BaseModel):
    target: str = Field(..., min_length=1, description="Proposed delegation target")


class ProposalVoteRequest(BaseModel):
    support: bool


class ProposalResponse(BaseModel):
    ok: bool = True
    proposal: Proposal


class ProposalListResponse(BaseModel):
    ok: bool = True
    proposals: List[Proposal]


class ExecuteResponse(BaseModel):
    ok: bool = True
    proposal_id: int
    target: str


@router.get("/proposals", response_model=ProposalListResponse)
def list_proposals(ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return {"ok": True, "proposals": ex.proposals()}


@router.get("/proposals/{proposal_id}", response_model=ProposalResponse)
def get_proposal(proposal_id: int, ex: PoolExecutor = Depends(get_executor)) -> Dict[str, Any]:
    return {"ok": True, "proposal": call(ex.proposal, proposal_id)}


@router.post("/proposals", response_model=ProposalResponse)
def create_proposal(
    payload: ProposalCreate,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.create_proposal, user_id, payload.target)


@router.post("/proposals/{proposal_id}/vote", response_model=ProposalResponse)
def vote_proposal(
    proposal_id: int,
    payload: ProposalVoteRequest,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.vote, user_id, proposal_id, payload.support)


@router.post("/proposals/{proposal_id}/execute", response_model=ExecuteResponse)
def execute_proposal(
    proposal_id: int,
    user_id: str = Depends(require_current_user_id),
    ex: PoolExecutor = Depends(get_executor),
) -> Dict[str, Any]:
    return call(ex.execute_proposal, user_id, proposal_id)
