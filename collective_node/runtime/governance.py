"""
collective_node/runtime/governance.py
-------------------------------------

Delegation-target governance.

- Any member may append a proposal naming a new target (no dedup).
- Members vote for/against; tallies are the only mutable part of a
  proposal.
- An admin executes a proposal once votes_for > votes_against (ties
  fail); the executor then copies proposed_target into the pool.

Two policy knobs (see config `governance.*`):
- one_vote_per_member: reject a second vote by the same member on the
  same proposal. Off lets a member be tallied any number of times.
- the lifecycle precondition on target changes is enforced by the
  executor, not here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import DuplicateVoteError, StatePreconditionError, UnknownProposalError

log = logging.getLogger(__name__)


@dataclass
class Proposal:
    id: int
    proposed_target: str
    proposer: str = ""
    votes_for: int = 0
    votes_against: int = 0
    voters: List[str] = field(default_factory=list)

    def passes(self) -> bool:
        return self.votes_for > self.votes_against

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "proposed_target": self.proposed_target,
            "proposer": self.proposer,
            "votes_for": self.votes_for,
            "votes_against": self.votes_against,
            "voters": list(self.voters),
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "Proposal":
        return cls(
            id=int(obj["id"]),
            proposed_target=str(obj.get("proposed_target", "")),
            proposer=str(obj.get("proposer", "")),
            votes_for=int(obj.get("votes_for", 0)),
            votes_against=int(obj.get("votes_against", 0)),
            voters=[str(v) for v in obj.get("voters", [])],
        )


@dataclass
class TargetGovernance:
    one_vote_per_member: bool = True
    proposals: List[Proposal] = field(default_factory=list)

    def get(self, proposal_id: int) -> Proposal:
        try:
            idx = int(proposal_id)
        except (TypeError, ValueError):
            raise UnknownProposalError(f"invalid proposal id: {proposal_id!r}")
        if idx < 0 or idx >= len(self.proposals):
            raise UnknownProposalError(f"no proposal with id {idx}", detail={"proposal_id": idx})
        return self.proposals[idx]

    def create_proposal(self, proposer: str, target: str) -> Proposal:
        target = str(target or "").strip()
        if not target:
            raise StatePreconditionError("proposed target must not be empty")
        proposal = Proposal(id=len(self.proposals), proposed_target=target, proposer=proposer)
        self.proposals.append(proposal)
        log.info("proposal %d by %s: target -> %s", proposal.id, proposer, target)
        return proposal

    def vote(self, voter: str, proposal_id: int, support: bool) -> Proposal:
        proposal = self.get(proposal_id)
        if self.one_vote_per_member and voter in proposal.voters:
            raise DuplicateVoteError(
                f"{voter} already voted on proposal {proposal.id}",
                detail={"proposal_id": proposal.id},
            )
        if support:
            proposal.votes_for += 1
        else:
            proposal.votes_against += 1
        proposal.voters.append(voter)
        return proposal

    def passing_target(self, proposal_id: int) -> str:
        """Target of a proposal that has a strict majority, else raise."""
        proposal = self.get(proposal_id)
        if not proposal.passes():
            raise StatePreconditionError(
                f"proposal {proposal.id} lacks a majority "
                f"({proposal.votes_for} for, {proposal.votes_against} against)",
                detail={"proposal_id": proposal.id},
            )
        return proposal.proposed_target

    def to_dict(self) -> Dict[str, Any]:
        return {
            "one_vote_per_member": self.one_vote_per_member,
            "proposals": [p.to_dict() for p in self.proposals],
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any], *, one_vote_per_member: bool = True) -> "TargetGovernance":
        return cls(
            one_vote_per_member=bool(one_vote_per_member),
            proposals=[Proposal.from_dict(p) for p in obj.get("proposals", [])],
        )
