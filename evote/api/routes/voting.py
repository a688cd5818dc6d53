"""Voting API routes."""

from typing import Annotated
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from evote.api.deps import get_current_user, is_admin
from evote.core.database import get_db
from evote.core.responses import success_response
from evote.services import elections as election_service
from evote.services import eligibility as eligibility_service
from evote.services import voting as voting_service

router = APIRouter(prefix="/elections", tags=["Voting"])


class VoteRequest(BaseModel):
    """Cast vote request model."""

    candidate_id: UUID


@router.post("/{election_id}/vote", status_code=status.HTTP_201_CREATED)
async def cast_vote(
    election_id: UUID,
    request: VoteRequest,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """
    Cast the caller's single ballot in an election.

    Retrying after a network failure is safe: a ballot that was already
    recorded makes the retry fail with ALREADY_VOTED.
    """
    voter_id = UUID(current_user["id"])
    vote = await voting_service.cast_vote(
        conn, voter_id, election_id, request.candidate_id
    )

    receipt = await voting_service.generate_vote_receipt(conn, voter_id, election_id)
    return success_response(
        data={"vote_id": vote["id"], "receipt": receipt},
        message="Vote cast successfully",
    )


@router.get("/{election_id}/eligibility")
async def check_eligibility(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
    voter_id: UUID | None = Query(None),
):
    """
    Check whether a voter may vote right now.

    Admins may ask about any voter; everybody else only about themselves.
    """
    caller_id = UUID(current_user["id"])
    if voter_id is not None and voter_id != caller_id and not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to check another voter's eligibility",
        )

    decision = await eligibility_service.check_can_vote(
        conn, voter_id or caller_id, election_id
    )
    return success_response(data=decision.to_dict(), message=decision.message)


@router.get("/{election_id}/vote-status")
async def get_vote_status(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """Whether the caller has voted, with the receipt when they have."""
    await election_service.require_election(conn, election_id)

    voter_id = UUID(current_user["id"])
    receipt = await voting_service.generate_vote_receipt(conn, voter_id, election_id)
    return success_response(data={"has_voted": receipt is not None, "receipt": receipt})
