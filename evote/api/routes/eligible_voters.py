"""Eligible voter administration routes."""

from typing import Annotated
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from evote.api.deps import require_admin
from evote.core.database import get_db
from evote.core.responses import success_response
from evote.services import elections as election_service
from evote.services import eligibility as eligibility_service

router = APIRouter(prefix="/eligible-voters", tags=["Eligible Voters"])


class EligibleVotersRequest(BaseModel):
    """List of user IDs allowed to vote in an election."""

    user_ids: list[UUID] = Field(..., max_length=10000)


@router.get("/{election_id}")
async def list_eligible_voters(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """List the eligible voters of an election with their voting status."""
    data = await eligibility_service.list_eligible_voters(conn, election_id)
    return success_response(data=data)


@router.post("/{election_id}")
async def add_eligible_voters(
    election_id: UUID,
    request: EligibleVotersRequest,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Add users to the eligible voter list, skipping existing entries."""
    result = await eligibility_service.bulk_add_eligible_voters(
        conn, election_id, request.user_ids
    )

    await election_service.log_election_action(
        conn,
        election_id,
        "eligible_voters_added",
        UUID(current_user["id"]),
        {"added": result["added"], "already_exists": result["already_exists"]},
    )

    return success_response(
        data=result,
        message=f"{result['added']} voter(s) added, {result['already_exists']} already eligible",
    )


@router.put("/{election_id}")
async def replace_eligible_voters(
    election_id: UUID,
    request: EligibleVotersRequest,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Replace the whole eligible voter list of an election."""
    result = await eligibility_service.replace_eligible_voters(
        conn, election_id, request.user_ids
    )

    await election_service.log_election_action(
        conn,
        election_id,
        "eligible_voters_replaced",
        UUID(current_user["id"]),
        {"total": result["total"]},
    )

    return success_response(data=result, message="Eligible voters updated")
