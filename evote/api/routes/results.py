"""Results and approval API routes."""

from typing import Annotated
from uuid import UUID

import asyncpg
from fastapi import APIRouter, BackgroundTasks, Depends

from evote.api.deps import get_current_user, is_admin
from evote.core.database import get_db
from evote.core.exceptions import NotCommissioner
from evote.core.responses import success_response
from evote.services import approvals as approval_service
from evote.services import results as results_service
from evote.services.notifications import (
    build_results_published_event,
    dispatch_results_published,
)

router = APIRouter(prefix="/elections", tags=["Results"])


@router.get("/{election_id}/results")
async def get_results(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """
    Get election results.

    Published results are visible to everyone; before publication only to
    admins and the election's commissioners.
    """
    results = await results_service.get_results_for_caller(
        conn, election_id, UUID(current_user["id"]), current_user["role"]
    )
    return success_response(data=results)


@router.post("/{election_id}/approve-results")
async def approve_results(
    election_id: UUID,
    background_tasks: BackgroundTasks,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """
    Approve the results as one of the election's commissioners.

    Results are published by the approval that completes the quorum.
    """
    outcome = await approval_service.approve_results(
        conn, election_id, UUID(current_user["id"])
    )

    if outcome.published:
        results = await results_service.compute_results(conn, election_id)
        background_tasks.add_task(
            dispatch_results_published,
            build_results_published_event(outcome.election, results),
        )
        message = "Results approved and published"
    elif outcome.all_approved:
        message = "Results approved"
    else:
        message = "Results approved. Waiting for other commissioners"

    return success_response(data=outcome.to_dict(), message=message)


@router.get("/{election_id}/approvals")
async def get_approvals(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """Approval progress of an election (admins and its commissioners)."""
    if not is_admin(current_user) and not await approval_service.is_commissioner(
        conn, election_id, UUID(current_user["id"])
    ):
        raise NotCommissioner()

    status_data = await approval_service.quorum_status(conn, election_id)
    return success_response(data=status_data)
