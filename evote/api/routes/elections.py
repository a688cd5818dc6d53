"""Elections API routes."""

from typing import Annotated
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query, status
from pydantic import AwareDatetime, BaseModel, Field

from evote.api.deps import get_current_user, is_admin, require_admin
from evote.core.database import get_db
from evote.core.responses import paginated_response, success_response
from evote.services import approvals as approval_service
from evote.services import elections as election_service

router = APIRouter(prefix="/elections", tags=["Elections"])


# ============================================
# PYDANTIC MODELS
# ============================================


class ElectionCreate(BaseModel):
    """Create election request model."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    start_date: AwareDatetime
    end_date: AwareDatetime
    status: str = Field(default="active", pattern="^(draft|active)$")


class ElectionUpdate(BaseModel):
    """Update election request model."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    start_date: AwareDatetime | None = None
    end_date: AwareDatetime | None = None


class StatusChange(BaseModel):
    status: str = Field(..., pattern="^(draft|active|completed|cancelled)$")


class CandidateCreate(BaseModel):
    """Create candidate request model."""

    name: str = Field(..., min_length=1, max_length=255)
    party: str | None = Field(None, max_length=255)
    description: str | None = None
    image_url: str | None = None
    position: int | None = Field(None, ge=0)


class CandidateUpdate(BaseModel):
    """Update candidate request model."""

    name: str | None = Field(None, min_length=1, max_length=255)
    party: str | None = Field(None, max_length=255)
    description: str | None = None
    image_url: str | None = None
    position: int | None = Field(None, ge=0)


class CommissionerCreate(BaseModel):
    user_id: UUID


# ============================================
# ELECTION CRUD ENDPOINTS
# ============================================


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_election(
    request: ElectionCreate,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Create a new election (admin only)."""
    election = await election_service.create_election(
        conn=conn,
        title=request.title,
        description=request.description,
        start_date=request.start_date,
        end_date=request.end_date,
        created_by=UUID(current_user["id"]),
        status=request.status,
    )

    await election_service.log_election_action(
        conn,
        UUID(election["id"]),
        "election_created",
        UUID(current_user["id"]),
        {"title": request.title, "status": request.status},
    )

    return success_response(data=election, message="Election created successfully")


@router.get("")
async def list_elections(
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
    status_filter: str | None = Query(
        None, alias="status", pattern="^(draft|active|completed|cancelled)$"
    ),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
):
    """
    List elections.

    Admins see every election. Other users see only the elections they are
    eligible to vote in, with their own voting status.
    """
    if not is_admin(current_user):
        elections = await election_service.list_elections_for_user(
            conn, UUID(current_user["id"])
        )
        return success_response(
            data=elections, message=f"Found {len(elections)} elections"
        )

    elections, total = await election_service.list_elections(
        conn=conn,
        status=status_filter,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return paginated_response(
        items=elections,
        page=page,
        limit=limit,
        total=total,
        message=f"Found {total} elections",
    )


@router.get("/my-commissioner-assignments")
async def my_commissioner_assignments(
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """Elections whose results the caller has to review."""
    assignments = await approval_service.list_commissioner_assignments(
        conn, UUID(current_user["id"])
    )
    return success_response(
        data=assignments, message=f"Found {len(assignments)} assignments"
    )


@router.get("/{election_id}")
async def get_election(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """Get election details with candidates and the caller's voting status."""
    election = await election_service.get_election_detail(
        conn, election_id, UUID(current_user["id"])
    )
    return success_response(data=election)


@router.put("/{election_id}")
async def update_election(
    election_id: UUID,
    request: ElectionUpdate,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """
    Update an election.

    The voting window cannot move once votes were cast.
    """
    update_data = request.model_dump(exclude_unset=True)
    election = await election_service.update_election(conn, election_id, **update_data)

    await election_service.log_election_action(
        conn,
        election_id,
        "election_updated",
        UUID(current_user["id"]),
        {"fields_updated": list(update_data.keys())},
    )

    return success_response(data=election, message="Election updated successfully")


@router.patch("/{election_id}/status")
async def change_election_status(
    election_id: UUID,
    request: StatusChange,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Move an election to another status."""
    election = await election_service.change_status(conn, election_id, request.status)

    await election_service.log_election_action(
        conn,
        election_id,
        "status_changed",
        UUID(current_user["id"]),
        {"status": request.status},
    )

    return success_response(
        data=election, message=f"Election status changed to {request.status}"
    )


@router.delete("/{election_id}")
async def delete_election(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Delete an election without votes."""
    await election_service.delete_election(conn, election_id)
    return success_response(message="Election deleted successfully")


# ============================================
# CANDIDATE ENDPOINTS
# ============================================


@router.post("/{election_id}/candidates", status_code=status.HTTP_201_CREATED)
async def add_candidate(
    election_id: UUID,
    request: CandidateCreate,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Add a candidate to an election's ballot."""
    candidate = await election_service.add_candidate(
        conn=conn,
        election_id=election_id,
        name=request.name,
        party=request.party,
        description=request.description,
        image_url=request.image_url,
        position=request.position,
    )

    await election_service.log_election_action(
        conn,
        election_id,
        "candidate_added",
        UUID(current_user["id"]),
        {"candidate_id": candidate["id"], "name": request.name},
    )

    return success_response(data=candidate, message="Candidate added successfully")


@router.get("/{election_id}/candidates")
async def list_candidates(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(get_current_user)],
):
    """List the candidates of an election in ballot order."""
    await election_service.require_election(conn, election_id)
    candidates = await election_service.list_candidates(conn, election_id)
    return success_response(data=candidates)


@router.put("/{election_id}/candidates/{candidate_id}")
async def update_candidate(
    election_id: UUID,
    candidate_id: UUID,
    request: CandidateUpdate,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Update a candidate."""
    update_data = request.model_dump(exclude_unset=True)
    candidate = await election_service.update_candidate(
        conn, election_id, candidate_id, **update_data
    )

    await election_service.log_election_action(
        conn,
        election_id,
        "candidate_updated",
        UUID(current_user["id"]),
        {"candidate_id": str(candidate_id), "fields_updated": list(update_data.keys())},
    )

    return success_response(data=candidate, message="Candidate updated successfully")


@router.delete("/{election_id}/candidates/{candidate_id}")
async def delete_candidate(
    election_id: UUID,
    candidate_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Delete a candidate without votes."""
    await election_service.delete_candidate(conn, election_id, candidate_id)

    await election_service.log_election_action(
        conn,
        election_id,
        "candidate_deleted",
        UUID(current_user["id"]),
        {"candidate_id": str(candidate_id)},
    )

    return success_response(message="Candidate deleted successfully")


# ============================================
# COMMISSIONER ENDPOINTS
# ============================================


@router.post("/{election_id}/commissioners", status_code=status.HTTP_201_CREATED)
async def add_commissioner(
    election_id: UUID,
    request: CommissionerCreate,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """Assign a commissioner to an election."""
    commissioner = await approval_service.add_commissioner(
        conn, election_id, request.user_id
    )

    await election_service.log_election_action(
        conn,
        election_id,
        "commissioner_added",
        UUID(current_user["id"]),
        {"user_id": str(request.user_id)},
    )

    return success_response(
        data=commissioner, message="Commissioner added successfully"
    )


@router.get("/{election_id}/commissioners")
async def list_commissioners(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
):
    """List an election's commissioners and their approval state."""
    commissioners = await approval_service.list_commissioners(conn, election_id)
    return success_response(data=commissioners)


# ============================================
# AUDIT LOG
# ============================================


@router.get("/{election_id}/audit-log")
async def get_audit_log(
    election_id: UUID,
    conn: Annotated[asyncpg.Connection, Depends(get_db)],
    current_user: Annotated[dict, Depends(require_admin)],
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Get the audit trail of an election, newest first."""
    await election_service.require_election(conn, election_id)
    entries = await election_service.get_election_audit_log(
        conn, election_id, limit=limit, offset=offset
    )
    return success_response(data=entries)
