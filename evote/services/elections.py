"""Election lifecycle service functions.

Status is one of draft, active, completed, cancelled. "Ended" and
"published" are not statuses: they are evaluated on every read from
``end_date`` and ``is_result_public``.
"""

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import asyncpg

from evote.core.exceptions import (
    CandidateNotFound,
    ElectionLocked,
    ElectionNotFound,
    InvalidStatusTransition,
    ValidationFailed,
)
from evote.core.logging_config import get_logger

logger = get_logger(__name__)

STATUS_DRAFT = "draft"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

ELECTION_STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_COMPLETED, STATUS_CANCELLED)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})
EDITABLE_STATUSES = frozenset({STATUS_DRAFT, STATUS_ACTIVE})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_DRAFT: frozenset({STATUS_ACTIVE, STATUS_CANCELLED}),
    STATUS_ACTIVE: frozenset({STATUS_COMPLETED, STATUS_CANCELLED}),
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================
# DERIVED PREDICATES
# ============================================


def is_within_window(election: dict, now: datetime) -> bool:
    """True while ``start_date <= now < end_date``."""
    return election["start_date"] <= now < election["end_date"]


def has_ended(election: dict, now: datetime) -> bool:
    return now >= election["end_date"]


def is_published(election: dict) -> bool:
    return bool(election["is_result_public"])


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_aware(**dates: datetime) -> None:
    """Window bounds are stored as timestamptz, so naive values are refused."""
    naive = sorted(name for name, value in dates.items() if value.tzinfo is None)
    if naive:
        raise ValidationFailed("Dates must include a timezone offset", fields=naive)


def ensure_structure_editable(election: dict, vote_count: int) -> None:
    """Refuse ballot changes once the election is terminal or has votes."""
    if election["status"] not in EDITABLE_STATUSES:
        raise ElectionLocked(
            f"Cannot modify a {election['status']} election",
            status=election["status"],
        )
    if vote_count > 0:
        raise ElectionLocked(
            "Cannot modify the ballot of an election that already has votes",
            vote_count=vote_count,
        )


# ============================================
# ELECTION CRUD OPERATIONS
# ============================================


async def create_election(
    conn: asyncpg.Connection,
    title: str,
    start_date: datetime,
    end_date: datetime,
    created_by: UUID,
    description: str | None = None,
    status: str = STATUS_ACTIVE,
) -> dict | None:
    """Create a new election in draft or active status."""
    if status not in (STATUS_DRAFT, STATUS_ACTIVE):
        raise ValidationFailed(
            "New elections must start as draft or active", status=status
        )
    ensure_aware(start_date=start_date, end_date=end_date)
    if end_date <= start_date:
        raise ValidationFailed("End date must be after start date")

    result = await conn.fetchrow(
        """
        INSERT INTO elections (title, description, start_date, end_date, status, created_by)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING *
        """,
        title,
        description,
        start_date,
        end_date,
        status,
        created_by,
    )
    return _parse_election_row(result)


async def get_election_by_id(
    conn: asyncpg.Connection, election_id: UUID, for_update: bool = False
) -> dict | None:
    """Get election by ID, optionally locking its row for the current transaction."""
    query = "SELECT * FROM elections WHERE id = $1"
    if for_update:
        query += " FOR UPDATE"
    result = await conn.fetchrow(query, election_id)
    return _parse_election_row(result)


async def require_election(
    conn: asyncpg.Connection, election_id: UUID, for_update: bool = False
) -> dict:
    election = await get_election_by_id(conn, election_id, for_update=for_update)
    if not election:
        raise ElectionNotFound(election_id=str(election_id))
    return election


async def get_election_detail(
    conn: asyncpg.Connection, election_id: UUID, user_id: UUID | None = None
) -> dict:
    """Election with candidates, commissioners, vote count and the caller's voting status."""
    election = await require_election(conn, election_id)
    election["candidates"] = await list_candidates(conn, election_id)

    commissioners = await conn.fetch(
        """
        SELECT user_id, has_approved, approved_at, created_at
        FROM election_commissioners
        WHERE election_id = $1
        ORDER BY created_at ASC
        """,
        election_id,
    )
    election["commissioners"] = [_parse_row(row, ("user_id",)) for row in commissioners]
    election["vote_count"] = await count_votes(conn, election_id)

    has_voted = False
    if user_id:
        has_voted = bool(
            await conn.fetchval(
                "SELECT 1 FROM votes WHERE voter_id = $1 AND election_id = $2",
                user_id,
                election_id,
            )
        )
    election["has_voted"] = has_voted
    return election


async def list_elections(
    conn: asyncpg.Connection,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """List elections with counts. Returns (elections, total)."""
    where = ""
    params: list[Any] = []

    if status:
        params.append(status)
        where = f"WHERE e.status = ${len(params)}"

    total = await conn.fetchval(f"SELECT COUNT(*) FROM elections e {where}", *params)

    params.append(limit)
    limit_idx = len(params)
    params.append(offset)
    offset_idx = len(params)

    results = await conn.fetch(
        f"""
        SELECT e.*,
               (SELECT COUNT(*) FROM votes v WHERE v.election_id = e.id) AS vote_count,
               (SELECT COUNT(*) FROM candidates c WHERE c.election_id = e.id) AS candidate_count,
               (SELECT COUNT(*) FROM election_commissioners ec
                 WHERE ec.election_id = e.id) AS commissioner_count
        FROM elections e
        {where}
        ORDER BY e.created_at DESC
        LIMIT ${limit_idx} OFFSET ${offset_idx}
        """,
        *params,
    )
    return [_parse_election_row(row) for row in results], total or 0


async def list_elections_for_user(
    conn: asyncpg.Connection, user_id: UUID
) -> list[dict]:
    """List only the elections a user is an eligible voter in."""
    results = await conn.fetch(
        """
        SELECT e.*,
               EXISTS (
                   SELECT 1 FROM votes v
                   WHERE v.election_id = e.id AND v.voter_id = $1
               ) AS has_voted
        FROM elections e
        JOIN eligible_voters ev ON ev.election_id = e.id
        WHERE ev.user_id = $1
        ORDER BY e.created_at DESC
        """,
        user_id,
    )
    return [_parse_election_row(row) for row in results]


async def update_election(
    conn: asyncpg.Connection,
    election_id: UUID,
    **kwargs: Any,
) -> dict:
    """Update election details.

    Title and description can change until the election is terminal. The
    voting window is part of the ballot and is frozen once votes exist.
    """
    descriptive_fields = {"title", "description"}
    structural_fields = {"start_date", "end_date"}

    fields = {
        field: value
        for field, value in kwargs.items()
        if field in descriptive_fields | structural_fields and value is not None
    }
    ensure_aware(**{f: fields[f] for f in structural_fields & fields.keys()})

    async with conn.transaction():
        election = await require_election(conn, election_id, for_update=True)

        if is_terminal(election["status"]):
            raise ElectionLocked(
                f"Cannot update a {election['status']} election",
                status=election["status"],
            )

        if structural_fields & fields.keys():
            ensure_structure_editable(election, await count_votes(conn, election_id))
            approvals = await conn.fetchval(
                """
                SELECT COUNT(*) FROM election_commissioners
                WHERE election_id = $1 AND has_approved = TRUE
                """,
                election_id,
            )
            if approvals or is_published(election):
                raise ElectionLocked(
                    "Cannot move the voting window after results were approved",
                    approvals=approvals or 0,
                )
            start_date = fields.get("start_date", election["start_date"])
            end_date = fields.get("end_date", election["end_date"])
            if end_date <= start_date:
                raise ValidationFailed("End date must be after start date")

        if not fields:
            return election

        updates: list[str] = []
        params: list[Any] = []
        for field, value in fields.items():
            params.append(value)
            updates.append(f"{field} = ${len(params)}")

        updates.append("updated_at = CURRENT_TIMESTAMP")
        params.append(election_id)

        result = await conn.fetchrow(
            f"""
            UPDATE elections
            SET {", ".join(updates)}
            WHERE id = ${len(params)}
            RETURNING *
            """,
            *params,
        )
    return _parse_election_row(result)


async def change_status(
    conn: asyncpg.Connection, election_id: UUID, new_status: str
) -> dict:
    """Move an election along draft -> active -> completed, or to cancelled."""
    if new_status not in ELECTION_STATUSES:
        raise ValidationFailed(f"Unknown election status: {new_status}")

    async with conn.transaction():
        election = await require_election(conn, election_id, for_update=True)
        current = election["status"]
        if not can_transition(current, new_status):
            raise InvalidStatusTransition(
                f"Cannot change election status from {current} to {new_status}",
                current_status=current,
                requested_status=new_status,
            )

        result = await conn.fetchrow(
            """
            UPDATE elections
            SET status = $1, updated_at = CURRENT_TIMESTAMP
            WHERE id = $2
            RETURNING *
            """,
            new_status,
            election_id,
        )
    logger.info(f"Election {election_id} status changed: {current} -> {new_status}")
    return _parse_election_row(result)


async def delete_election(conn: asyncpg.Connection, election_id: UUID) -> None:
    """Delete an election that has no recorded votes."""
    async with conn.transaction():
        await require_election(conn, election_id, for_update=True)
        vote_count = await count_votes(conn, election_id)
        if vote_count > 0:
            raise ElectionLocked(
                "Cannot delete election with existing votes", vote_count=vote_count
            )
        await conn.execute("DELETE FROM elections WHERE id = $1", election_id)
    logger.info(f"Election deleted: {election_id}")


async def count_votes(conn: asyncpg.Connection, election_id: UUID) -> int:
    result = await conn.fetchval(
        "SELECT COUNT(*) FROM votes WHERE election_id = $1", election_id
    )
    return result or 0


# ============================================
# CANDIDATE OPERATIONS
# ============================================


async def add_candidate(
    conn: asyncpg.Connection,
    election_id: UUID,
    name: str,
    party: str | None = None,
    description: str | None = None,
    image_url: str | None = None,
    position: int | None = None,
) -> dict | None:
    """Add a candidate while the ballot is still editable."""
    async with conn.transaction():
        election = await require_election(conn, election_id, for_update=True)
        ensure_structure_editable(election, await count_votes(conn, election_id))

        if position is None:
            max_position = await conn.fetchval(
                "SELECT COALESCE(MAX(position), -1) FROM candidates WHERE election_id = $1",
                election_id,
            )
            position = max_position + 1

        result = await conn.fetchrow(
            """
            INSERT INTO candidates (election_id, name, party, description, image_url, position)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            election_id,
            name,
            party,
            description,
            image_url,
            position,
        )
    return _parse_candidate_row(result)


async def get_candidate_by_id(
    conn: asyncpg.Connection, candidate_id: UUID, election_id: UUID | None = None
) -> dict | None:
    """Get candidate by ID, optionally scoped to one election."""
    if election_id:
        result = await conn.fetchrow(
            "SELECT * FROM candidates WHERE id = $1 AND election_id = $2",
            candidate_id,
            election_id,
        )
    else:
        result = await conn.fetchrow(
            "SELECT * FROM candidates WHERE id = $1", candidate_id
        )
    return _parse_candidate_row(result)


async def list_candidates(conn: asyncpg.Connection, election_id: UUID) -> list[dict]:
    """List all candidates for an election in ballot order."""
    results = await conn.fetch(
        """
        SELECT * FROM candidates
        WHERE election_id = $1
        ORDER BY position ASC, created_at ASC
        """,
        election_id,
    )
    return [_parse_candidate_row(row) for row in results]


async def update_candidate(
    conn: asyncpg.Connection,
    election_id: UUID,
    candidate_id: UUID,
    **kwargs: Any,
) -> dict | None:
    """Update a candidate while the ballot is still editable."""
    allowed_fields = {"name", "party", "description", "image_url", "position"}

    async with conn.transaction():
        election = await require_election(conn, election_id, for_update=True)
        candidate = await get_candidate_by_id(conn, candidate_id, election_id)
        if not candidate:
            raise CandidateNotFound(candidate_id=str(candidate_id))
        ensure_structure_editable(election, await count_votes(conn, election_id))

        updates: list[str] = []
        params: list[Any] = []
        for field, value in kwargs.items():
            if field in allowed_fields and value is not None:
                params.append(value)
                updates.append(f"{field} = ${len(params)}")

        if not updates:
            return candidate

        updates.append("updated_at = CURRENT_TIMESTAMP")
        params.append(candidate_id)

        result = await conn.fetchrow(
            f"""
            UPDATE candidates
            SET {", ".join(updates)}
            WHERE id = ${len(params)}
            RETURNING *
            """,
            *params,
        )
    return _parse_candidate_row(result)


async def delete_candidate(
    conn: asyncpg.Connection, election_id: UUID, candidate_id: UUID
) -> None:
    """Delete a candidate that has not received any vote."""
    async with conn.transaction():
        election = await require_election(conn, election_id, for_update=True)
        candidate = await get_candidate_by_id(conn, candidate_id, election_id)
        if not candidate:
            raise CandidateNotFound(candidate_id=str(candidate_id))

        candidate_votes = await conn.fetchval(
            "SELECT COUNT(*) FROM votes WHERE candidate_id = $1", candidate_id
        )
        if candidate_votes:
            raise ElectionLocked(
                "Cannot delete candidate with existing votes",
                vote_count=candidate_votes,
            )
        ensure_structure_editable(election, await count_votes(conn, election_id))

        await conn.execute("DELETE FROM candidates WHERE id = $1", candidate_id)


# ============================================
# AUDIT LOGGING
# ============================================


async def log_election_action(
    conn: asyncpg.Connection,
    election_id: UUID,
    action: str,
    actor_id: UUID | None = None,
    details: dict | None = None,
) -> dict | None:
    """Log an election action for audit trail."""
    result = await conn.fetchrow(
        """
        INSERT INTO election_audit_log (election_id, action, actor_id, details)
        VALUES ($1, $2, $3, $4)
        RETURNING *
        """,
        election_id,
        action,
        actor_id,
        json.dumps(details, default=str) if details else None,
    )
    return _parse_audit_row(result)


async def get_election_audit_log(
    conn: asyncpg.Connection,
    election_id: UUID,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    """Get audit log for an election, newest first."""
    results = await conn.fetch(
        """
        SELECT * FROM election_audit_log
        WHERE election_id = $1
        ORDER BY created_at DESC
        LIMIT $2 OFFSET $3
        """,
        election_id,
        limit,
        offset,
    )
    return [_parse_audit_row(row) for row in results]


# ============================================
# HELPER FUNCTIONS
# ============================================


def _parse_row(row: asyncpg.Record | None, uuid_fields: tuple[str, ...]) -> dict | None:
    """Convert a record to a dict with UUID fields as strings."""
    if not row:
        return None

    result = dict(row)
    for field in uuid_fields:
        if result.get(field) is not None:
            result[field] = str(result[field])
    return result


def _parse_election_row(row: asyncpg.Record | None) -> dict | None:
    """Parse an election row into a dict."""
    return _parse_row(row, ("id", "created_by"))


def _parse_candidate_row(row: asyncpg.Record | None) -> dict | None:
    """Parse a candidate row into a dict."""
    return _parse_row(row, ("id", "election_id"))


def _parse_audit_row(row: asyncpg.Record | None) -> dict | None:
    """Parse an audit log row into a dict with proper JSON parsing."""
    result = _parse_row(row, ("id", "election_id", "actor_id"))
    if result and isinstance(result.get("details"), str):
        result["details"] = json.loads(result["details"])
    return result
