"""Commissioner approval of election results.

Publication needs every assigned commissioner (N of N). Each approval is
a one-way flag on its own assignment row; whether the election is fully
approved is re-derived from all assignment rows on every approval rather
than kept in a counter.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import asyncpg

from evote.core.config import settings
from evote.core.database import set_statement_timeout
from evote.core.exceptions import (
    AlreadyApproved,
    AlreadyCommissioner,
    ElectionNotEnded,
    NotCommissioner,
    ResultsAlreadyPublished,
)
from evote.core.logging_config import election_logger, get_logger
from evote.services import elections as election_service

logger = get_logger(__name__)


@dataclass(frozen=True)
class QuorumState:
    total: int
    approved: int

    @property
    def pending(self) -> int:
        return self.total - self.approved

    @property
    def all_approved(self) -> bool:
        # An election without commissioners can never be approved
        return self.total > 0 and self.approved == self.total


@dataclass(frozen=True)
class ApprovalOutcome:
    approved: bool
    all_approved: bool
    published: bool
    election: dict

    def to_dict(self) -> dict:
        return {
            "approved": self.approved,
            "all_approved": self.all_approved,
            "published": self.published,
        }


def derive_quorum(assignments: list[dict] | list[asyncpg.Record]) -> QuorumState:
    """Unanimity over the full set of assignments."""
    approved = sum(1 for assignment in assignments if assignment["has_approved"])
    return QuorumState(total=len(assignments), approved=approved)


# ============================================
# COMMISSIONER ASSIGNMENTS
# ============================================


async def add_commissioner(
    conn: asyncpg.Connection, election_id: UUID, user_id: UUID
) -> dict:
    """Assign a commissioner. The new assignment starts unapproved."""
    async with conn.transaction():
        election = await election_service.require_election(
            conn, election_id, for_update=True
        )
        if election_service.is_published(election):
            raise ResultsAlreadyPublished()

        row = await conn.fetchrow(
            """
            INSERT INTO election_commissioners (user_id, election_id)
            VALUES ($1, $2)
            ON CONFLICT (user_id, election_id) DO NOTHING
            RETURNING *
            """,
            user_id,
            election_id,
        )
        if row is None:
            raise AlreadyCommissioner(user_id=str(user_id))

    logger.info(f"Commissioner {user_id} assigned to election {election_id}")
    return _parse_commissioner_row(row)


async def get_assignment(
    conn: asyncpg.Connection, election_id: UUID, user_id: UUID
) -> dict | None:
    row = await conn.fetchrow(
        """
        SELECT * FROM election_commissioners
        WHERE election_id = $1 AND user_id = $2
        """,
        election_id,
        user_id,
    )
    return _parse_commissioner_row(row)


async def is_commissioner(
    conn: asyncpg.Connection, election_id: UUID, user_id: UUID
) -> bool:
    return await get_assignment(conn, election_id, user_id) is not None


async def list_commissioners(conn: asyncpg.Connection, election_id: UUID) -> list[dict]:
    """All commissioners of an election with their approval state."""
    await election_service.require_election(conn, election_id)
    rows = await conn.fetch(
        """
        SELECT * FROM election_commissioners
        WHERE election_id = $1
        ORDER BY created_at ASC
        """,
        election_id,
    )
    return [_parse_commissioner_row(row) for row in rows]


async def list_commissioner_assignments(
    conn: asyncpg.Connection, user_id: UUID
) -> list[dict]:
    """Elections a user must review, each with the user's approval status."""
    rows = await conn.fetch(
        """
        SELECT e.*,
               ec.has_approved, ec.approved_at, ec.created_at AS assigned_at,
               (SELECT COUNT(*) FROM votes v WHERE v.election_id = e.id) AS vote_count,
               (SELECT COUNT(*) FROM election_commissioners o
                 WHERE o.election_id = e.id) AS commissioner_count
        FROM election_commissioners ec
        JOIN elections e ON e.id = ec.election_id
        WHERE ec.user_id = $1
        ORDER BY ec.created_at DESC
        """,
        user_id,
    )

    assignments = []
    for row in rows:
        election = dict(row)
        election["id"] = str(election["id"])
        election["created_by"] = str(election["created_by"])
        election["commissioner_status"] = {
            "has_approved": election.pop("has_approved"),
            "approved_at": election.pop("approved_at"),
            "assigned_at": election.pop("assigned_at"),
        }
        assignments.append(election)
    return assignments


# ============================================
# APPROVAL
# ============================================


async def approve_results(
    conn: asyncpg.Connection,
    election_id: UUID,
    commissioner_id: UUID,
    now: datetime | None = None,
) -> ApprovalOutcome:
    """Record a commissioner's approval and publish on unanimity.

    The election row is locked FOR UPDATE for the whole transaction, so
    approvals (and new assignments) of one election are serialized and the
    last approver always sees every earlier approval.
    """
    now = now or election_service.utcnow()

    async with conn.transaction():
        await set_statement_timeout(conn, settings.VOTE_STATEMENT_TIMEOUT_MS)

        election = await election_service.require_election(
            conn, election_id, for_update=True
        )

        assignment = await get_assignment(conn, election_id, commissioner_id)
        if assignment is None:
            raise NotCommissioner()

        if not election_service.has_ended(election, now):
            raise ElectionNotEnded(end_date=election["end_date"].isoformat())

        updated = await conn.fetchrow(
            """
            UPDATE election_commissioners
            SET has_approved = TRUE, approved_at = $3
            WHERE election_id = $1 AND user_id = $2 AND has_approved = FALSE
            RETURNING id
            """,
            election_id,
            commissioner_id,
            now,
        )
        if updated is None:
            raise AlreadyApproved()

        assignments = await conn.fetch(
            "SELECT has_approved FROM election_commissioners WHERE election_id = $1",
            election_id,
        )
        quorum = derive_quorum(assignments)

        published = False
        if quorum.all_approved and not election_service.is_published(election):
            row = await conn.fetchrow(
                """
                UPDATE elections
                SET is_result_public = TRUE,
                    results_published_at = $2,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND is_result_public = FALSE
                RETURNING *
                """,
                election_id,
                now,
            )
            if row is not None:
                published = True
                election = election_service._parse_election_row(row)

        await election_service.log_election_action(
            conn,
            election_id,
            "results_approved",
            commissioner_id,
            {"approved": quorum.approved, "total": quorum.total},
        )
        if published:
            await election_service.log_election_action(
                conn, election_id, "results_published", commissioner_id
            )

    election_logger.log_results_approved(
        str(election_id), str(commissioner_id), quorum.all_approved
    )
    if published:
        election_logger.log_results_published(str(election_id))

    return ApprovalOutcome(
        approved=True,
        all_approved=quorum.all_approved,
        published=published,
        election=election,
    )


async def quorum_status(conn: asyncpg.Connection, election_id: UUID) -> dict:
    """Current approval tally of an election."""
    election = await election_service.require_election(conn, election_id)
    assignments = await conn.fetch(
        "SELECT has_approved FROM election_commissioners WHERE election_id = $1",
        election_id,
    )
    quorum = derive_quorum(assignments)
    return {
        "total": quorum.total,
        "approved": quorum.approved,
        "pending": quorum.pending,
        "all_approved": quorum.all_approved,
        "is_published": election_service.is_published(election),
        "published_at": election["results_published_at"],
    }


def _parse_commissioner_row(row: asyncpg.Record | None) -> dict | None:
    """Parse a commissioner assignment row into a dict."""
    if not row:
        return None

    result = dict(row)
    for field in ("id", "user_id", "election_id"):
        if result.get(field) is not None:
            result[field] = str(result[field])
    return result
