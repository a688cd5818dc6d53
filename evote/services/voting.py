"""Vote ledger service functions.

The ``votes`` table is append-only: there is no update or delete path.
At most one ballot per (voter, election) is guaranteed by the
``uq_votes_voter_election`` unique constraint, not by application checks.
"""

import hashlib
from datetime import datetime
from uuid import UUID

import asyncpg

from evote.core.config import settings
from evote.core.database import set_statement_timeout
from evote.core.exceptions import AlreadyVoted, ElectionError, InvalidCandidate
from evote.core.logging_config import election_logger
from evote.services import elections as election_service
from evote.services import eligibility as eligibility_service

VOTE_STATUS_CONFIRMED = "confirmed"


# ============================================
# VOTE CASTING
# ============================================


async def cast_vote(
    conn: asyncpg.Connection,
    voter_id: UUID,
    election_id: UUID,
    candidate_id: UUID,
    now: datetime | None = None,
) -> dict:
    """Record one ballot for ``voter_id`` in ``election_id``.

    The eligibility gate runs again inside the insert transaction with the
    election row share-locked. Concurrent duplicates that pass the gate are
    stopped by the unique constraint and reported as ``AlreadyVoted``.
    Retrying after an unknown outcome is safe for the same reason. The
    ``vote_cast`` audit row commits together with the ballot.
    """
    now = now or election_service.utcnow()

    try:
        try:
            async with conn.transaction():
                await set_statement_timeout(conn, settings.VOTE_STATEMENT_TIMEOUT_MS)

                decision = await eligibility_service.check_can_vote(
                    conn,
                    voter_id,
                    election_id,
                    candidate_id=candidate_id,
                    now=now,
                    lock_election=True,
                )
                eligibility_service.raise_for_denial(decision)

                row = await conn.fetchrow(
                    """
                    INSERT INTO votes (voter_id, election_id, candidate_id, status, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (voter_id, election_id) DO NOTHING
                    RETURNING *
                    """,
                    voter_id,
                    election_id,
                    candidate_id,
                    VOTE_STATUS_CONFIRMED,
                    now,
                )
                if row is None:
                    raise AlreadyVoted()

                await election_service.log_election_action(
                    conn, election_id, "vote_cast", voter_id
                )
        except asyncpg.UniqueViolationError as e:
            raise AlreadyVoted() from e
        except asyncpg.ForeignKeyViolationError as e:
            # Candidate removed between the gate and the insert
            raise InvalidCandidate() from e
    except ElectionError as e:
        election_logger.log_vote_rejected(str(election_id), str(voter_id), e.code)
        raise

    vote = _parse_vote_row(row)
    election_logger.log_vote_cast(str(election_id), str(voter_id), vote["id"])
    return vote


# ============================================
# LEDGER QUERIES
# ============================================


async def has_voted(conn: asyncpg.Connection, voter_id: UUID, election_id: UUID) -> bool:
    """Check if a voter has already voted."""
    result = await conn.fetchval(
        "SELECT 1 FROM votes WHERE voter_id = $1 AND election_id = $2",
        voter_id,
        election_id,
    )
    return result is not None


async def count_votes_by_candidate(
    conn: asyncpg.Connection, election_id: UUID
) -> dict[str, int]:
    """Scan the ledger of one election and group by candidate."""
    rows = await conn.fetch(
        """
        SELECT candidate_id, COUNT(*) AS vote_count
        FROM votes
        WHERE election_id = $1
        GROUP BY candidate_id
        """,
        election_id,
    )
    return {str(row["candidate_id"]): row["vote_count"] for row in rows}


# ============================================
# VOTE RECEIPT
# ============================================


def confirmation_code(vote_id: str, election_id: str) -> str:
    """Short, stable code a voter can quote when asking about their ballot."""
    digest = hashlib.sha256(f"{election_id}:{vote_id}".encode()).hexdigest()
    return digest[:12].upper()


async def generate_vote_receipt(
    conn: asyncpg.Connection, voter_id: UUID, election_id: UUID
) -> dict | None:
    """Generate a vote receipt for a voter."""
    row = await conn.fetchrow(
        """
        SELECT v.id, v.created_at, e.title AS election_title
        FROM votes v
        JOIN elections e ON e.id = v.election_id
        WHERE v.voter_id = $1 AND v.election_id = $2
        """,
        voter_id,
        election_id,
    )
    if not row:
        return None

    vote_id = str(row["id"])
    return {
        "vote_id": vote_id,
        "election_id": str(election_id),
        "election_title": row["election_title"],
        "voted_at": row["created_at"].isoformat(),
        "confirmation_code": confirmation_code(vote_id, str(election_id)),
    }


# ============================================
# HELPER FUNCTIONS
# ============================================


def _parse_vote_row(row: asyncpg.Record | None) -> dict | None:
    """Parse a vote row into a dict."""
    if not row:
        return None

    result = dict(row)

    # Convert UUID fields to strings for JSON serialization
    for field in ("id", "voter_id", "election_id", "candidate_id"):
        if result.get(field) is not None:
            result[field] = str(result[field])

    return result
