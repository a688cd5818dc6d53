"""Results aggregation.

Tallies are recomputed from the ``votes`` table on every call. There is
no running counter anywhere, so a tally can never drift from the ledger.
"""

from uuid import UUID

import asyncpg

from evote.core.exceptions import ElectionNotFound, ResultsNotPublic
from evote.core.logging_config import election_logger
from evote.core.security import ROLE_ADMIN
from evote.services import elections as election_service
from evote.services import voting as voting_service


def percentage(part: int, total: int) -> float:
    """``part / total * 100`` rounded to two decimals, 0 when nothing to divide."""
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


def tally(candidates: list[dict], counts: dict[str, int]) -> dict:
    """Per-candidate counts and percentages.

    Every candidate appears, including those without votes, in ballot
    order. ``counts`` maps candidate id to number of votes.
    """
    total_votes = sum(counts.values())
    per_candidate = []
    for candidate in candidates:
        vote_count = counts.get(candidate["id"], 0)
        per_candidate.append(
            {
                "candidate_id": candidate["id"],
                "candidate_name": candidate["name"],
                "party": candidate.get("party"),
                "image_url": candidate.get("image_url"),
                "vote_count": vote_count,
                "percentage": percentage(vote_count, total_votes),
            }
        )
    return {"total_votes": total_votes, "per_candidate": per_candidate}


async def compute_results(conn: asyncpg.Connection, election_id: UUID) -> dict:
    """Compute the full results sheet of an election from the ledger.

    All reads share one snapshot so candidates and counts agree even while
    ballots are being cast.
    """
    async with conn.transaction(isolation="repeatable_read", readonly=True):
        election = await election_service.get_election_by_id(conn, election_id)
        if not election:
            raise ElectionNotFound(election_id=str(election_id))

        candidates = await election_service.list_candidates(conn, election_id)
        counts = await voting_service.count_votes_by_candidate(conn, election_id)

        total_eligible = await conn.fetchval(
            "SELECT COUNT(*) FROM eligible_voters WHERE election_id = $1", election_id
        )
        commissioners = await conn.fetch(
            """
            SELECT user_id, has_approved, approved_at
            FROM election_commissioners
            WHERE election_id = $1
            ORDER BY created_at ASC
            """,
            election_id,
        )

    sheet = tally(candidates, counts)

    return {
        "election_id": election["id"],
        "election_title": election["title"],
        "status": election["status"],
        "total_votes": sheet["total_votes"],
        "total_eligible_voters": total_eligible or 0,
        "turnout_percentage": percentage(sheet["total_votes"], total_eligible or 0),
        "per_candidate": sheet["per_candidate"],
        "is_published": election_service.is_published(election),
        "published_at": election["results_published_at"],
        "commissioners": [
            {
                "user_id": str(row["user_id"]),
                "has_approved": row["has_approved"],
                "approved_at": row["approved_at"],
            }
            for row in commissioners
        ],
    }


async def get_results_for_caller(
    conn: asyncpg.Connection,
    election_id: UUID,
    caller_id: UUID | None,
    caller_role: str | None,
) -> dict:
    """Results as visible to the caller.

    Admins and the election's commissioners see results at any time, since
    they must review them before approving. Everybody else only after
    publication.
    """
    election = await election_service.get_election_by_id(conn, election_id)
    if not election:
        raise ElectionNotFound(election_id=str(election_id))

    if not election_service.is_published(election) and caller_role != ROLE_ADMIN:
        is_commissioner = caller_id is not None and bool(
            await conn.fetchval(
                """
                SELECT 1 FROM election_commissioners
                WHERE user_id = $1 AND election_id = $2
                """,
                caller_id,
                election_id,
            )
        )
        if not is_commissioner:
            election_logger.log_unauthorized_access(
                f"results:{election_id}",
                user_id=str(caller_id) if caller_id else None,
                reason="results not public",
            )
            raise ResultsNotPublic()

    return await compute_results(conn, election_id)
