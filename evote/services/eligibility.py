"""Eligibility gate and eligible voter administration.

The gate is re-evaluated on every vote attempt. Nothing here is cached:
both the voting window and the allowlist can change between two requests.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import asyncpg

from evote.core.exceptions import (
    AlreadyVoted,
    ElectionNotActive,
    ElectionNotFound,
    InvalidCandidate,
    NotEligible,
)
from evote.services import elections as election_service

# Denial reasons, in the order the checks are applied
REASON_NOT_FOUND = "NOT_FOUND"
REASON_NOT_ACTIVE = "NOT_ACTIVE"
REASON_OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
REASON_NOT_ELIGIBLE = "NOT_ELIGIBLE"
REASON_INVALID_CANDIDATE = "INVALID_CANDIDATE"
REASON_ALREADY_VOTED = "ALREADY_VOTED"

DENIAL_MESSAGES = {
    REASON_NOT_FOUND: "Election not found",
    REASON_NOT_ACTIVE: "Election is not currently active",
    REASON_OUTSIDE_WINDOW: "Election is not open for voting at this time",
    REASON_NOT_ELIGIBLE: "You are not eligible to vote in this election",
    REASON_INVALID_CANDIDATE: "Invalid candidate for this election",
    REASON_ALREADY_VOTED: "You have already voted in this election",
}


@dataclass(frozen=True)
class EligibilityDecision:
    allowed: bool
    reason: str | None = None

    @property
    def message(self) -> str:
        if self.allowed:
            return "OK"
        return DENIAL_MESSAGES[self.reason]

    def to_dict(self) -> dict:
        if self.allowed:
            return {"allowed": True}
        return {"allowed": False, "reason": self.reason, "message": self.message}


ALLOWED = EligibilityDecision(allowed=True)


def deny(reason: str) -> EligibilityDecision:
    return EligibilityDecision(allowed=False, reason=reason)


def evaluate_eligibility(
    election: dict | None,
    now: datetime,
    is_eligible_voter: bool,
    has_voted: bool,
    candidate_ok: bool | None = None,
) -> EligibilityDecision:
    """Apply the vote checks in order and return the first failure.

    ``candidate_ok`` is None when no candidate was supplied (a plain
    eligibility query), in which case the candidate check is skipped.
    """
    if election is None:
        return deny(REASON_NOT_FOUND)
    if election["status"] != election_service.STATUS_ACTIVE:
        return deny(REASON_NOT_ACTIVE)
    if not election_service.is_within_window(election, now):
        return deny(REASON_OUTSIDE_WINDOW)
    if not is_eligible_voter:
        return deny(REASON_NOT_ELIGIBLE)
    if candidate_ok is False:
        return deny(REASON_INVALID_CANDIDATE)
    if has_voted:
        return deny(REASON_ALREADY_VOTED)
    return ALLOWED


def raise_for_denial(decision: EligibilityDecision) -> None:
    """Translate a denial into the matching domain error."""
    if decision.allowed:
        return

    reason = decision.reason
    if reason == REASON_NOT_FOUND:
        raise ElectionNotFound(decision.message)
    if reason in (REASON_NOT_ACTIVE, REASON_OUTSIDE_WINDOW):
        raise ElectionNotActive(decision.message, reason=reason)
    if reason == REASON_NOT_ELIGIBLE:
        raise NotEligible(decision.message)
    if reason == REASON_INVALID_CANDIDATE:
        raise InvalidCandidate(decision.message)
    if reason == REASON_ALREADY_VOTED:
        raise AlreadyVoted(decision.message)
    raise ValueError(f"Unknown denial reason: {reason}")


async def check_can_vote(
    conn: asyncpg.Connection,
    voter_id: UUID,
    election_id: UUID,
    candidate_id: UUID | None = None,
    now: datetime | None = None,
    lock_election: bool = False,
) -> EligibilityDecision:
    """Read current state and decide whether ``voter_id`` may vote now.

    With ``lock_election`` the election row is share-locked until the
    enclosing transaction ends, which blocks concurrent ballot edits and
    status changes (they take FOR UPDATE).
    """
    now = now or election_service.utcnow()

    query = "SELECT * FROM elections WHERE id = $1"
    if lock_election:
        query += " FOR SHARE"
    row = await conn.fetchrow(query, election_id)
    if row is None:
        return deny(REASON_NOT_FOUND)

    facts = await conn.fetchrow(
        """
        SELECT
            EXISTS (
                SELECT 1 FROM eligible_voters
                WHERE user_id = $1 AND election_id = $2
            ) AS is_eligible_voter,
            EXISTS (
                SELECT 1 FROM votes
                WHERE voter_id = $1 AND election_id = $2
            ) AS has_voted,
            EXISTS (
                SELECT 1 FROM candidates
                WHERE id = $3 AND election_id = $2
            ) AS candidate_ok
        """,
        voter_id,
        election_id,
        candidate_id,
    )

    return evaluate_eligibility(
        dict(row),
        now,
        is_eligible_voter=facts["is_eligible_voter"],
        has_voted=facts["has_voted"],
        candidate_ok=facts["candidate_ok"] if candidate_id is not None else None,
    )


# ============================================
# ELIGIBLE VOTER ADMINISTRATION
# ============================================


async def bulk_add_eligible_voters(
    conn: asyncpg.Connection,
    election_id: UUID,
    user_ids: list[UUID],
) -> dict:
    """Add users to an election's allowlist, skipping the ones already on it."""
    unique_ids = list(dict.fromkeys(user_ids))

    async with conn.transaction():
        election = await election_service.require_election(
            conn, election_id, for_update=True
        )
        election_service.ensure_structure_editable(
            election, await election_service.count_votes(conn, election_id)
        )

        rows = await conn.fetch(
            """
            INSERT INTO eligible_voters (user_id, election_id)
            SELECT user_id, $2 FROM unnest($1::uuid[]) AS user_id
            ON CONFLICT (user_id, election_id) DO NOTHING
            RETURNING user_id
            """,
            unique_ids,
            election_id,
        )

    added = {row["user_id"] for row in rows}
    existing = [str(user_id) for user_id in unique_ids if user_id not in added]
    return {
        "added": len(added),
        "already_exists": len(existing),
        "added_user_ids": [str(user_id) for user_id in unique_ids if user_id in added],
        "existing_user_ids": existing,
    }


async def replace_eligible_voters(
    conn: asyncpg.Connection,
    election_id: UUID,
    user_ids: list[UUID],
) -> dict:
    """Replace an election's whole allowlist in one transaction."""
    unique_ids = list(dict.fromkeys(user_ids))

    async with conn.transaction():
        election = await election_service.require_election(
            conn, election_id, for_update=True
        )
        election_service.ensure_structure_editable(
            election, await election_service.count_votes(conn, election_id)
        )

        await conn.execute(
            "DELETE FROM eligible_voters WHERE election_id = $1", election_id
        )
        await conn.execute(
            """
            INSERT INTO eligible_voters (user_id, election_id)
            SELECT user_id, $2 FROM unnest($1::uuid[]) AS user_id
            """,
            unique_ids,
            election_id,
        )

    return {
        "total": len(unique_ids),
        "eligible_user_ids": [str(user_id) for user_id in unique_ids],
    }


async def list_eligible_voters(conn: asyncpg.Connection, election_id: UUID) -> dict:
    """Allowlist of an election with each voter's voting status."""
    election = await election_service.require_election(conn, election_id)

    rows = await conn.fetch(
        """
        SELECT ev.id, ev.user_id, ev.created_at, (v.id IS NOT NULL) AS has_voted
        FROM eligible_voters ev
        LEFT JOIN votes v
          ON v.voter_id = ev.user_id AND v.election_id = ev.election_id
        WHERE ev.election_id = $1
        ORDER BY ev.created_at ASC
        """,
        election_id,
    )

    voters = [
        {
            "id": str(row["id"]),
            "user_id": str(row["user_id"]),
            "has_voted": row["has_voted"],
            "created_at": row["created_at"],
        }
        for row in rows
    ]
    voted = sum(1 for voter in voters if voter["has_voted"])

    return {
        "election": {
            "id": election["id"],
            "title": election["title"],
            "status": election["status"],
        },
        "eligible_voters": voters,
        "summary": {
            "total": len(voters),
            "voted": voted,
            "not_voted": len(voters) - voted,
        },
    }
