"""Helpers to build tokens, elections and ballots in tests."""

import importlib.util
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import asyncpg

from evote.core.security import ROLE_USER, create_access_token
from evote.services import elections as election_service

MIGRATION_FILE = (
    Path(__file__).resolve().parent.parent
    / "alembic"
    / "versions"
    / "a7c1e2f3d4b5_create_election_core.py"
)


def load_schema_sql() -> str:
    """DDL of the initial migration, applied to a throwaway schema."""
    spec = importlib.util.spec_from_file_location("election_core_migration", MIGRATION_FILE)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module.SCHEMA_SQL


def make_token(user_id: UUID | str, role: str = ROLE_USER) -> str:
    return create_access_token({"sub": str(user_id), "role": role})


def bearer(user_id: UUID | str, role: str = ROLE_USER) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


def utc(minutes: int = 0) -> datetime:
    """Now shifted by ``minutes``."""
    return datetime.now(UTC) + timedelta(minutes=minutes)


def election_row(**overrides: Any) -> dict[str, Any]:
    """An election as returned by the services, open for voting now."""
    row = {
        "id": uuid4(),
        "title": "Student Council 2026",
        "description": None,
        "start_date": utc(-60),
        "end_date": utc(60),
        "status": "active",
        "is_result_public": False,
        "results_published_at": None,
        "created_by": uuid4(),
        "created_at": utc(-120),
        "updated_at": utc(-120),
    }
    row.update(overrides)
    return row


async def create_open_election(
    conn: asyncpg.Connection,
    candidate_names: tuple[str, ...] = ("Alice", "Bob"),
    voters: int = 0,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, Any]:
    """Active election open for voting now, with candidates and eligible voters."""
    election = await election_service.create_election(
        conn,
        title=f"Election {uuid4().hex[:8]}",
        start_date=start or utc(-60),
        end_date=end or utc(60),
        created_by=uuid4(),
    )
    election_id = UUID(election["id"])

    candidates = []
    for name in candidate_names:
        candidates.append(
            await election_service.add_candidate(conn, election_id, name=name)
        )

    voter_ids = [uuid4() for _ in range(voters)]
    if voter_ids:
        await conn.execute(
            """
            INSERT INTO eligible_voters (user_id, election_id)
            SELECT user_id, $2 FROM unnest($1::uuid[]) AS user_id
            """,
            voter_ids,
            election_id,
        )

    return {
        "election": election,
        "election_id": election_id,
        "candidates": candidates,
        "candidate_ids": [UUID(c["id"]) for c in candidates],
        "voter_ids": voter_ids,
    }


class FakeTransaction:
    """Async context manager standing in for ``conn.transaction()``."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class RecordingTransaction(FakeTransaction):
    """``conn.transaction()`` stand-in that appends begin/commit/rollback to ``events``."""

    def __init__(self, events: list[str], **options: Any):
        self.events = events
        self.options = options

    async def __aenter__(self):
        self.events.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.events.append("commit" if exc_type is None else "rollback")
        return False
