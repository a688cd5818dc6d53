"""Unit tests for commissioner approval and quorum derivation."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from evote.core.exceptions import (
    AlreadyApproved,
    AlreadyCommissioner,
    ElectionNotEnded,
    ElectionNotFound,
    NotCommissioner,
    ResultsAlreadyPublished,
)
from evote.services import approvals as approval_service
from evote.services.approvals import ApprovalOutcome, derive_quorum
from factories import FakeTransaction, election_row, utc


def assignments(*flags):
    return [{"has_approved": flag} for flag in flags]


class TestDeriveQuorum:
    def test_no_commissioners_is_never_approved(self):
        quorum = derive_quorum([])

        assert quorum.total == 0
        assert quorum.all_approved is False

    def test_partial_approval(self):
        quorum = derive_quorum(assignments(True, False, True))

        assert (quorum.total, quorum.approved, quorum.pending) == (3, 2, 1)
        assert quorum.all_approved is False

    def test_unanimous(self):
        assert derive_quorum(assignments(True, True)).all_approved is True

    def test_new_unapproved_commissioner_breaks_unanimity(self):
        before = derive_quorum(assignments(True, True))
        after = derive_quorum(assignments(True, True, False))

        assert before.all_approved is True
        assert after.all_approved is False

    def test_outcome_serialization(self):
        outcome = ApprovalOutcome(
            approved=True, all_approved=True, published=False, election={}
        )
        assert outcome.to_dict() == {
            "approved": True,
            "all_approved": True,
            "published": False,
        }


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.transaction = MagicMock(side_effect=lambda: FakeTransaction())
    conn.execute = AsyncMock()
    conn.fetchrow = AsyncMock()
    conn.fetch = AsyncMock()
    return conn


class TestApproveResults:
    election_id = uuid4()
    commissioner_id = uuid4()

    def ended_election(self, **overrides):
        return election_row(
            id=self.election_id, start_date=utc(-120), end_date=utc(-60), **overrides
        )

    def assignment(self, has_approved=False):
        return {
            "id": uuid4(),
            "user_id": self.commissioner_id,
            "election_id": self.election_id,
            "has_approved": has_approved,
            "approved_at": None,
        }

    async def test_missing_election(self, conn):
        conn.fetchrow.side_effect = [None]

        with pytest.raises(ElectionNotFound):
            await approval_service.approve_results(
                conn, self.election_id, self.commissioner_id
            )

    async def test_rejects_non_commissioner(self, conn):
        conn.fetchrow.side_effect = [self.ended_election(), None]

        with pytest.raises(NotCommissioner):
            await approval_service.approve_results(
                conn, self.election_id, self.commissioner_id
            )

    async def test_rejects_before_end(self, conn):
        election = election_row(id=self.election_id)
        conn.fetchrow.side_effect = [election, self.assignment()]

        with pytest.raises(ElectionNotEnded):
            await approval_service.approve_results(
                conn, self.election_id, self.commissioner_id
            )
        # Nothing was written
        assert conn.fetchrow.await_count == 2

    async def test_second_approval_is_rejected(self, conn):
        conn.fetchrow.side_effect = [
            self.ended_election(),
            self.assignment(has_approved=True),
            None,  # ratchet update matched no row
        ]

        with pytest.raises(AlreadyApproved):
            await approval_service.approve_results(
                conn, self.election_id, self.commissioner_id
            )
        conn.fetch.assert_not_awaited()

    async def test_partial_approval_does_not_publish(self, conn):
        conn.fetchrow.side_effect = [
            self.ended_election(),
            self.assignment(),
            {"id": uuid4()},
            None,  # audit entry
        ]
        conn.fetch.return_value = assignments(True, False)

        outcome = await approval_service.approve_results(
            conn, self.election_id, self.commissioner_id
        )

        assert outcome.to_dict() == {
            "approved": True,
            "all_approved": False,
            "published": False,
        }
        assert conn.fetchrow.await_count == 4

    async def test_last_approval_publishes(self, conn):
        now = utc()
        published_row = self.ended_election(
            is_result_public=True, results_published_at=now
        )
        conn.fetchrow.side_effect = [
            self.ended_election(),
            self.assignment(),
            {"id": uuid4()},
            published_row,
            None,  # audit: approved
            None,  # audit: published
        ]
        conn.fetch.return_value = assignments(True, True)

        outcome = await approval_service.approve_results(
            conn, self.election_id, self.commissioner_id, now=now
        )

        assert outcome.approved is True
        assert outcome.all_approved is True
        assert outcome.published is True
        assert outcome.election["is_result_public"] is True
        assert outcome.election["results_published_at"] == now

    async def test_already_public_is_not_published_again(self, conn):
        conn.fetchrow.side_effect = [
            self.ended_election(is_result_public=True, results_published_at=utc(-30)),
            self.assignment(),
            {"id": uuid4()},
            None,  # audit entry
        ]
        conn.fetch.return_value = assignments(True, True)

        outcome = await approval_service.approve_results(
            conn, self.election_id, self.commissioner_id
        )

        assert outcome.all_approved is True
        assert outcome.published is False

    async def test_statement_timeout_is_applied(self, conn):
        conn.fetchrow.side_effect = [None]

        with pytest.raises(ElectionNotFound):
            await approval_service.approve_results(
                conn, self.election_id, self.commissioner_id
            )
        statement = conn.execute.await_args.args[0]
        assert statement.startswith("SET LOCAL statement_timeout")


class TestAddCommissioner:
    async def test_rejects_after_publication(self, conn):
        conn.fetchrow.side_effect = [election_row(is_result_public=True)]

        with pytest.raises(ResultsAlreadyPublished):
            await approval_service.add_commissioner(conn, uuid4(), uuid4())

    async def test_rejects_duplicate(self, conn):
        conn.fetchrow.side_effect = [election_row(), None]

        with pytest.raises(AlreadyCommissioner):
            await approval_service.add_commissioner(conn, uuid4(), uuid4())

    async def test_new_assignment_starts_unapproved(self, conn):
        election_id, user_id = uuid4(), uuid4()
        conn.fetchrow.side_effect = [
            election_row(id=election_id),
            {
                "id": uuid4(),
                "user_id": user_id,
                "election_id": election_id,
                "has_approved": False,
                "approved_at": None,
            },
        ]

        commissioner = await approval_service.add_commissioner(
            conn, election_id, user_id
        )

        assert commissioner["user_id"] == str(user_id)
        assert commissioner["election_id"] == str(election_id)
        assert commissioner["has_approved"] is False
