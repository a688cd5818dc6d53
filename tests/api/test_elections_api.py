"""API tests for the election administration endpoints."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from evote.core.exceptions import (
    AlreadyCommissioner,
    ElectionLocked,
    InvalidStatusTransition,
    ResultsAlreadyPublished,
)
from evote.services import approvals as approval_service
from evote.services import elections as election_service
from evote.services import eligibility as eligibility_service
from factories import election_row, utc


@pytest.fixture
def patched(monkeypatch):
    names = {
        election_service: [
            "create_election",
            "list_elections",
            "list_elections_for_user",
            "get_election_detail",
            "update_election",
            "change_status",
            "delete_election",
            "add_candidate",
            "delete_candidate",
            "log_election_action",
            "require_election",
            "get_election_audit_log",
        ],
        approval_service: [
            "add_commissioner",
            "list_commissioners",
            "list_commissioner_assignments",
        ],
        eligibility_service: [
            "bulk_add_eligible_voters",
            "replace_eligible_voters",
            "list_eligible_voters",
        ],
    }
    mocks = {}
    for module, functions in names.items():
        for name in functions:
            mocks[name] = AsyncMock()
            monkeypatch.setattr(module, name, mocks[name])
    return mocks


def election_payload(**overrides):
    payload = {
        "title": "Student Council 2026",
        "start_date": utc(60).isoformat(),
        "end_date": utc(600).isoformat(),
    }
    payload.update(overrides)
    return payload


class TestElectionCrud:
    def test_admin_creates_election(self, client, admin_user, patched):
        election = election_row(id=str(uuid4()))
        patched["create_election"].return_value = election

        response = client.post(
            "/elections", json=election_payload(), headers=admin_user["headers"]
        )

        assert response.status_code == 201
        assert response.json()["data"]["id"] == election["id"]
        kwargs = patched["create_election"].await_args.kwargs
        assert kwargs["created_by"] == admin_user["id"]
        assert kwargs["status"] == "active"
        patched["log_election_action"].assert_awaited_once()

    def test_user_cannot_create_election(self, client, voter_user, patched):
        response = client.post(
            "/elections", json=election_payload(), headers=voter_user["headers"]
        )

        assert response.status_code == 403
        patched["create_election"].assert_not_awaited()

    def test_terminal_initial_status_rejected(self, client, admin_user, patched):
        response = client.post(
            "/elections",
            json=election_payload(status="completed"),
            headers=admin_user["headers"],
        )
        assert response.status_code == 422

    @pytest.mark.parametrize("field", ["start_date", "end_date"])
    def test_dates_without_offset_rejected(self, client, admin_user, patched, field):
        response = client.post(
            "/elections",
            json=election_payload(**{field: "2030-01-01T12:00:00"}),
            headers=admin_user["headers"],
        )

        assert response.status_code == 422
        assert response.json()["errors"]["code"] == "VALIDATION_ERROR"
        patched["create_election"].assert_not_awaited()

    def test_admin_lists_all_with_pagination(self, client, admin_user, patched):
        patched["list_elections"].return_value = ([election_row()], 51)

        response = client.get(
            "/elections", params={"page": 2, "limit": 50}, headers=admin_user["headers"]
        )

        assert response.status_code == 200
        pagination = response.json()["data"]["pagination"]
        assert pagination["total"] == 51
        assert pagination["has_prev"] is True
        assert patched["list_elections"].await_args.kwargs["offset"] == 50

    def test_user_lists_own_elections(self, client, voter_user, patched):
        patched["list_elections_for_user"].return_value = []

        response = client.get("/elections", headers=voter_user["headers"])

        assert response.status_code == 200
        assert response.json()["data"] == []
        patched["list_elections"].assert_not_awaited()

    def test_structural_edit_after_votes(self, client, admin_user, patched):
        patched["update_election"].side_effect = ElectionLocked(vote_count=3)

        response = client.put(
            f"/elections/{uuid4()}",
            json={"end_date": utc(900).isoformat()},
            headers=admin_user["headers"],
        )

        assert response.status_code == 409
        assert response.json()["errors"] == {"code": "ELECTION_LOCKED", "vote_count": 3}

    def test_update_with_naive_end_date(self, client, admin_user, patched):
        response = client.put(
            f"/elections/{uuid4()}",
            json={"end_date": "2030-01-01T12:00:00"},
            headers=admin_user["headers"],
        )

        assert response.status_code == 422
        patched["update_election"].assert_not_awaited()

    def test_status_change(self, client, admin_user, patched):
        patched["change_status"].return_value = election_row(status="completed")

        response = client.patch(
            f"/elections/{uuid4()}/status",
            json={"status": "completed"},
            headers=admin_user["headers"],
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "completed"

    def test_illegal_status_change(self, client, admin_user, patched):
        patched["change_status"].side_effect = InvalidStatusTransition()

        response = client.patch(
            f"/elections/{uuid4()}/status",
            json={"status": "active"},
            headers=admin_user["headers"],
        )

        assert response.status_code == 400
        assert response.json()["errors"]["code"] == "INVALID_STATUS_TRANSITION"

    def test_delete_with_votes(self, client, admin_user, patched):
        patched["delete_election"].side_effect = ElectionLocked(vote_count=1)

        response = client.delete(f"/elections/{uuid4()}", headers=admin_user["headers"])
        assert response.status_code == 409


class TestCandidates:
    def test_add_candidate(self, client, admin_user, patched):
        candidate_id = str(uuid4())
        patched["add_candidate"].return_value = {"id": candidate_id, "name": "Alice"}

        response = client.post(
            f"/elections/{uuid4()}/candidates",
            json={"name": "Alice", "party": "Blue"},
            headers=admin_user["headers"],
        )

        assert response.status_code == 201
        assert response.json()["data"]["id"] == candidate_id
        assert patched["add_candidate"].await_args.kwargs["party"] == "Blue"

    def test_add_candidate_after_voting_started(self, client, admin_user, patched):
        patched["add_candidate"].side_effect = ElectionLocked()

        response = client.post(
            f"/elections/{uuid4()}/candidates",
            json={"name": "Late"},
            headers=admin_user["headers"],
        )
        assert response.status_code == 409

    def test_delete_candidate(self, client, admin_user, patched):
        response = client.delete(
            f"/elections/{uuid4()}/candidates/{uuid4()}",
            headers=admin_user["headers"],
        )

        assert response.status_code == 200
        patched["delete_candidate"].assert_awaited_once()


class TestCommissioners:
    def test_add_commissioner(self, client, admin_user, patched):
        user_id = uuid4()
        patched["add_commissioner"].return_value = {
            "user_id": str(user_id),
            "has_approved": False,
        }

        response = client.post(
            f"/elections/{uuid4()}/commissioners",
            json={"user_id": str(user_id)},
            headers=admin_user["headers"],
        )

        assert response.status_code == 201
        assert response.json()["data"]["has_approved"] is False
        assert patched["add_commissioner"].await_args.args[2] == user_id

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (AlreadyCommissioner(), "ALREADY_COMMISSIONER"),
            (ResultsAlreadyPublished(), "RESULTS_ALREADY_PUBLISHED"),
        ],
    )
    def test_add_commissioner_conflicts(self, client, admin_user, patched, error, code):
        patched["add_commissioner"].side_effect = error

        response = client.post(
            f"/elections/{uuid4()}/commissioners",
            json={"user_id": str(uuid4())},
            headers=admin_user["headers"],
        )

        assert response.status_code == 409
        assert response.json()["errors"]["code"] == code

    def test_my_assignments(self, client, voter_user, patched):
        patched["list_commissioner_assignments"].return_value = [
            {"id": str(uuid4()), "commissioner_status": {"has_approved": False}}
        ]

        response = client.get(
            "/elections/my-commissioner-assignments", headers=voter_user["headers"]
        )

        assert response.status_code == 200
        assert len(response.json()["data"]) == 1
        args = patched["list_commissioner_assignments"].await_args.args
        assert args[1] == voter_user["id"]


class TestEligibleVoters:
    def test_bulk_add(self, client, admin_user, patched):
        patched["bulk_add_eligible_voters"].return_value = {
            "added": 2,
            "already_exists": 1,
            "added_user_ids": [],
            "existing_user_ids": [],
        }
        user_ids = [str(uuid4()) for _ in range(3)]

        response = client.post(
            f"/eligible-voters/{uuid4()}",
            json={"user_ids": user_ids},
            headers=admin_user["headers"],
        )

        assert response.status_code == 200
        assert response.json()["data"]["added"] == 2

    def test_replace(self, client, admin_user, patched):
        patched["replace_eligible_voters"].return_value = {
            "total": 1,
            "eligible_user_ids": [],
        }

        response = client.put(
            f"/eligible-voters/{uuid4()}",
            json={"user_ids": [str(uuid4())]},
            headers=admin_user["headers"],
        )
        assert response.status_code == 200

    def test_list_requires_admin(self, client, voter_user, patched):
        response = client.get(
            f"/eligible-voters/{uuid4()}", headers=voter_user["headers"]
        )

        assert response.status_code == 403
        patched["list_eligible_voters"].assert_not_awaited()
