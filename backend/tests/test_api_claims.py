from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import bearer

from app.db.models.base import today


@pytest.fixture
def policy(holder, agent, make_policy):
    return make_policy(holder, agent=agent, coverage_amount=10000.0, start_date=today() - timedelta(days=60))


def _file(client, user: dict, policy_id: int, **overrides):
    payload = {
        "policy_id": policy_id,
        "claim_type": "medical",
        "claim_amount": 2500,
        "incident_date": (today() - timedelta(days=2)).isoformat(),
        "description": "  Emergency room visit  ",
        "documents": [{"name": "Invoice", "url": "https://files.example.com/1.pdf", "type": "receipt"}],
    }
    payload.update(overrides)
    return client.post("/api/v1/claims", json=payload, headers=bearer(user))


class TestFileClaim:
    def test_holder_files_claim(self, client, holder, policy, outbox) -> None:
        resp = _file(client, holder, policy["id"])
        assert resp.status_code == 201
        claim = resp.json()["data"]["claim"]
        assert claim["claim_number"].startswith("CLM")
        assert claim["status"] == "submitted"
        assert claim["description"] == "Emergency room visit"
        assert claim["estimated_processing_time"] == 15
        assert claim["days_since_submission"] <= 1
        assert claim["is_overdue"] is False
        assert claim["documents"][0]["type"] == "receipt"
        assert claim["policy"]["id"] == policy["id"]
        assert claim["claimant"]["id"] == holder["id"]
        assert outbox[-1]["template"] == "claim_submitted"

    def test_amount_over_coverage(self, client, holder, policy) -> None:
        resp = _file(client, holder, policy["id"], claim_amount=10000.01)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Claim amount exceeds policy coverage amount"

    def test_amount_equal_to_coverage_allowed(self, client, holder, policy, outbox) -> None:
        assert _file(client, holder, policy["id"], claim_amount=10000).status_code == 201

    def test_cannot_claim_on_someone_elses_policy(self, client, make_user, policy) -> None:
        stranger = make_user("user")
        assert _file(client, stranger, policy["id"]).status_code == 403

    def test_staff_files_on_behalf_of_holder(self, client, agent, holder, policy, outbox) -> None:
        resp = _file(client, agent, policy["id"])
        assert resp.status_code == 201
        assert resp.json()["data"]["claim"]["claimant"]["id"] == holder["id"]

    def test_inactive_policy(self, client, admin, holder, policy) -> None:
        client.patch(f"/api/v1/policies/{policy['id']}/cancel", headers=bearer(admin))
        resp = _file(client, holder, policy["id"])
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot create claim for inactive policy"

    def test_unknown_policy(self, client, holder) -> None:
        assert _file(client, holder, 9999).status_code == 404

    def test_incident_in_future(self, client, holder, policy) -> None:
        resp = _file(client, holder, policy["id"], incident_date=(today() + timedelta(days=1)).isoformat())
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["message"] == "Incident date cannot be in the future"

    def test_description_length(self, client, holder, policy) -> None:
        assert _file(client, holder, policy["id"], description="x" * 1001).status_code == 400


class TestClaimVisibility:
    def test_holder_sees_only_own_claims(self, client, holder, agent, make_user, make_policy, policy, outbox) -> None:
        other = make_user("user")
        other_policy = make_policy(other)
        mine = _file(client, holder, policy["id"]).json()["data"]["claim"]
        theirs = _file(client, other, other_policy["id"]).json()["data"]["claim"]

        listed = client.get("/api/v1/claims", headers=bearer(holder)).json()["data"]
        assert [c["id"] for c in listed["claims"]] == [mine["id"]]
        assert client.get(f"/api/v1/claims/{theirs['id']}", headers=bearer(holder)).status_code == 404

        # Agents review every claim
        assert client.get("/api/v1/claims", headers=bearer(agent)).json()["data"]["pagination"]["total"] == 2

    def test_statistics_staff_only(self, client, holder, agent, policy, outbox) -> None:
        _file(client, holder, policy["id"], claim_amount=1000)
        _file(client, holder, policy["id"], claim_amount=3000)

        assert client.get("/api/v1/claims/statistics", headers=bearer(holder)).status_code == 403
        stats = client.get("/api/v1/claims/statistics", headers=bearer(agent)).json()["data"]
        assert stats["total_claims"] == 2
        assert stats["overdue_claims"] == 0
        assert stats["by_status"] == [
            {"status": "submitted", "count": 2, "total_amount": 4000.0, "average_amount": 2000.0}
        ]


class TestReviewWorkflow:
    def test_approve_then_pay(self, client, admin, agent, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]

        started = client.patch(f"/api/v1/claims/{claim_id}/start-review", headers=bearer(agent))
        assert started.json()["data"]["claim"]["status"] == "under-review"

        resp = client.patch(
            f"/api/v1/claims/{claim_id}/review",
            json={"status": "approved", "approved_amount": 2000, "review_notes": "Partial"},
            headers=bearer(agent),
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Claim approved successfully"
        claim = resp.json()["data"]["claim"]
        assert claim["approved_amount"] == 2000.0
        assert claim["reviewer"]["id"] == agent["id"]
        assert outbox[-1]["template"] == "claim_approved"

        assert client.patch(f"/api/v1/claims/{claim_id}/pay", headers=bearer(agent)).status_code == 403
        paid = client.patch(
            f"/api/v1/claims/{claim_id}/pay", json={"payment_reference": "NEFT-1"}, headers=bearer(admin)
        )
        assert paid.status_code == 200
        assert paid.json()["data"]["claim"]["status"] == "paid"
        assert paid.json()["data"]["claim"]["payment_reference"] == "NEFT-1"

    def test_reject(self, client, agent, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]
        resp = client.patch(
            f"/api/v1/claims/{claim_id}/review",
            json={"status": "rejected", "rejection_reason": "Pre-existing condition"},
            headers=bearer(agent),
        )
        claim = resp.json()["data"]["claim"]
        assert claim["status"] == "rejected"
        assert claim["approved_amount"] == 0.0
        assert outbox[-1]["template"] == "claim_rejected"
        assert outbox[-1]["context"]["rejection_reason"] == "Pre-existing condition"

    def test_review_is_final(self, client, agent, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]
        client.patch(f"/api/v1/claims/{claim_id}/review", json={"status": "rejected"}, headers=bearer(agent))
        again = client.patch(f"/api/v1/claims/{claim_id}/review", json={"status": "approved"}, headers=bearer(agent))
        assert again.status_code == 400
        assert again.json()["message"] == "Claim has already been reviewed"

    def test_approved_amount_cannot_exceed_claim(self, client, agent, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]
        resp = client.patch(
            f"/api/v1/claims/{claim_id}/review",
            json={"status": "approved", "approved_amount": 2600},
            headers=bearer(agent),
        )
        assert resp.status_code == 400

    def test_review_status_must_be_decision(self, client, agent, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]
        resp = client.patch(f"/api/v1/claims/{claim_id}/review", json={"status": "paid"}, headers=bearer(agent))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Validation failed"

    def test_holder_cannot_review(self, client, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]
        resp = client.patch(f"/api/v1/claims/{claim_id}/review", json={"status": "approved"}, headers=bearer(holder))
        assert resp.status_code == 403

    def test_pay_requires_approval(self, client, admin, holder, policy, outbox) -> None:
        claim_id = _file(client, holder, policy["id"]).json()["data"]["claim"]["id"]
        resp = client.patch(f"/api/v1/claims/{claim_id}/pay", headers=bearer(admin))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Only approved claims can be marked as paid"
