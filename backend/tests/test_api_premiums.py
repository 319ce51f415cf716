from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from conftest import bearer
from dateutil.relativedelta import relativedelta

from app.core.errors import ConflictError
from app.db.models.base import today
from app.db.session import async_session
from app.repositories import premiums as premium_repository
from app.services.premium_settlement import settle_premium


def _pay(client, user: dict, premium_id: int, method: str = "upi", **extra):
    return client.patch(
        f"/api/v1/premiums/{premium_id}/pay", json={"payment_method": method, **extra}, headers=bearer(user)
    )


class TestPayPremium:
    def test_payment_rolls_up_into_policy(self, client, holder, make_policy, outbox) -> None:
        policy = make_policy(holder, premium_amount=500.0)
        resp = _pay(client, holder, policy["premium_id"], transaction_id="UPI-1", payment_reference="REF-1")
        assert resp.status_code == 200
        premium = resp.json()["data"]["premium"]
        assert premium["status"] == "paid"
        assert premium["payment_method"] == "upi"
        assert premium["transaction_id"] == "UPI-1"
        assert premium["paid_date"] is not None
        assert outbox[-1]["template"] == "payment_confirmation"
        assert outbox[-1]["context"]["amount"] == 500.0

        updated = client.get(f"/api/v1/policies/{policy['id']}", headers=bearer(holder)).json()["data"]["policy"]
        assert updated["total_premiums_paid"] == 500.0
        assert updated["last_premium_paid"] == today().isoformat()
        assert updated["next_premium_due"] == (today() + relativedelta(months=1)).isoformat()

    def test_cannot_pay_twice(self, client, holder, make_policy, outbox) -> None:
        policy = make_policy(holder)
        _pay(client, holder, policy["premium_id"])
        again = _pay(client, holder, policy["premium_id"])
        assert again.status_code == 400
        assert again.json()["message"] == "Premium has already been paid"

    def test_gateway_methods_not_accepted_manually(self, client, holder, make_policy) -> None:
        policy = make_policy(holder)
        resp = _pay(client, holder, policy["premium_id"], method="razorpay")
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "payment_method"

    def test_cannot_pay_someone_elses_premium(self, client, holder, make_user, make_policy) -> None:
        policy = make_policy(make_user("user"))
        assert _pay(client, holder, policy["premium_id"]).status_code == 404

    def test_overdue_payment_includes_late_fee(self, client, holder, make_policy, outbox) -> None:
        policy = make_policy(holder, premium_amount=1000.0, start_date=today() - timedelta(days=10))
        client.get("/api/v1/premiums/overdue", headers=bearer(holder))
        premium = _pay(client, holder, policy["premium_id"]).json()["data"]["premium"]
        assert premium["final_amount"] == 1020.0

        updated = client.get(f"/api/v1/policies/{policy['id']}", headers=bearer(holder)).json()["data"]["policy"]
        assert updated["total_premiums_paid"] == 1020.0


class TestPremiumQueries:
    def test_overdue_marks_and_reports(self, client, holder, make_policy) -> None:
        late = make_policy(holder, premium_amount=1000.0, start_date=today() - timedelta(days=10))
        make_policy(holder, premium_amount=300.0)

        resp = client.get("/api/v1/premiums/overdue", headers=bearer(holder))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["count"] == 1
        premium = data["premiums"][0]
        assert premium["id"] == late["premium_id"]
        assert premium["status"] == "overdue"
        assert premium["late_fee"] == 20.0
        assert premium["days_overdue"] == 10
        assert data["total_overdue_amount"] == 1020.0

    def test_upcoming(self, client, holder, make_policy) -> None:
        soon = make_policy(holder, premium_amount=200.0, start_date=today() + timedelta(days=5))
        make_policy(holder, start_date=today() + timedelta(days=60))

        data = client.get("/api/v1/premiums/upcoming", params={"days": 30}, headers=bearer(holder)).json()["data"]
        assert [p["id"] for p in data["premiums"]] == [soon["premium_id"]]
        assert data["total_amount"] == 200.0

    def test_list_filters(self, client, holder, make_policy) -> None:
        first = make_policy(holder)
        second = make_policy(holder)
        _pay(client, holder, first["premium_id"])

        paid = client.get("/api/v1/premiums", params={"status": "paid"}, headers=bearer(holder)).json()["data"]
        assert [p["id"] for p in paid["premiums"]] == [first["premium_id"]]

        by_policy = client.get(
            "/api/v1/premiums", params={"policy_id": second["id"]}, headers=bearer(holder)
        ).json()["data"]
        assert [p["id"] for p in by_policy["premiums"]] == [second["premium_id"]]

    def test_statistics(self, client, holder, make_policy) -> None:
        first = make_policy(holder, premium_amount=100.0)
        make_policy(holder, premium_amount=300.0)
        _pay(client, holder, first["premium_id"], method="cash")

        stats = client.get("/api/v1/premiums/statistics", headers=bearer(holder)).json()["data"]
        assert stats["total_premiums"] == 2
        assert stats["total_amount"] == 400.0
        by_status = {row["status"]: row for row in stats["by_status"]}
        assert by_status["paid"]["total_amount"] == 100.0
        assert by_status["pending"]["count"] == 1


class TestCreatePremium:
    def test_staff_adds_installment(self, client, agent, holder, make_policy) -> None:
        policy = make_policy(holder, agent=agent)
        due = (today() + timedelta(days=30)).isoformat()
        resp = client.post(
            "/api/v1/premiums",
            json={"policy_id": policy["id"], "amount": 500, "due_date": due, "discount": 25},
            headers=bearer(agent),
        )
        assert resp.status_code == 201
        premium = resp.json()["data"]["premium"]
        assert premium["user_id"] == holder["id"]
        assert premium["final_amount"] == 475.0
        assert premium["due_date"] == due

    def test_holder_cannot_add(self, client, holder, make_policy) -> None:
        policy = make_policy(holder)
        resp = client.post(
            "/api/v1/premiums",
            json={"policy_id": policy["id"], "amount": 500, "due_date": today().isoformat()},
            headers=bearer(holder),
        )
        assert resp.status_code == 403

    def test_cancelled_policy_rejected(self, client, admin, holder, make_policy) -> None:
        policy = make_policy(holder)
        client.patch(f"/api/v1/policies/{policy['id']}/cancel", headers=bearer(admin))
        resp = client.post(
            "/api/v1/premiums",
            json={"policy_id": policy["id"], "amount": 500, "due_date": today().isoformat()},
            headers=bearer(admin),
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cannot add premium to cancelled policy"


class TestConcurrentPayment:
    def test_stale_settlement_conflicts(self, client, holder, make_policy) -> None:
        policy = make_policy(holder, premium_amount=500.0)
        premium_id = policy["premium_id"]

        async def race() -> None:
            async with async_session() as first, async_session() as second:
                mine = await premium_repository.get_premium(first, premium_id)
                theirs = await premium_repository.get_premium(second, premium_id)

                await settle_premium(first, mine, method="cash")
                await first.commit()

                with pytest.raises(ConflictError) as excinfo:
                    await settle_premium(second, theirs, method="upi")
                assert excinfo.value.status_code == 409
                await second.rollback()

        asyncio.run(race())

        premium = client.get(f"/api/v1/premiums/{premium_id}", headers=bearer(holder)).json()["data"]["premium"]
        assert premium["payment_method"] == "cash"
        updated = client.get(f"/api/v1/policies/{policy['id']}", headers=bearer(holder)).json()["data"]["policy"]
        assert updated["total_premiums_paid"] == 500.0
