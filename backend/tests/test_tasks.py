"""Celery tasks, run eagerly against the test database."""
from __future__ import annotations

from datetime import timedelta

from conftest import run_in_session

from app.db.models.base import today
from app.repositories import premiums as premium_repository
from app.tasks import email_tasks
from app.tasks.premium_tasks import mark_overdue_premiums, send_premium_reminders


def _premium(premium_id: int):
    async def _load(session):
        return await premium_repository.get_premium(session, premium_id)

    return run_in_session(_load)


def test_send_templated_email_renders_and_sends(monkeypatch) -> None:
    sent = []
    monkeypatch.setattr(email_tasks, "send_email", lambda to, subject, html: sent.append((to, subject)) or True)

    result = email_tasks.send_templated_email.apply(args=("welcome", "john@example.com", {"first_name": "John"}))

    assert result.get() is True
    assert sent == [("john@example.com", "Welcome to MetLife")]


def test_mark_overdue_premiums(holder, make_policy, outbox) -> None:
    late = make_policy(holder, premium_amount=1000.0, start_date=today() - timedelta(days=3))
    current = make_policy(holder, premium_amount=1000.0, start_date=today())

    assert mark_overdue_premiums.apply().get() == 1

    overdue = _premium(late["premium_id"])
    assert overdue.status == "overdue"
    assert overdue.late_fee == 20.0
    assert overdue.final_amount == 1020.0
    assert _premium(current["premium_id"]).status == "pending"

    assert [mail["template"] for mail in outbox] == ["premium_overdue"]
    assert outbox[0]["to"] == holder["email"]
    assert outbox[0]["context"]["late_fee"] == 20.0

    # Already overdue: nothing left to mark
    assert mark_overdue_premiums.apply().get() == 0


def test_send_premium_reminders_once_per_day(holder, make_policy, outbox) -> None:
    soon = make_policy(holder, start_date=today() + timedelta(days=3))
    make_policy(holder, start_date=today() + timedelta(days=20))

    assert send_premium_reminders.apply(kwargs={"days": 7}).get() == 1
    reminded = _premium(soon["premium_id"])
    assert reminded.reminders_sent == 1
    assert reminded.last_reminder_date is not None
    assert outbox[0]["template"] == "premium_reminder"
    assert outbox[0]["context"]["policy_number"] == soon["policy_number"]

    assert send_premium_reminders.apply(kwargs={"days": 7}).get() == 0
