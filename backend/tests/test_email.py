from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from app.core.config import settings
from app.db.session import async_session
from app.services import email as email_service
from app.services.email import (
    TEMPLATES,
    UnknownTemplateError,
    dispatch_after_commit,
    render_template,
    send_email,
)

SAMPLE_CONTEXT = {
    "first_name": "John",
    "reset_token": "abc123",
    "policy_number": "POL17000000000001",
    "policy_type": "life",
    "coverage_amount": 500000,
    "premium_amount": 250,
    "start_date": "2024-01-01",
    "end_date": "2044-01-01",
    "claim_number": "CLM17000000000001",
    "claim_type": "medical",
    "claim_amount": 3500,
    "incident_date": "2024-02-01",
    "status": "submitted",
    "approved_amount": 3000,
    "rejection_reason": "Not covered",
    "review_date": "2024-02-10",
    "final_amount": 255,
    "late_fee": 5,
    "due_date": "2024-03-01",
    "amount": 255,
    "payment_method": "upi",
    "transaction_id": "TX1",
    "paid_date": "2024-03-02",
}


@pytest.mark.parametrize("template", sorted(TEMPLATES))
def test_every_template_renders(template) -> None:
    rendered = render_template(template, SAMPLE_CONTEXT)
    assert rendered.subject
    assert "Dear John" in rendered.html


def test_policy_created_details() -> None:
    rendered = render_template("policy_created", SAMPLE_CONTEXT)
    assert rendered.subject == "New Policy Created - POL17000000000001"
    assert "500,000.00" in rendered.html


def test_context_values_are_escaped() -> None:
    rendered = render_template("welcome", {"first_name": "<script>"})
    assert "<script>" not in rendered.html
    assert "&lt;script&gt;" in rendered.html


def test_unknown_template() -> None:
    with pytest.raises(UnknownTemplateError):
        render_template("birthday", {})


def test_send_email_disabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "EMAIL_ENABLED", False)
    assert send_email("john@example.com", "Hi", "<p>Hi</p>") is False


def test_send_email_over_smtp(monkeypatch) -> None:
    sent = {}

    class FakeSMTP:
        def __init__(self, host, port, timeout):
            sent["server"] = (host, port)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            sent["tls"] = True

        def login(self, user, password):
            sent["login"] = user

        def sendmail(self, sender, recipients, message):
            sent["recipients"] = recipients
            sent["message"] = message

    monkeypatch.setattr(settings, "EMAIL_ENABLED", True)
    monkeypatch.setattr(settings, "EMAIL_USER", "mailer")
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)

    assert send_email("john@example.com", "Payment Received", "<p>Thanks</p>") is True
    assert sent["server"] == (settings.EMAIL_HOST, settings.EMAIL_PORT)
    assert sent["tls"] is True
    assert sent["login"] == "mailer"
    assert sent["recipients"] == ["john@example.com"]
    assert "Subject: Payment Received" in sent["message"]


def test_dispatch_swallows_queue_errors(monkeypatch) -> None:
    from app.tasks import email_tasks

    def broken_delay(*args, **kwargs):
        raise ConnectionError("broker down")

    monkeypatch.setattr(email_tasks, "send_templated_email", type("Task", (), {"delay": staticmethod(broken_delay)}))
    email_service.dispatch_email("welcome", "john@example.com", {"first_name": "John"})


class TestDispatchAfterCommit:
    @pytest.fixture
    def queued(self, monkeypatch) -> list[tuple]:
        sent: list[tuple] = []
        monkeypatch.setattr(email_service, "dispatch_email", lambda *args: sent.append(args))
        return sent

    def test_sent_once_transaction_commits(self, database, queued) -> None:
        async def run() -> None:
            async with async_session() as db:
                dispatch_after_commit(db, "welcome", "john@example.com", {"first_name": "John"})
                dispatch_after_commit(db, "welcome", "jane@example.com", {"first_name": "Jane"})
                assert queued == []
                await db.commit()
                # A later commit on the same session has nothing left to send
                await db.commit()

        asyncio.run(run())
        assert [to for _, to, _ in queued] == ["john@example.com", "jane@example.com"]

    def test_dropped_when_transaction_rolls_back(self, database, queued) -> None:
        async def run() -> None:
            async with async_session() as db:
                await db.execute(select(1))
                dispatch_after_commit(db, "welcome", "john@example.com", {"first_name": "John"})
                await db.rollback()
                await db.commit()

        asyncio.run(run())
        assert queued == []
