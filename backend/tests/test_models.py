"""Domain behaviour on the ORM models (no database needed)."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from dateutil.relativedelta import relativedelta

from app.core.errors import DomainRuleError
from app.db.models import Claim, Policy, Premium, User
from app.db.models.base import today


def _premium(**overrides) -> Premium:
    fields = {"policy_id": 1, "user_id": 1, "amount": 1000.0, "due_date": date(2024, 3, 1)}
    fields.update(overrides)
    return Premium(**fields)


def _policy(**overrides) -> Policy:
    fields = {
        "policy_number": "POL1",
        "user_id": 1,
        "policy_type": "life",
        "coverage_amount": 100000.0,
        "premium_amount": 500.0,
        "premium_frequency": "monthly",
        "start_date": date(2024, 1, 31),
        "end_date": date(2025, 1, 31),
    }
    fields.update(overrides)
    return Policy(**fields)


class TestPremium:
    def test_defaults_and_final_amount(self) -> None:
        premium = _premium(discount=50.0)
        assert premium.status == "pending"
        assert premium.late_fee == 0.0
        assert premium.final_amount == 950.0

    def test_mark_overdue_applies_two_percent_late_fee(self) -> None:
        premium = _premium()
        assert premium.mark_overdue(on=date(2024, 3, 2)) is True
        assert premium.status == "overdue"
        assert premium.late_fee == 20.0
        assert premium.final_amount == 1020.0

    def test_mark_overdue_ignores_due_date_itself(self) -> None:
        premium = _premium()
        assert premium.mark_overdue(on=date(2024, 3, 1)) is False
        assert premium.status == "pending"

    def test_mark_overdue_only_from_pending(self) -> None:
        premium = _premium(status="paid")
        assert premium.mark_overdue(on=date(2024, 4, 1)) is False
        assert premium.status == "paid"

    def test_process_payment(self) -> None:
        premium = _premium(status="overdue", late_fee=20.0)
        paid_at = datetime(2024, 3, 5, tzinfo=timezone.utc)
        premium.process_payment("upi", transaction_id="TX1", reference="REF1", paid_at=paid_at)
        assert premium.status == "paid"
        assert premium.paid_date == paid_at
        assert premium.payment_method == "upi"
        assert premium.transaction_id == "TX1"
        assert premium.payment_reference == "REF1"

    def test_cannot_pay_twice(self) -> None:
        premium = _premium()
        premium.process_payment("cash")
        with pytest.raises(DomainRuleError, match="already been paid"):
            premium.process_payment("cash")

    def test_cannot_pay_cancelled(self) -> None:
        premium = _premium(status="cancelled")
        with pytest.raises(DomainRuleError, match="cancelled premium"):
            premium.process_payment("cash")

    def test_days_overdue_zero_once_settled(self) -> None:
        premium = _premium(due_date=today() - timedelta(days=400), status="paid")
        assert premium.days_overdue == 0
        assert premium.is_payable is False


class TestPolicy:
    @pytest.mark.parametrize(
        "frequency,expected",
        [
            ("monthly", date(2024, 2, 29)),
            ("quarterly", date(2024, 4, 30)),
            ("semi-annual", date(2024, 7, 31)),
            ("annual", date(2025, 1, 31)),
        ],
    )
    def test_next_premium_from_start_date(self, frequency, expected) -> None:
        policy = _policy(premium_frequency=frequency)
        assert policy.calculate_next_premium_due() == expected

    def test_next_premium_from_last_payment(self) -> None:
        policy = _policy(last_premium_paid=date(2024, 5, 10))
        assert policy.calculate_next_premium_due() == date(2024, 6, 10)

    def test_schedule_clears_due_date_past_end(self) -> None:
        policy = _policy(premium_frequency="annual", last_premium_paid=date(2024, 6, 1))
        assert policy.schedule_next_premium() is None
        assert policy.next_premium_due is None

    def test_schedule_keeps_due_date_within_term(self) -> None:
        policy = _policy()
        assert policy.schedule_next_premium() == date(2024, 2, 29)

    def test_duration_rounds_up_to_whole_years(self) -> None:
        policy = _policy(start_date=date(2024, 1, 1), end_date=date(2026, 1, 2))
        assert policy.duration_years == 3


class TestClaim:
    def _claim(self, **overrides) -> Claim:
        fields = {
            "claim_number": "CLM1",
            "policy_id": 1,
            "user_id": 1,
            "claim_type": "medical",
            "claim_amount": 5000.0,
            "incident_date": date(2024, 2, 1),
            "description": "Hospital stay",
            "created_at": datetime(2024, 2, 2, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Claim(**fields)

    def test_defaults(self) -> None:
        claim = self._claim()
        assert claim.status == "submitted"
        assert claim.approved_amount == 0.0
        assert claim.estimated_processing_time == 15
        assert claim.documents == []

    def test_days_since_submission_rounds_up(self) -> None:
        claim = self._claim()
        now = datetime(2024, 2, 3, 1, 0, tzinfo=timezone.utc)
        assert claim.days_since_submission(now) == 2

    def test_overdue_after_processing_window(self) -> None:
        claim = self._claim()
        assert claim.is_overdue(datetime(2024, 2, 17, tzinfo=timezone.utc)) is False
        assert claim.is_overdue(datetime(2024, 2, 18, tzinfo=timezone.utc)) is True

    def test_decided_claims_are_never_overdue(self) -> None:
        claim = self._claim(status="rejected")
        assert claim.is_overdue(datetime(2025, 1, 1, tzinfo=timezone.utc)) is False

    def test_naive_created_at_treated_as_utc(self) -> None:
        claim = self._claim(created_at=datetime(2024, 2, 2))
        assert claim.days_since_submission(datetime(2024, 2, 4, tzinfo=timezone.utc)) == 2

    def test_approve_defaults_to_claimed_amount(self) -> None:
        claim = self._claim()
        claim.review(reviewer_id=9, approve=True, review_notes="ok")
        assert claim.status == "approved"
        assert claim.approved_amount == 5000.0
        assert claim.reviewed_by == 9
        assert claim.review_date is not None

    def test_approve_partial_amount(self) -> None:
        claim = self._claim(status="under-review")
        claim.review(reviewer_id=9, approve=True, approved_amount=3000.0)
        assert claim.approved_amount == 3000.0

    def test_approved_amount_capped(self) -> None:
        claim = self._claim()
        with pytest.raises(DomainRuleError, match="cannot exceed"):
            claim.review(reviewer_id=9, approve=True, approved_amount=6000.0)

    def test_reject_records_reason(self) -> None:
        claim = self._claim()
        claim.review(reviewer_id=9, approve=False, rejection_reason="Not covered")
        assert claim.status == "rejected"
        assert claim.rejection_reason == "Not covered"

    def test_review_is_terminal(self) -> None:
        claim = self._claim()
        claim.review(reviewer_id=9, approve=False)
        with pytest.raises(DomainRuleError, match="already been reviewed"):
            claim.review(reviewer_id=9, approve=True)

    def test_start_review_only_from_submitted(self) -> None:
        claim = self._claim()
        claim.start_review()
        assert claim.status == "under-review"
        with pytest.raises(DomainRuleError):
            claim.start_review()

    def test_pay_requires_approval(self) -> None:
        claim = self._claim()
        with pytest.raises(DomainRuleError, match="approved claims"):
            claim.pay("REF")
        claim.review(reviewer_id=9, approve=True)
        claim.pay("REF")
        assert claim.status == "paid"
        assert claim.payment_reference == "REF"
        assert claim.payment_date is not None


class TestUser:
    def test_full_name(self) -> None:
        assert User(first_name="Jane", last_name="Smith").full_name == "Jane Smith"

    def test_age_unknown_without_birth_date(self) -> None:
        assert User(first_name="A", last_name="B").age is None

    def test_age_counts_whole_years(self) -> None:
        born = today() - relativedelta(years=30) + timedelta(days=1)
        assert User(first_name="A", last_name="B", date_of_birth=born).age == 29

    def test_lock_window(self) -> None:
        now = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        user = User(first_name="A", last_name="B", lock_until=now + timedelta(minutes=5))
        assert user.is_locked(now) is True
        assert user.is_locked(now + timedelta(minutes=6)) is False
        assert User(first_name="A", last_name="B").is_locked(now) is False
