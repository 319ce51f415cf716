"""
Claim — a request for payout against a policy's coverage.

Status machine:
    submitted → under-review → approved | rejected
    approved  → paid

Review is only accepted from submitted/under-review; payout only from
approved.  `is_overdue` is computed at read time from created_at and
estimated_processing_time, never persisted.
"""

from __future__ import annotations

import math
import time
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.constants import DEFAULT_CLAIM_PROCESSING_DAYS, REVIEWABLE_CLAIM_STATUSES, ClaimStatus
from app.core.errors import DomainRuleError
from app.db.models.base import Base, as_utc, utcnow

SECONDS_PER_DAY = 60 * 60 * 24


def generate_claim_number(sequence: int) -> str:
    """CLM<epoch millis><4-digit sequence>."""
    return f"CLM{int(time.time() * 1000)}{sequence:04d}"


class Claim(Base):
    """Payout request filed against a policy."""

    __tablename__ = "claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    claim_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    claim_amount: Mapped[float] = mapped_column(Float, nullable=False)
    approved_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    incident_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClaimStatus.SUBMITTED.value, index=True
    )
    documents: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # ── Review ────────────────────────────────
    reviewed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    review_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Payout ────────────────────────────────
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    estimated_processing_time: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_CLAIM_PROCESSING_DAYS, nullable=False
    )  # days

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    policy = relationship("Policy", lazy="selectin")
    claimant = relationship("User", foreign_keys=[user_id], lazy="selectin")
    reviewer = relationship("User", foreign_keys=[reviewed_by], lazy="selectin")

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("status", ClaimStatus.SUBMITTED.value)
        kwargs.setdefault("approved_amount", 0.0)
        kwargs.setdefault("estimated_processing_time", DEFAULT_CLAIM_PROCESSING_DAYS)
        kwargs.setdefault("documents", [])
        super().__init__(**kwargs)

    def days_since_submission(self, now: datetime | None = None) -> int:
        """Whole days (rounded up) since the claim was filed."""
        created = as_utc(self.created_at or utcnow())
        elapsed = ((now or utcnow()) - created).total_seconds()
        return math.ceil(elapsed / SECONDS_PER_DAY)

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.status not in REVIEWABLE_CLAIM_STATUSES:
            return False
        return self.days_since_submission(now) > self.estimated_processing_time

    def start_review(self) -> None:
        if self.status != ClaimStatus.SUBMITTED:
            raise DomainRuleError("Only submitted claims can be moved under review")
        self.status = ClaimStatus.UNDER_REVIEW.value

    def review(
        self,
        *,
        reviewer_id: int,
        approve: bool,
        approved_amount: float | None = None,
        review_notes: str | None = None,
        rejection_reason: str | None = None,
        reviewed_at: datetime | None = None,
    ) -> None:
        """Approve or reject; terminal once done."""
        if self.status not in REVIEWABLE_CLAIM_STATUSES:
            raise DomainRuleError("Claim has already been reviewed")
        if approve and approved_amount is not None and approved_amount > self.claim_amount:
            raise DomainRuleError("Approved amount cannot exceed claim amount")

        self.reviewed_by = reviewer_id
        self.review_date = reviewed_at or utcnow()
        self.review_notes = review_notes

        if approve:
            self.status = ClaimStatus.APPROVED.value
            self.approved_amount = approved_amount or self.claim_amount
        else:
            self.status = ClaimStatus.REJECTED.value
            self.rejection_reason = rejection_reason

    def pay(self, payment_reference: str | None = None, paid_at: datetime | None = None) -> None:
        if self.status != ClaimStatus.APPROVED:
            raise DomainRuleError("Only approved claims can be marked as paid")
        self.status = ClaimStatus.PAID.value
        self.payment_date = paid_at or utcnow()
        self.payment_reference = payment_reference

    def __repr__(self) -> str:
        return f"<Claim {self.claim_number} status={self.status} amount={self.claim_amount}>"
