"""
Policy — an insurance contract owned by one policyholder.

Optionally serviced by an agent.  Premiums are separate rows linked by
`policy_id`; they are created with the policy and cancelled with it but
are not embedded here.

Beneficiaries are stored as a JSON list of
`{"name", "relationship", "percentage"}` objects.
"""

from __future__ import annotations

import math
import time
from datetime import date, datetime
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.constants import FREQUENCY_MONTHS, PolicyStatus, PremiumFrequency
from app.db.models.base import Base, today, utcnow


def generate_policy_number(sequence: int) -> str:
    """POL<epoch millis><4-digit sequence>."""
    return f"POL{int(time.time() * 1000)}{sequence:04d}"


class Policy(Base):
    """Insurance contract with coverage and premium schedule."""

    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)

    # ── Parties ───────────────────────────────
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    agent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)

    # ── Terms ─────────────────────────────────
    policy_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    coverage_amount: Mapped[float] = mapped_column(Float, nullable=False)
    premium_amount: Mapped[float] = mapped_column(Float, nullable=False)
    premium_frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PremiumFrequency.MONTHLY.value
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PolicyStatus.ACTIVE.value, index=True
    )

    beneficiaries: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    documents: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # ── Premium roll-up ───────────────────────
    next_premium_due: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_premium_paid: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_premiums_paid: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Audit timestamps ──────────────────────
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # ── Relationships ─────────────────────────
    holder = relationship("User", foreign_keys=[user_id], lazy="selectin")
    agent = relationship("User", foreign_keys=[agent_id], lazy="selectin")

    def calculate_next_premium_due(self) -> date:
        """
        Next due date: one frequency period after the last payment
        (or the start date when nothing has been paid yet).

        Not clamped to end_date; see `schedule_next_premium`.
        """
        anchor = self.last_premium_paid or self.start_date
        frequency = PremiumFrequency(self.premium_frequency or PremiumFrequency.MONTHLY)
        return anchor + relativedelta(months=FREQUENCY_MONTHS[frequency])

    def schedule_next_premium(self) -> Optional[date]:
        """Store the next due date, or None once it would fall after end_date."""
        next_due = self.calculate_next_premium_due()
        self.next_premium_due = next_due if next_due <= self.end_date else None
        return self.next_premium_due

    @property
    def days_until_expiry(self) -> int:
        return (self.end_date - today()).days

    @property
    def duration_years(self) -> int:
        return math.ceil((self.end_date - self.start_date).days / 365)

    def __repr__(self) -> str:
        return f"<Policy {self.policy_number} type={self.policy_type} status={self.status}>"
