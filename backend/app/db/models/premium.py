"""
Premium — one scheduled installment against a policy.

Status machine:
    pending → paid | overdue | cancelled
    overdue → paid

`final_amount` = amount + late_fee - discount and is recomputed before
every INSERT/UPDATE.  `version_id` is SQLAlchemy's optimistic version
counter: two sessions paying the same premium cannot both commit.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.constants import LATE_FEE_RATE, PremiumStatus
from app.core.errors import DomainRuleError
from app.db.models.base import Base, today, utcnow


class Premium(Base):
    """A single premium installment owed by a policyholder."""

    __tablename__ = "premiums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    paid_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PremiumStatus.PENDING.value, index=True
    )

    # ── Payment details ───────────────────────
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Amounts ───────────────────────────────
    late_fee: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    discount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    final_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Reminders ─────────────────────────────
    reminders_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reminder_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    policy = relationship("Policy", lazy="selectin")
    holder = relationship("User", lazy="selectin")

    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs) -> None:
        kwargs.setdefault("status", PremiumStatus.PENDING.value)
        kwargs.setdefault("late_fee", 0.0)
        kwargs.setdefault("discount", 0.0)
        kwargs.setdefault("reminders_sent", 0)
        super().__init__(**kwargs)
        self.recalculate_final_amount()

    def recalculate_final_amount(self) -> float:
        self.final_amount = round(
            (self.amount or 0.0) + (self.late_fee or 0.0) - (self.discount or 0.0), 2
        )
        return self.final_amount

    def mark_overdue(self, on: date | None = None) -> bool:
        """
        Flag a pending premium whose due date has passed and apply the
        2% late fee.  Returns True when the transition happened.
        """
        if self.status != PremiumStatus.PENDING or (on or today()) <= self.due_date:
            return False
        self.status = PremiumStatus.OVERDUE.value
        self.late_fee = round(self.amount * LATE_FEE_RATE, 2)
        self.recalculate_final_amount()
        return True

    def process_payment(
        self,
        method: str,
        transaction_id: str | None = None,
        reference: str | None = None,
        paid_at: datetime | None = None,
    ) -> None:
        """Settle the premium.  final_amount is left as computed at save time."""
        if self.status == PremiumStatus.PAID:
            raise DomainRuleError("Premium has already been paid")
        if self.status == PremiumStatus.CANCELLED:
            raise DomainRuleError("Cannot pay cancelled premium")

        self.status = PremiumStatus.PAID.value
        self.paid_date = paid_at or utcnow()
        self.payment_method = str(method)
        self.transaction_id = transaction_id
        self.payment_reference = reference

    @property
    def is_payable(self) -> bool:
        return self.status in (PremiumStatus.PENDING, PremiumStatus.OVERDUE)

    @property
    def days_overdue(self) -> int:
        if self.status in (PremiumStatus.PAID, PremiumStatus.CANCELLED):
            return 0
        return max((today() - self.due_date).days, 0)

    def __repr__(self) -> str:
        return f"<Premium id={self.id} policy={self.policy_id} status={self.status} final={self.final_amount}>"


@event.listens_for(Premium, "before_insert")
@event.listens_for(Premium, "before_update")
def _recalculate_before_save(mapper, connection, target: Premium) -> None:
    target.recalculate_final_amount()
