"""Premium request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.api.schemas.common import PolicySummary
from app.core.constants import PremiumStatus

# Methods accepted on the manual pay endpoint; gateway methods are set by
# the payments router only.
ManualPaymentMethod = Literal["credit-card", "debit-card", "bank-transfer", "upi", "cash"]


class PremiumCreate(BaseModel):
    policy_id: int = Field(..., ge=1)
    amount: float = Field(..., gt=0)
    due_date: date
    discount: float = Field(0.0, ge=0)
    notes: str | None = Field(None, max_length=2000)


class PremiumPay(BaseModel):
    payment_method: ManualPaymentMethod
    transaction_id: str | None = Field(None, max_length=255)
    payment_reference: str | None = Field(None, max_length=255)


class PremiumOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    policy_id: int
    user_id: int
    amount: float
    due_date: date
    paid_date: datetime | None
    status: PremiumStatus
    payment_method: str | None
    transaction_id: str | None
    payment_reference: str | None
    late_fee: float
    discount: float
    final_amount: float
    notes: str | None
    reminders_sent: int
    last_reminder_date: datetime | None
    days_overdue: int
    created_at: datetime
    updated_at: datetime
    policy: PolicySummary | None = None
