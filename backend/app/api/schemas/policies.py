"""Policy request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.api.schemas.common import UserSummary
from app.core.constants import PolicyStatus, PolicyType, PremiumFrequency

BENEFICIARY_TOTAL = 100.0
BENEFICIARY_TOLERANCE = 0.01


class Beneficiary(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    relationship: str = Field(..., min_length=1, max_length=50)
    percentage: float = Field(..., gt=0, le=100)


class PolicyDocument(BaseModel):
    name: str
    url: str
    uploaded_at: datetime | None = None


def _check_beneficiaries(beneficiaries: list[Beneficiary] | None) -> list[Beneficiary] | None:
    """A non-empty beneficiary list must split exactly 100%."""
    if not beneficiaries:
        return beneficiaries
    total = sum(b.percentage for b in beneficiaries)
    if abs(total - BENEFICIARY_TOTAL) > BENEFICIARY_TOLERANCE:
        raise ValueError(f"Beneficiary percentages must total 100 (got {total:g})")
    return beneficiaries


class PolicyCreate(BaseModel):
    user_id: int = Field(..., ge=1)
    agent_id: int | None = Field(None, ge=1)
    policy_type: PolicyType
    coverage_amount: float = Field(..., ge=1000)
    premium_amount: float = Field(..., ge=1)
    premium_frequency: PremiumFrequency = PremiumFrequency.MONTHLY
    start_date: date
    end_date: date
    beneficiaries: list[Beneficiary] = Field(default_factory=list)
    documents: list[PolicyDocument] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=2000)

    @field_validator("beneficiaries")
    @classmethod
    def beneficiaries_total(cls, value):
        return _check_beneficiaries(value)

    @model_validator(mode="after")
    def end_after_start(self) -> "PolicyCreate":
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class PolicyUpdate(BaseModel):
    coverage_amount: float | None = Field(None, ge=1000)
    premium_amount: float | None = Field(None, ge=1)
    premium_frequency: PremiumFrequency | None = None
    end_date: date | None = None
    beneficiaries: list[Beneficiary] | None = None
    notes: str | None = Field(None, max_length=2000)

    @field_validator("beneficiaries")
    @classmethod
    def beneficiaries_total(cls, value):
        return _check_beneficiaries(value)


class PolicyRenew(BaseModel):
    new_end_date: date
    new_premium_amount: float | None = Field(None, ge=1)


class PolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    policy_number: str
    user_id: int
    agent_id: int | None
    policy_type: PolicyType
    coverage_amount: float
    premium_amount: float
    premium_frequency: PremiumFrequency
    start_date: date
    end_date: date
    status: PolicyStatus
    beneficiaries: list[dict[str, Any]]
    documents: list[dict[str, Any]]
    next_premium_due: date | None
    last_premium_paid: date | None
    total_premiums_paid: float
    notes: str | None
    days_until_expiry: int
    duration_years: int
    created_at: datetime
    updated_at: datetime
    holder: UserSummary | None = None
    agent: UserSummary | None = None
