"""Claim request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.api.schemas.common import PolicySummary, UserSummary
from app.core.constants import ClaimDocumentType, ClaimStatus, ClaimType
from app.db.models.base import today


class ClaimDocument(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    type: ClaimDocumentType = ClaimDocumentType.OTHER
    uploaded_at: datetime | None = None


class ClaimCreate(BaseModel):
    policy_id: int = Field(..., ge=1)
    claim_type: ClaimType
    claim_amount: float = Field(..., gt=0)
    incident_date: date
    description: str = Field(..., min_length=1, max_length=1000)
    documents: list[ClaimDocument] = Field(default_factory=list)

    @field_validator("incident_date")
    @classmethod
    def not_in_future(cls, value: date) -> date:
        if value > today():
            raise ValueError("Incident date cannot be in the future")
        return value


class ClaimReview(BaseModel):
    status: Literal["approved", "rejected"]
    approved_amount: float | None = Field(None, ge=0)
    review_notes: str | None = Field(None, max_length=2000)
    rejection_reason: str | None = Field(None, max_length=2000)


class ClaimPay(BaseModel):
    payment_reference: str | None = Field(None, max_length=255)


class ClaimOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    claim_number: str
    policy_id: int
    user_id: int
    claim_type: ClaimType
    claim_amount: float
    approved_amount: float
    incident_date: date
    description: str
    status: ClaimStatus
    documents: list[dict[str, Any]]
    reviewed_by: int | None
    review_date: datetime | None
    review_notes: str | None
    rejection_reason: str | None
    payment_date: datetime | None
    payment_reference: str | None
    estimated_processing_time: int
    days_since_submission: int
    is_overdue: bool
    created_at: datetime
    updated_at: datetime
    policy: PolicySummary | None = None
    claimant: UserSummary | None = None
    reviewer: UserSummary | None = None

    # Both are methods on the model (they take an optional "now")
    @field_validator("days_since_submission", "is_overdue", mode="before")
    @classmethod
    def evaluate_now(cls, value: Any) -> Any:
        return value() if callable(value) else value
