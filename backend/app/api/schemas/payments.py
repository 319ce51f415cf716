"""Payment gateway request schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RazorpayOrderRequest(BaseModel):
    premium_id: int = Field(..., ge=1)


class RazorpayVerifyRequest(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)
    premium_id: int = Field(..., ge=1)


class StripeIntentRequest(BaseModel):
    premium_id: int = Field(..., ge=1)


class StripeConfirmRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    premium_id: int = Field(..., ge=1)
