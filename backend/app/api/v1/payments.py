"""
Online premium payments through Razorpay and Stripe.

Checkout flow (both gateways): create an order / payment intent for a
premium's final amount, let the client complete it, then verify and
settle.  Webhooks settle the same premium server-side; settlement is
idempotent so a webhook arriving after /verify (or /confirm) is a no-op.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, scope_for
from app.api.schemas.common import ApiResponse, PageParams, paginated, success
from app.api.schemas.payments import (
    RazorpayOrderRequest,
    RazorpayVerifyRequest,
    StripeConfirmRequest,
    StripeIntentRequest,
)
from app.api.schemas.premiums import PremiumOut
from app.api.v1.premiums import load_scoped_premium, notify_payment
from app.core.constants import PaymentMethod, PremiumStatus, Resource
from app.core.errors import DomainRuleError
from app.core.logging import get_logger
from app.db.models.premium import Premium
from app.db.models.user import User
from app.repositories import premiums as premium_repository
from app.services.payment_gateways import (
    RazorpayClient,
    StripeClient,
    get_razorpay_client,
    get_stripe_client,
    to_minor_units,
    verify_razorpay_signature,
    verify_razorpay_webhook,
    verify_stripe_signature,
)
from app.services.premium_settlement import settle_premium

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ensure_payable(premium: Premium) -> None:
    if premium.status == PremiumStatus.PAID:
        raise DomainRuleError("Premium has already been paid")
    if premium.status == PremiumStatus.CANCELLED:
        raise DomainRuleError("Cannot pay cancelled premium")


def _ensure_same_premium(premium: Premium, gateway_notes: dict[str, Any] | None) -> None:
    """The order or intent must have been created for this premium."""
    if str((gateway_notes or {}).get("premium_id")) != str(premium.id):
        logger.warning("Gateway payment does not match premium", premium_id=premium.id)
        raise DomainRuleError("Payment does not match premium")


def _premium_brief(premium: Premium) -> dict[str, Any]:
    return {
        "id": premium.id,
        "amount": premium.final_amount,
        "due_date": premium.due_date,
        "policy_number": premium.policy.policy_number,
        "policy_type": premium.policy.policy_type,
    }


def _parse_json(body: bytes) -> dict[str, Any]:
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise DomainRuleError("Invalid webhook payload") from None


async def _settle_from_webhook(
    db: AsyncSession,
    premium_id: Any,
    *,
    method: PaymentMethod,
    transaction_id: str | None,
    reference: str | None,
) -> bool:
    """Settle a premium named by gateway metadata; False when unknown or already settled."""
    try:
        premium_id = int(premium_id)
    except (TypeError, ValueError):
        logger.warning("Webhook without premium reference", provider=method.value)
        return False

    premium = await premium_repository.get_premium(db, premium_id)
    if premium is None or not premium.is_payable:
        logger.info("Webhook ignored", provider=method.value, premium_id=premium_id)
        return False

    premium = await settle_premium(db, premium, method=method, transaction_id=transaction_id, reference=reference)
    notify_payment(db, premium)
    return True


# ─── Razorpay ─────────────────────────────────


@router.post("/razorpay/create-order", response_model=ApiResponse)
async def create_razorpay_order(
    payload: RazorpayOrderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    razorpay: RazorpayClient = Depends(get_razorpay_client),
) -> ApiResponse:
    premium = await load_scoped_premium(db, payload.premium_id, current_user)
    _ensure_payable(premium)

    order = await razorpay.create_order(
        amount=premium.final_amount,
        receipt=f"premium_{premium.id}",
        notes={
            "premium_id": str(premium.id),
            "user_id": str(premium.user_id),
            "policy_number": premium.policy.policy_number,
        },
    )
    logger.info("Razorpay order created", premium_id=premium.id, order_id=order.get("id"))
    return success(
        {
            "order_id": order["id"],
            "amount": order.get("amount", to_minor_units(premium.final_amount)),
            "currency": order.get("currency"),
            "premium": _premium_brief(premium),
        }
    )


@router.post("/razorpay/verify", response_model=ApiResponse)
async def verify_razorpay_payment(
    payload: RazorpayVerifyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    razorpay: RazorpayClient = Depends(get_razorpay_client),
) -> ApiResponse:
    if not verify_razorpay_signature(
        payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature
    ):
        logger.warning("Razorpay signature mismatch", premium_id=payload.premium_id, user_id=current_user.id)
        raise DomainRuleError("Payment verification failed")

    premium = await load_scoped_premium(db, payload.premium_id, current_user)
    order = await razorpay.fetch_order(payload.razorpay_order_id)
    _ensure_same_premium(premium, order.get("notes"))
    premium = await settle_premium(
        db,
        premium,
        method=PaymentMethod.RAZORPAY,
        transaction_id=payload.razorpay_payment_id,
        reference=payload.razorpay_order_id,
    )
    notify_payment(db, premium)
    return success(
        {"premium": PremiumOut.model_validate(premium), "payment_id": payload.razorpay_payment_id},
        "Payment processed successfully",
    )


@router.post("/razorpay/webhook", response_model=ApiResponse)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    body = await request.body()
    if not verify_razorpay_webhook(body, x_razorpay_signature):
        logger.warning("Razorpay webhook signature rejected")
        raise DomainRuleError("Invalid signature")

    event = _parse_json(body)
    event_type = event.get("event")
    settled = False
    if event_type == "payment.captured":
        payment = event.get("payload", {}).get("payment", {}).get("entity", {})
        order = event.get("payload", {}).get("order", {}).get("entity", {})
        notes = payment.get("notes") or order.get("notes") or {}
        settled = await _settle_from_webhook(
            db,
            notes.get("premium_id"),
            method=PaymentMethod.RAZORPAY,
            transaction_id=payment.get("id"),
            reference=payment.get("order_id"),
        )
        logger.info("Razorpay payment captured", payment_id=payment.get("id"), settled=settled)

    return success({"event": event_type, "settled": settled}, "Webhook processed")


# ─── Stripe ───────────────────────────────────


@router.post("/stripe/create-intent", response_model=ApiResponse)
async def create_stripe_intent(
    payload: StripeIntentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    stripe: StripeClient = Depends(get_stripe_client),
) -> ApiResponse:
    premium = await load_scoped_premium(db, payload.premium_id, current_user)
    _ensure_payable(premium)

    policy_number = premium.policy.policy_number
    intent = await stripe.create_payment_intent(
        amount=premium.final_amount,
        metadata={
            "premium_id": str(premium.id),
            "user_id": str(premium.user_id),
            "policy_number": policy_number,
        },
        description=f"Premium payment for policy {policy_number}",
        receipt_email=premium.holder.email,
    )
    logger.info("Stripe payment intent created", premium_id=premium.id, intent_id=intent.get("id"))
    return success(
        {
            "client_secret": intent.get("client_secret"),
            "payment_intent_id": intent["id"],
            "amount": premium.final_amount,
            "premium": _premium_brief(premium),
        }
    )


@router.post("/stripe/confirm", response_model=ApiResponse)
async def confirm_stripe_payment(
    payload: StripeConfirmRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    stripe: StripeClient = Depends(get_stripe_client),
) -> ApiResponse:
    intent = await stripe.retrieve_payment_intent(payload.payment_intent_id)
    if intent.get("status") != "succeeded":
        raise DomainRuleError("Payment not completed")

    premium = await load_scoped_premium(db, payload.premium_id, current_user)
    _ensure_same_premium(premium, intent.get("metadata"))
    premium = await settle_premium(
        db,
        premium,
        method=PaymentMethod.STRIPE,
        transaction_id=intent["id"],
        reference=intent.get("latest_charge") or intent["id"],
    )
    notify_payment(db, premium)
    return success(
        {"premium": PremiumOut.model_validate(premium), "payment_id": intent["id"]},
        "Payment processed successfully",
    )


@router.post("/stripe/webhook", response_model=ApiResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    body = await request.body()
    if not verify_stripe_signature(body, stripe_signature):
        logger.warning("Stripe webhook signature rejected")
        raise DomainRuleError("Invalid signature")

    event = _parse_json(body)
    event_type = event.get("type")
    settled = False
    if event_type == "payment_intent.succeeded":
        intent = event.get("data", {}).get("object", {})
        settled = await _settle_from_webhook(
            db,
            (intent.get("metadata") or {}).get("premium_id"),
            method=PaymentMethod.STRIPE,
            transaction_id=intent.get("id"),
            reference=intent.get("latest_charge") or intent.get("id"),
        )
        logger.info("Stripe payment succeeded", intent_id=intent.get("id"), settled=settled)

    return success({"event": event_type, "settled": settled}, "Webhook processed")


# ─── History ──────────────────────────────────


@router.get("/history", response_model=ApiResponse)
async def payment_history(
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """Paid premiums, most recent payment first."""
    payments, total, amount = await premium_repository.list_paid(
        db,
        scope_for(current_user, Resource.PAYMENT),
        offset=params.offset,
        limit=params.limit,
    )
    return paginated(
        "payments",
        [PremiumOut.model_validate(p) for p in payments],
        params,
        total,
        summary={"total_payments": total, "total_amount": amount},
    )
