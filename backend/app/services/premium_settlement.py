"""
Premium settlement: mark a premium paid and roll the payment up into its
policy (last_premium_paid, total_premiums_paid, next_premium_due).

Both writes are flushed in the caller's session, so they commit or roll
back together.  The premium's version counter turns a concurrent second
payment into a `ConflictError` instead of a double roll-up.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import ConflictError
from app.core.logging import get_logger
from app.db.models.base import utcnow
from app.db.models.policy import Policy
from app.db.models.premium import Premium
from app.repositories.premiums import PREMIUM_RELATIONS

logger = get_logger(__name__)


async def settle_premium(
    db: AsyncSession,
    premium: Premium,
    *,
    method: str,
    transaction_id: str | None = None,
    reference: str | None = None,
) -> Premium:
    """
    Apply a payment to `premium` and update its policy.

    Raises DomainRuleError when the premium is already paid or cancelled,
    ConflictError when another transaction settled it first.
    """
    premium_id = premium.id
    paid_at = utcnow()
    premium.process_payment(method, transaction_id=transaction_id, reference=reference, paid_at=paid_at)

    policy = await db.get(Policy, premium.policy_id)
    if policy is not None:
        policy.last_premium_paid = paid_at.date()
        policy.total_premiums_paid = round((policy.total_premiums_paid or 0.0) + premium.final_amount, 2)
        policy.schedule_next_premium()

    try:
        await db.flush()
    except StaleDataError:
        logger.warning("Concurrent premium payment rejected", premium_id=premium_id)
        raise ConflictError("Premium was modified by another request; please retry") from None

    await db.refresh(premium, attribute_names=PREMIUM_RELATIONS)
    logger.info(
        "Premium settled",
        premium_id=premium.id,
        policy_id=premium.policy_id,
        method=method,
        amount=premium.final_amount,
    )
    return premium
