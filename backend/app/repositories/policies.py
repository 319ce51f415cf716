"""
Policy repository.

Every read takes a `Scope` (see `app.core.permissions`) so callers only
ever see the rows their role allows.  Functions flush, never commit.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import PolicyStatus, PremiumStatus
from app.core.permissions import UNRESTRICTED, Scope
from app.db.models.base import today
from app.db.models.policy import Policy, generate_policy_number
from app.db.models.premium import Premium

# Relationships to load after an INSERT/UPDATE so responses never lazy-load
POLICY_RELATIONS = ["holder", "agent"]


async def next_sequence(db: AsyncSession) -> int:
    total = await db.scalar(select(func.count(Policy.id)))
    return (total or 0) + 1


async def create_policy_with_first_premium(
    db: AsyncSession,
    *,
    user_id: int,
    agent_id: int | None,
    policy_type: str,
    coverage_amount: float,
    premium_amount: float,
    premium_frequency: str,
    start_date: date,
    end_date: date,
    beneficiaries: list[dict[str, Any]],
    documents: list[dict[str, Any]],
    notes: str | None = None,
) -> tuple[Policy, Premium]:
    """
    Insert a policy, its first premium (due on start_date) and the policy's
    next_premium_due one frequency period later.  All three writes share the
    caller's transaction.
    """
    policy = Policy(
        policy_number=generate_policy_number(await next_sequence(db)),
        user_id=user_id,
        agent_id=agent_id,
        policy_type=str(policy_type),
        coverage_amount=coverage_amount,
        premium_amount=premium_amount,
        premium_frequency=str(premium_frequency),
        start_date=start_date,
        end_date=end_date,
        status=PolicyStatus.ACTIVE.value,
        beneficiaries=beneficiaries,
        documents=documents,
        total_premiums_paid=0.0,
        notes=notes,
    )
    db.add(policy)
    await db.flush()

    premium = Premium(
        policy_id=policy.id,
        user_id=user_id,
        amount=premium_amount,
        due_date=start_date,
    )
    db.add(premium)

    policy.schedule_next_premium()
    await db.flush()
    await db.refresh(policy, attribute_names=POLICY_RELATIONS)
    await db.refresh(premium, attribute_names=["policy", "holder"])
    return policy, premium


async def get_policy(db: AsyncSession, policy_id: int, scope: Scope = UNRESTRICTED) -> Policy | None:
    """Fetch one policy, or None when missing or outside `scope`."""
    stmt = scope.apply(select(Policy).where(Policy.id == policy_id), Policy)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_policies(
    db: AsyncSession,
    scope: Scope,
    *,
    policy_type: str | None = None,
    status: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Policy], int]:
    filters = []
    if policy_type:
        filters.append(Policy.policy_type == policy_type)
    if status:
        filters.append(Policy.status == status)

    stmt = scope.apply(select(Policy).where(*filters), Policy)
    rows = await db.execute(stmt.order_by(Policy.created_at.desc(), Policy.id.desc()).offset(offset).limit(limit))

    count_stmt = scope.apply(select(func.count(Policy.id)).where(*filters), Policy)
    total = await db.scalar(count_stmt)
    return list(rows.scalars().all()), total or 0


async def list_expiring(
    db: AsyncSession,
    scope: Scope,
    *,
    days: int = 30,
    on: date | None = None,
) -> list[Policy]:
    """Active policies whose end_date falls within the next `days` days, soonest first."""
    start = on or today()
    stmt = scope.apply(
        select(Policy).where(
            Policy.status == PolicyStatus.ACTIVE,
            Policy.end_date >= start,
            Policy.end_date <= start + timedelta(days=days),
        ),
        Policy,
    )
    result = await db.execute(stmt.order_by(Policy.end_date.asc()))
    return list(result.scalars().all())


async def update_policy(db: AsyncSession, policy: Policy, **fields: Any) -> Policy:
    allowed = {"coverage_amount", "premium_amount", "premium_frequency", "end_date", "beneficiaries", "notes"}
    for key, value in fields.items():
        if key in allowed and value is not None:
            setattr(policy, key, value)
    await db.flush()
    await db.refresh(policy, attribute_names=POLICY_RELATIONS)
    return policy


async def cancel_policy(db: AsyncSession, policy: Policy) -> int:
    """Cancel a policy and its pending premiums; returns the number of premiums cancelled."""
    policy.status = PolicyStatus.CANCELLED.value
    result = await db.execute(
        update(Premium)
        .where(Premium.policy_id == policy.id, Premium.status == PremiumStatus.PENDING)
        .values(status=PremiumStatus.CANCELLED.value, version_id=Premium.version_id + 1)
        .execution_options(synchronize_session="fetch")
    )
    await db.flush()
    await db.refresh(policy, attribute_names=POLICY_RELATIONS)
    return result.rowcount or 0


async def renew_policy(
    db: AsyncSession,
    policy: Policy,
    *,
    new_end_date: date,
    new_premium_amount: float | None = None,
) -> Policy:
    policy.end_date = new_end_date
    if new_premium_amount is not None:
        policy.premium_amount = new_premium_amount
    policy.status = PolicyStatus.ACTIVE.value
    await db.flush()
    await db.refresh(policy, attribute_names=POLICY_RELATIONS)
    return policy


async def recent_policies(db: AsyncSession, scope: Scope = UNRESTRICTED, limit: int = 5) -> list[Policy]:
    stmt = scope.apply(select(Policy), Policy).order_by(Policy.created_at.desc(), Policy.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_policies(db: AsyncSession, scope: Scope = UNRESTRICTED, *, status: str | None = None) -> int:
    stmt = select(func.count(Policy.id))
    if status:
        stmt = stmt.where(Policy.status == status)
    return await db.scalar(scope.apply(stmt, Policy)) or 0
