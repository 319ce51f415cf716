"""Premium repository: scoped reads, creation, overdue sweeps and statistics."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import PAYABLE_PREMIUM_STATUSES, PremiumStatus
from app.core.permissions import UNRESTRICTED, Scope
from app.db.models.base import today
from app.db.models.premium import Premium

PREMIUM_RELATIONS = ["policy", "holder"]


async def create_premium(
    db: AsyncSession,
    *,
    policy_id: int,
    user_id: int,
    amount: float,
    due_date: date,
    discount: float = 0.0,
    notes: str | None = None,
) -> Premium:
    premium = Premium(
        policy_id=policy_id,
        user_id=user_id,
        amount=amount,
        due_date=due_date,
        discount=discount,
        notes=notes,
    )
    db.add(premium)
    await db.flush()
    await db.refresh(premium, attribute_names=PREMIUM_RELATIONS)
    return premium


async def get_premium(db: AsyncSession, premium_id: int, scope: Scope = UNRESTRICTED) -> Premium | None:
    stmt = scope.apply(select(Premium).where(Premium.id == premium_id), Premium)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_premiums(
    db: AsyncSession,
    scope: Scope,
    *,
    status: str | None = None,
    policy_id: int | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Premium], int]:
    filters = []
    if status:
        filters.append(Premium.status == status)
    if policy_id:
        filters.append(Premium.policy_id == policy_id)

    stmt = scope.apply(select(Premium).where(*filters), Premium)
    rows = await db.execute(stmt.order_by(Premium.due_date.desc(), Premium.id.desc()).offset(offset).limit(limit))
    total = await db.scalar(scope.apply(select(func.count(Premium.id)).where(*filters), Premium))
    return list(rows.scalars().all()), total or 0


async def list_past_due(db: AsyncSession, scope: Scope = UNRESTRICTED, *, on: date | None = None) -> list[Premium]:
    """Pending or overdue premiums whose due date has passed, oldest first."""
    stmt = scope.apply(
        select(Premium).where(
            Premium.status.in_([s.value for s in PAYABLE_PREMIUM_STATUSES]),
            Premium.due_date < (on or today()),
        ),
        Premium,
    )
    result = await db.execute(stmt.order_by(Premium.due_date.asc(), Premium.id.asc()))
    return list(result.scalars().all())


async def mark_past_due_overdue(db: AsyncSession, premiums: list[Premium], *, on: date | None = None) -> int:
    """Apply `mark_overdue` to each loaded premium; returns how many transitioned."""
    changed = sum(1 for premium in premiums if premium.mark_overdue(on))
    if changed:
        await db.flush()
    return changed


async def list_upcoming(
    db: AsyncSession,
    scope: Scope = UNRESTRICTED,
    *,
    days: int = 30,
    on: date | None = None,
    limit: int | None = None,
) -> list[Premium]:
    """Pending premiums falling due between `on` and `on + days`, soonest first."""
    start = on or today()
    stmt = scope.apply(
        select(Premium).where(
            Premium.status == PremiumStatus.PENDING,
            Premium.due_date >= start,
            Premium.due_date <= start + timedelta(days=days),
        ),
        Premium,
    ).order_by(Premium.due_date.asc(), Premium.id.asc())
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_paid(
    db: AsyncSession,
    scope: Scope,
    *,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Premium], int, float]:
    """Paid premiums newest-paid first, plus (total count, total amount)."""
    base = [Premium.status == PremiumStatus.PAID]
    stmt = scope.apply(select(Premium).where(*base), Premium)
    rows = await db.execute(stmt.order_by(Premium.paid_date.desc(), Premium.id.desc()).offset(offset).limit(limit))

    summary = await db.execute(
        scope.apply(
            select(func.count(Premium.id), func.coalesce(func.sum(Premium.final_amount), 0.0)).where(*base),
            Premium,
        )
    )
    count, amount = summary.one()
    return list(rows.scalars().all()), count or 0, round(float(amount or 0.0), 2)


async def statistics(db: AsyncSession, scope: Scope = UNRESTRICTED) -> dict[str, Any]:
    """Totals plus per-status count and amount."""
    stmt = scope.apply(
        select(
            Premium.status,
            func.count(Premium.id),
            func.coalesce(func.sum(Premium.final_amount), 0.0),
        ).group_by(Premium.status),
        Premium,
    )
    result = await db.execute(stmt)

    by_status = []
    total_count = 0
    total_amount = 0.0
    for status, count, amount in result.all():
        by_status.append({"status": status, "count": count, "total_amount": round(float(amount), 2)})
        total_count += count
        total_amount += float(amount)

    return {
        "total_premiums": total_count,
        "total_amount": round(total_amount, 2),
        "by_status": by_status,
    }


async def sum_amount(
    db: AsyncSession,
    scope: Scope = UNRESTRICTED,
    *,
    statuses: list[str],
    paid_since: datetime | None = None,
) -> float:
    stmt = select(func.coalesce(func.sum(Premium.final_amount), 0.0)).where(Premium.status.in_(statuses))
    if paid_since is not None:
        stmt = stmt.where(Premium.paid_date >= paid_since)
    return round(float(await db.scalar(scope.apply(stmt, Premium)) or 0.0), 2)


async def count_premiums(db: AsyncSession, scope: Scope = UNRESTRICTED, *, status: str | None = None) -> int:
    stmt = select(func.count(Premium.id))
    if status:
        stmt = stmt.where(Premium.status == status)
    return await db.scalar(scope.apply(stmt, Premium)) or 0


async def list_due_for_reminder(db: AsyncSession, *, days: int, on: date | None = None) -> list[Premium]:
    """Pending premiums due within `days` that have not been reminded today."""
    start = on or today()
    premiums = await list_upcoming(db, days=days, on=start)
    return [
        premium
        for premium in premiums
        if premium.last_reminder_date is None or premium.last_reminder_date.date() < start
    ]
