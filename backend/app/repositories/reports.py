"""
Admin reporting queries.

Aggregations run in SQL (GROUP BY + EXTRACT) so they work the same on
PostgreSQL and SQLite.  Date-range filters are inclusive calendar days:
`start_date` from 00:00 UTC, `end_date` through 23:59:59 UTC.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.core.constants import ClaimStatus, PremiumStatus
from app.db.models.base import as_utc, utcnow
from app.db.models.claim import Claim
from app.db.models.policy import Policy
from app.db.models.premium import Premium
from app.db.models.user import User

SECONDS_PER_DAY = 60 * 60 * 24


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def date_range_filters(column, start_date: date | None, end_date: date | None) -> list:
    filters = []
    if start_date:
        filters.append(column >= _day_start(start_date))
    if end_date:
        filters.append(column < _day_start(end_date + timedelta(days=1)))
    return filters


def _year_month(column) -> tuple:
    return (
        func.extract("year", column).label("year"),
        func.extract("month", column).label("month"),
    )


def _money(value: Any) -> float:
    return round(float(value or 0.0), 2)


# ─── Dashboard ────────────────────────────────


async def policy_type_distribution(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Policy.policy_type, func.count(Policy.id), func.sum(Policy.coverage_amount)).group_by(Policy.policy_type)
    )
    return [
        {"policy_type": policy_type, "count": count, "total_coverage": _money(coverage)}
        for policy_type, count, coverage in result.all()
    ]


async def claim_status_distribution(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(
            Claim.status,
            func.count(Claim.id),
            func.sum(Claim.claim_amount),
            func.avg(Claim.claim_amount),
        ).group_by(Claim.status)
    )
    return [
        {"status": status, "count": count, "total_amount": _money(total), "average_amount": _money(average)}
        for status, count, total, average in result.all()
    ]


async def monthly_policy_trend(db: AsyncSession, *, months: int = 12, now: datetime | None = None) -> list[dict[str, Any]]:
    """Policies created per month over the trailing `months` months."""
    since = (now or utcnow()) - relativedelta(months=months)
    year, month = _year_month(Policy.created_at)
    result = await db.execute(
        select(year, month, func.count(Policy.id), func.sum(Policy.coverage_amount))
        .where(Policy.created_at >= since)
        .group_by(year, month)
        .order_by(year, month)
    )
    return [
        {"year": int(y), "month": int(m), "policies": count, "total_coverage": _money(coverage)}
        for y, m, count, coverage in result.all()
    ]


# ─── Policy report ────────────────────────────


async def policy_report(
    db: AsyncSession,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    policy_type: str | None = None,
) -> dict[str, Any]:
    filters = date_range_filters(Policy.created_at, start_date, end_date)
    if policy_type:
        filters.append(Policy.policy_type == policy_type)

    summary = await db.execute(
        select(func.count(Policy.id), func.coalesce(func.sum(Policy.coverage_amount), 0.0)).where(*filters)
    )
    total_policies, total_coverage = summary.one()

    grouped = await db.execute(
        select(
            Policy.policy_type,
            Policy.status,
            func.count(Policy.id),
            func.sum(Policy.coverage_amount),
            func.sum(Policy.premium_amount),
            func.avg(Policy.coverage_amount),
            func.avg(Policy.premium_amount),
        )
        .where(*filters)
        .group_by(Policy.policy_type, Policy.status)
    )
    statistics = [
        {
            "policy_type": ptype,
            "status": status,
            "count": count,
            "total_coverage": _money(coverage),
            "total_premiums": _money(premiums),
            "average_coverage": _money(avg_coverage),
            "average_premium": _money(avg_premium),
        }
        for ptype, status, count, coverage, premiums, avg_coverage, avg_premium in grouped.all()
    ]

    year, month = _year_month(Policy.created_at)
    monthly = await db.execute(
        select(year, month, Policy.policy_type, func.count(Policy.id), func.sum(Policy.coverage_amount))
        .where(*filters)
        .group_by(year, month, Policy.policy_type)
        .order_by(year, month)
    )
    monthly_breakdown = [
        {"year": int(y), "month": int(m), "policy_type": ptype, "count": count, "total_coverage": _money(coverage)}
        for y, m, ptype, count, coverage in monthly.all()
    ]

    agent = aliased(User)
    policy_count = func.count(Policy.id).label("policy_count")
    agents = await db.execute(
        select(agent.id, agent.first_name, agent.last_name, agent.email, policy_count, func.sum(Policy.coverage_amount))
        .join(agent, Policy.agent_id == agent.id)
        .where(*filters)
        .group_by(agent.id, agent.first_name, agent.last_name, agent.email)
        .order_by(policy_count.desc())
        .limit(10)
    )
    top_agents = [
        {
            "agent_id": agent_id,
            "name": f"{first} {last}",
            "email": email,
            "policy_count": count,
            "total_coverage": _money(coverage),
        }
        for agent_id, first, last, email, count, coverage in agents.all()
    ]

    return {
        "summary": {"total_policies": total_policies, "total_coverage": _money(total_coverage)},
        "statistics": statistics,
        "monthly_breakdown": monthly_breakdown,
        "top_agents": top_agents,
    }


# ─── Claim report ─────────────────────────────


async def claim_report(
    db: AsyncSession,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    claim_type: str | None = None,
    status: str | None = None,
) -> dict[str, Any]:
    filters = date_range_filters(Claim.created_at, start_date, end_date)
    if claim_type:
        filters.append(Claim.claim_type == claim_type)
    if status:
        filters.append(Claim.status == status)

    approved_flag = case((Claim.status == ClaimStatus.APPROVED, 1), else_=0)
    rejected_flag = case((Claim.status == ClaimStatus.REJECTED, 1), else_=0)

    summary = await db.execute(
        select(
            func.count(Claim.id),
            func.coalesce(func.sum(Claim.claim_amount), 0.0),
            func.coalesce(func.sum(case((Claim.status == ClaimStatus.APPROVED, Claim.approved_amount), else_=0.0)), 0.0),
        ).where(*filters)
    )
    total_claims, total_amount, total_approved = summary.one()

    grouped = await db.execute(
        select(
            Claim.claim_type,
            Claim.status,
            func.count(Claim.id),
            func.sum(Claim.claim_amount),
            func.sum(Claim.approved_amount),
            func.avg(Claim.claim_amount),
        )
        .where(*filters)
        .group_by(Claim.claim_type, Claim.status)
    )

    # Processing time = review_date - created_at, averaged per (type, status)
    reviewed = await db.execute(
        select(Claim.claim_type, Claim.status, Claim.created_at, Claim.review_date).where(
            *filters, Claim.review_date.is_not(None)
        )
    )
    durations: dict[tuple[str, str], list[float]] = defaultdict(list)
    for ctype, cstatus, created_at, review_date in reviewed.all():
        elapsed = (as_utc(review_date) - as_utc(created_at)).total_seconds() / SECONDS_PER_DAY
        durations[(ctype, cstatus)].append(elapsed)

    statistics = []
    for ctype, cstatus, count, total, approved, average in grouped.all():
        samples = durations.get((ctype, cstatus))
        statistics.append(
            {
                "claim_type": ctype,
                "status": cstatus,
                "count": count,
                "total_amount": _money(total),
                "total_approved": _money(approved),
                "average_amount": _money(average),
                "average_processing_days": round(sum(samples) / len(samples), 2) if samples else None,
            }
        )

    rates = await db.execute(
        select(Claim.claim_type, func.count(Claim.id), func.sum(approved_flag), func.sum(rejected_flag))
        .where(*filters)
        .group_by(Claim.claim_type)
    )
    approval_rates = [
        {
            "claim_type": ctype,
            "total": total,
            "approved": int(approved or 0),
            "rejected": int(rejected or 0),
            "approval_rate": round(int(approved or 0) / total * 100, 2) if total else 0.0,
        }
        for ctype, total, approved, rejected in rates.all()
    ]

    year, month = _year_month(Claim.created_at)
    monthly = await db.execute(
        select(year, month, func.count(Claim.id), func.sum(Claim.claim_amount), func.sum(approved_flag))
        .where(*filters)
        .group_by(year, month)
        .order_by(year, month)
    )
    monthly_trends = [
        {"year": int(y), "month": int(m), "count": count, "total_amount": _money(total), "approved": int(approved or 0)}
        for y, m, count, total, approved in monthly.all()
    ]

    return {
        "summary": {
            "total_claims": total_claims,
            "total_amount": _money(total_amount),
            "total_approved": _money(total_approved),
        },
        "statistics": statistics,
        "approval_rates": approval_rates,
        "monthly_trends": monthly_trends,
    }


# ─── Revenue report ───────────────────────────


async def revenue_report(
    db: AsyncSession,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    filters = [Premium.status == PremiumStatus.PAID, *date_range_filters(Premium.paid_date, start_date, end_date)]

    summary = await db.execute(
        select(func.count(Premium.id), func.coalesce(func.sum(Premium.final_amount), 0.0)).where(*filters)
    )
    total_transactions, total_revenue = summary.one()

    by_type = await db.execute(
        select(Policy.policy_type, func.sum(Premium.final_amount), func.count(Premium.id), func.avg(Premium.final_amount))
        .join(Policy, Premium.policy_id == Policy.id)
        .where(*filters)
        .group_by(Policy.policy_type)
    )
    by_policy_type = [
        {"policy_type": ptype, "total_revenue": _money(revenue), "count": count, "average_premium": _money(average)}
        for ptype, revenue, count, average in by_type.all()
    ]

    year, month = _year_month(Premium.paid_date)
    monthly = await db.execute(
        select(year, month, func.sum(Premium.final_amount), func.count(Premium.id))
        .where(*filters)
        .group_by(year, month)
        .order_by(year, month)
    )
    monthly_trends = [
        {"year": int(y), "month": int(m), "revenue": _money(revenue), "count": count}
        for y, m, revenue, count in monthly.all()
    ]

    methods = await db.execute(
        select(Premium.payment_method, func.sum(Premium.final_amount), func.count(Premium.id))
        .where(*filters)
        .group_by(Premium.payment_method)
    )
    payment_methods = [
        {"payment_method": method, "revenue": _money(revenue), "count": count}
        for method, revenue, count in methods.all()
    ]

    return {
        "summary": {"total_revenue": _money(total_revenue), "total_transactions": total_transactions},
        "by_policy_type": by_policy_type,
        "monthly_trends": monthly_trends,
        "payment_methods": payment_methods,
    }
