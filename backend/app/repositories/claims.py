"""Claim repository."""

from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import REVIEWABLE_CLAIM_STATUSES
from app.core.permissions import UNRESTRICTED, Scope
from app.db.models.claim import Claim, generate_claim_number

CLAIM_RELATIONS = ["policy", "claimant", "reviewer"]


async def next_sequence(db: AsyncSession) -> int:
    total = await db.scalar(select(func.count(Claim.id)))
    return (total or 0) + 1


async def create_claim(
    db: AsyncSession,
    *,
    policy_id: int,
    user_id: int,
    claim_type: str,
    claim_amount: float,
    incident_date: date,
    description: str,
    documents: list[dict[str, Any]],
) -> Claim:
    claim = Claim(
        claim_number=generate_claim_number(await next_sequence(db)),
        policy_id=policy_id,
        user_id=user_id,
        claim_type=str(claim_type),
        claim_amount=claim_amount,
        incident_date=incident_date,
        description=description.strip(),
        documents=documents,
    )
    db.add(claim)
    await db.flush()
    await db.refresh(claim, attribute_names=CLAIM_RELATIONS)
    return claim


async def get_claim(db: AsyncSession, claim_id: int, scope: Scope = UNRESTRICTED) -> Claim | None:
    stmt = scope.apply(select(Claim).where(Claim.id == claim_id), Claim)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_claims(
    db: AsyncSession,
    scope: Scope,
    *,
    status: str | None = None,
    claim_type: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Claim], int]:
    filters = []
    if status:
        filters.append(Claim.status == status)
    if claim_type:
        filters.append(Claim.claim_type == claim_type)

    stmt = scope.apply(select(Claim).where(*filters), Claim)
    rows = await db.execute(stmt.order_by(Claim.created_at.desc(), Claim.id.desc()).offset(offset).limit(limit))
    total = await db.scalar(scope.apply(select(func.count(Claim.id)).where(*filters), Claim))
    return list(rows.scalars().all()), total or 0


async def save(db: AsyncSession, claim: Claim) -> Claim:
    """Flush a mutated claim and reload its relationships."""
    await db.flush()
    await db.refresh(claim, attribute_names=CLAIM_RELATIONS)
    return claim


async def statistics(db: AsyncSession, scope: Scope = UNRESTRICTED) -> dict[str, Any]:
    """Total claims, overdue count and per-status count/total/average."""
    stmt = scope.apply(
        select(
            Claim.status,
            func.count(Claim.id),
            func.coalesce(func.sum(Claim.claim_amount), 0.0),
            func.coalesce(func.avg(Claim.claim_amount), 0.0),
        ).group_by(Claim.status),
        Claim,
    )
    result = await db.execute(stmt)
    by_status = [
        {
            "status": status,
            "count": count,
            "total_amount": round(float(total), 2),
            "average_amount": round(float(average), 2),
        }
        for status, count, total, average in result.all()
    ]

    # Overdue depends on "now" so it is evaluated per open claim
    open_claims = await db.execute(
        scope.apply(
            select(Claim).where(Claim.status.in_([s.value for s in REVIEWABLE_CLAIM_STATUSES])),
            Claim,
        )
    )
    overdue = sum(1 for claim in open_claims.scalars().all() if claim.is_overdue())

    return {
        "total_claims": sum(item["count"] for item in by_status),
        "overdue_claims": overdue,
        "by_status": by_status,
    }


async def recent_claims(db: AsyncSession, scope: Scope = UNRESTRICTED, limit: int = 5) -> list[Claim]:
    stmt = scope.apply(select(Claim), Claim).order_by(Claim.created_at.desc(), Claim.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_claims(
    db: AsyncSession,
    scope: Scope = UNRESTRICTED,
    *,
    statuses: list[str] | None = None,
) -> int:
    stmt = select(func.count(Claim.id))
    if statuses:
        stmt = stmt.where(Claim.status.in_(statuses))
    return await db.scalar(scope.apply(stmt, Claim)) or 0
