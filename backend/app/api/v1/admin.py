"""Admin dashboard and reporting endpoints (admin role only)."""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_roles
from app.api.schemas.auth import UserOut
from app.api.schemas.claims import ClaimOut
from app.api.schemas.common import ApiResponse, PageParams, paginated, success
from app.api.schemas.policies import PolicyOut
from app.core.constants import REVIEWABLE_CLAIM_STATUSES, ClaimStatus, ClaimType, PolicyStatus, PolicyType, PremiumStatus, UserRole
from app.core.errors import ValidationFailed
from app.db.models.base import utcnow
from app.repositories import claims as claim_repository
from app.repositories import policies as policy_repository
from app.repositories import premiums as premium_repository
from app.repositories import reports as report_repository
from app.repositories import users as user_repository

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)

SortField = Literal["created_at", "first_name", "last_name", "email"]


def _check_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationFailed(
            errors=[{"field": "end_date", "message": "End date must not be before start date", "value": str(end_date)}]
        )


@router.get("/dashboard", response_model=ApiResponse)
async def dashboard(db: AsyncSession = Depends(get_db)) -> ApiResponse:
    """System-wide counts, revenue, distributions, recent activity and a 12-month trend."""
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    paid = [PremiumStatus.PAID.value]

    overview = {
        "total_users": await user_repository.count_users(db),
        "active_users": await user_repository.count_users(db, is_active=True),
        "total_policies": await policy_repository.count_policies(db),
        "active_policies": await policy_repository.count_policies(db, status=PolicyStatus.ACTIVE),
        "total_claims": await claim_repository.count_claims(db),
        "pending_claims": await claim_repository.count_claims(
            db, statuses=[s.value for s in REVIEWABLE_CLAIM_STATUSES]
        ),
        "total_premiums": await premium_repository.count_premiums(db),
        "overdue_premiums": await premium_repository.count_premiums(db, status=PremiumStatus.OVERDUE),
        "total_revenue": await premium_repository.sum_amount(db, statuses=paid),
        "monthly_revenue": await premium_repository.sum_amount(db, statuses=paid, paid_since=month_start),
    }

    return success(
        {
            "overview": overview,
            "distributions": {
                "policy_types": await report_repository.policy_type_distribution(db),
                "claim_statuses": await report_repository.claim_status_distribution(db),
            },
            "recent_activities": {
                "users": [UserOut.model_validate(u) for u in await user_repository.recent_users(db)],
                "policies": [PolicyOut.model_validate(p) for p in await policy_repository.recent_policies(db)],
                "claims": [ClaimOut.model_validate(c) for c in await claim_repository.recent_claims(db)],
            },
            "trends": {"monthly": await report_repository.monthly_policy_trend(db, now=now)},
        }
    )


@router.get("/users", response_model=ApiResponse)
async def admin_users(
    role: UserRole | None = None,
    status: Literal["active", "inactive"] | None = None,
    search: str | None = Query(None, max_length=100),
    sort_by: SortField = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    users, total = await user_repository.list_users(
        db,
        role=role,
        is_active=None if status is None else status == "active",
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        offset=params.offset,
        limit=params.limit,
    )
    return paginated(
        "users",
        [UserOut.model_validate(u) for u in users],
        params,
        total,
        statistics=await user_repository.role_statistics(db),
    )


@router.get("/reports/policies", response_model=ApiResponse)
async def policy_report(
    start_date: date | None = None,
    end_date: date | None = None,
    policy_type: PolicyType | None = None,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    _check_range(start_date, end_date)
    report = await report_repository.policy_report(
        db, start_date=start_date, end_date=end_date, policy_type=policy_type
    )
    return success(report)


@router.get("/reports/claims", response_model=ApiResponse)
async def claim_report(
    start_date: date | None = None,
    end_date: date | None = None,
    claim_type: ClaimType | None = None,
    status: ClaimStatus | None = None,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    _check_range(start_date, end_date)
    report = await report_repository.claim_report(
        db, start_date=start_date, end_date=end_date, claim_type=claim_type, status=status
    )
    return success(report)


@router.get("/reports/revenue", response_model=ApiResponse)
async def revenue_report(
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse:
    _check_range(start_date, end_date)
    return success(await report_repository.revenue_report(db, start_date=start_date, end_date=end_date))
