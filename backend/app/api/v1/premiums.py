"""Premium endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, require_roles, scope_for
from app.api.schemas.common import ApiResponse, PageParams, paginated, success
from app.api.schemas.premiums import PremiumCreate, PremiumOut, PremiumPay
from app.core.constants import PolicyStatus, PremiumStatus, Resource, UserRole
from app.core.errors import DomainRuleError, NotFoundError
from app.core.logging import get_logger
from app.db.models.premium import Premium
from app.db.models.user import User
from app.repositories import policies as policy_repository
from app.repositories import premiums as premium_repository
from app.services.email import dispatch_after_commit
from app.services.premium_settlement import settle_premium

router = APIRouter(prefix="/premiums", tags=["Premiums"])
logger = get_logger(__name__)


async def load_scoped_premium(db: AsyncSession, premium_id: int, current_user: User) -> Premium:
    premium = await premium_repository.get_premium(db, premium_id, scope_for(current_user, Resource.PREMIUM))
    if premium is None:
        raise NotFoundError("Premium not found")
    return premium


def notify_payment(db: AsyncSession, premium: Premium) -> None:
    holder = premium.holder
    dispatch_after_commit(
        db,
        "payment_confirmation",
        holder.email,
        {
            "first_name": holder.first_name,
            "policy_number": premium.policy.policy_number,
            "amount": premium.final_amount,
            "payment_method": premium.payment_method,
            "transaction_id": premium.transaction_id,
            "paid_date": premium.paid_date.date().isoformat(),
        },
    )


@router.get("", response_model=ApiResponse)
async def list_premiums(
    status: PremiumStatus | None = None,
    policy_id: int | None = Query(None, ge=1),
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """List premiums visible to the caller, latest due date first."""
    premiums, total = await premium_repository.list_premiums(
        db,
        scope_for(current_user, Resource.PREMIUM),
        status=status,
        policy_id=policy_id,
        offset=params.offset,
        limit=params.limit,
    )
    return paginated("premiums", [PremiumOut.model_validate(p) for p in premiums], params, total)


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_premium(
    payload: PremiumCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.AGENT)),
) -> ApiResponse:
    policy = await policy_repository.get_policy(db, payload.policy_id, scope_for(current_user, Resource.POLICY))
    if policy is None:
        raise NotFoundError("Policy not found")
    if policy.status == PolicyStatus.CANCELLED:
        raise DomainRuleError("Cannot add premium to cancelled policy")

    premium = await premium_repository.create_premium(
        db,
        policy_id=policy.id,
        user_id=policy.user_id,
        amount=payload.amount,
        due_date=payload.due_date,
        discount=payload.discount,
        notes=payload.notes,
    )
    logger.info("Premium created", premium_id=premium.id, policy_id=policy.id, by=current_user.id)
    return success({"premium": PremiumOut.model_validate(premium)}, "Premium created successfully")


@router.get("/overdue", response_model=ApiResponse)
async def overdue_premiums(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """Past-due premiums; any still pending are marked overdue now."""
    premiums = await premium_repository.list_past_due(db, scope_for(current_user, Resource.PREMIUM))
    marked = await premium_repository.mark_past_due_overdue(db, premiums)
    if marked:
        logger.info("Premiums marked overdue", count=marked, by=current_user.id)

    total_overdue = round(sum(p.final_amount for p in premiums), 2)
    return success(
        {
            "premiums": [PremiumOut.model_validate(p) for p in premiums],
            "count": len(premiums),
            "total_overdue_amount": total_overdue,
        }
    )


@router.get("/upcoming", response_model=ApiResponse)
async def upcoming_premiums(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    premiums = await premium_repository.list_upcoming(db, scope_for(current_user, Resource.PREMIUM), days=days)
    return success(
        {
            "premiums": [PremiumOut.model_validate(p) for p in premiums],
            "count": len(premiums),
            "total_amount": round(sum(p.final_amount for p in premiums), 2),
            "days": days,
        }
    )


@router.get("/statistics", response_model=ApiResponse)
async def premium_statistics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    stats = await premium_repository.statistics(db, scope_for(current_user, Resource.PREMIUM))
    return success(stats)


@router.get("/{premium_id}", response_model=ApiResponse)
async def get_premium(
    premium_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    premium = await load_scoped_premium(db, premium_id, current_user)
    return success({"premium": PremiumOut.model_validate(premium)})


@router.patch("/{premium_id}/pay", response_model=ApiResponse)
async def pay_premium(
    premium_id: int,
    payload: PremiumPay,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """Record a manual payment and roll it up into the policy."""
    premium = await load_scoped_premium(db, premium_id, current_user)
    premium = await settle_premium(
        db,
        premium,
        method=payload.payment_method,
        transaction_id=payload.transaction_id,
        reference=payload.payment_reference,
    )
    notify_payment(db, premium)
    return success({"premium": PremiumOut.model_validate(premium)}, "Premium payment processed successfully")
