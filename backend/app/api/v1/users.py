"""User management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import ensure_self_or_admin, get_current_user, get_db, require_roles
from app.api.schemas.auth import UserOut
from app.api.schemas.claims import ClaimOut
from app.api.schemas.common import ApiResponse, PageParams, paginated, success
from app.api.schemas.policies import PolicyOut
from app.api.schemas.premiums import PremiumOut
from app.api.schemas.users import UserUpdate
from app.core.constants import PolicyStatus, REVIEWABLE_CLAIM_STATUSES, PremiumStatus, Resource, UserRole
from app.core.errors import NotFoundError
from app.core.logging import get_logger
from app.core.permissions import build_scope
from app.db.models.user import User
from app.repositories import claims as claim_repository
from app.repositories import policies as policy_repository
from app.repositories import premiums as premium_repository
from app.repositories import users as user_repository

router = APIRouter(prefix="/users", tags=["Users"])
logger = get_logger(__name__)


async def _load_user(db: AsyncSession, user_id: int) -> User:
    user = await user_repository.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("", response_model=ApiResponse)
async def list_users(
    role: UserRole | None = None,
    search: str | None = Query(None, max_length=100),
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_roles(UserRole.ADMIN)),
) -> ApiResponse:
    """List users, newest first (admin only)."""
    users, total = await user_repository.list_users(
        db,
        role=role,
        search=search,
        offset=params.offset,
        limit=params.limit,
    )
    return paginated("users", [UserOut.model_validate(u) for u in users], params, total)


@router.get("/{user_id}", response_model=ApiResponse)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    ensure_self_or_admin(current_user, user_id)
    user = await _load_user(db, user_id)
    return success({"user": UserOut.model_validate(user)})


@router.put("/{user_id}", response_model=ApiResponse)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """Update profile fields (admin or the user themself)."""
    ensure_self_or_admin(current_user, user_id)
    user = await _load_user(db, user_id)

    await user_repository.update_user(db, user, **payload.model_dump(exclude_unset=True))
    await db.refresh(user)

    logger.info("User updated", user_id=user.id, by=current_user.id)
    return success({"user": UserOut.model_validate(user)}, "User updated successfully")


@router.get("/{user_id}/dashboard", response_model=ApiResponse)
async def user_dashboard(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """Policyholder overview: counts, recent activity and what is due."""
    ensure_self_or_admin(current_user, user_id)
    user = await _load_user(db, user_id)

    # The dashboard always describes the target user's own records
    policy_scope = build_scope(user.id, UserRole.USER, Resource.POLICY)
    claim_scope = build_scope(user.id, UserRole.USER, Resource.CLAIM)
    premium_scope = build_scope(user.id, UserRole.USER, Resource.PREMIUM)

    overdue = await premium_repository.list_past_due(db, premium_scope)
    stats = {
        "total_policies": await policy_repository.count_policies(db, policy_scope),
        "active_policies": await policy_repository.count_policies(db, policy_scope, status=PolicyStatus.ACTIVE),
        "total_claims": await claim_repository.count_claims(db, claim_scope),
        "pending_claims": await claim_repository.count_claims(
            db, claim_scope, statuses=[s.value for s in REVIEWABLE_CLAIM_STATUSES]
        ),
        "total_premiums_paid": await premium_repository.sum_amount(
            db, premium_scope, statuses=[PremiumStatus.PAID.value]
        ),
        "overdue_amount": round(sum(p.final_amount for p in overdue), 2),
    }

    return success(
        {
            "user": UserOut.model_validate(user),
            "statistics": stats,
            "recent_policies": [
                PolicyOut.model_validate(p) for p in await policy_repository.recent_policies(db, policy_scope)
            ],
            "recent_claims": [
                ClaimOut.model_validate(c) for c in await claim_repository.recent_claims(db, claim_scope)
            ],
            "upcoming_premiums": [
                PremiumOut.model_validate(p)
                for p in await premium_repository.list_upcoming(db, premium_scope, limit=5)
            ],
            "overdue_premiums": [PremiumOut.model_validate(p) for p in overdue],
        }
    )


@router.patch("/{user_id}/deactivate", response_model=ApiResponse)
async def deactivate_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> ApiResponse:
    user = await user_repository.set_active_status(db, user_id, False)
    if user is None:
        raise NotFoundError("User not found")
    logger.info("User deactivated", user_id=user_id, by=current_user.id)
    return success({"user": UserOut.model_validate(user)}, "User deactivated successfully")


@router.patch("/{user_id}/activate", response_model=ApiResponse)
async def activate_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> ApiResponse:
    user = await user_repository.set_active_status(db, user_id, True)
    if user is None:
        raise NotFoundError("User not found")
    logger.info("User activated", user_id=user_id, by=current_user.id)
    return success({"user": UserOut.model_validate(user)}, "User activated successfully")
