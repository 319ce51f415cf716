"""Policy endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, require_roles, scope_for
from app.api.schemas.common import ApiResponse, PageParams, paginated, success
from app.api.schemas.policies import PolicyCreate, PolicyOut, PolicyRenew, PolicyUpdate
from app.api.schemas.premiums import PremiumOut
from app.core.constants import PolicyStatus, PolicyType, Resource, UserRole
from app.core.errors import DomainRuleError, NotFoundError
from app.core.logging import get_logger
from app.db.models.policy import Policy
from app.db.models.user import User
from app.repositories import policies as policy_repository
from app.repositories import users as user_repository
from app.services.email import dispatch_after_commit

router = APIRouter(prefix="/policies", tags=["Policies"])
logger = get_logger(__name__)

staff_only = require_roles(UserRole.ADMIN, UserRole.AGENT)


async def _load_scoped(db: AsyncSession, policy_id: int, current_user: User) -> Policy:
    policy = await policy_repository.get_policy(db, policy_id, scope_for(current_user, Resource.POLICY))
    if policy is None:
        raise NotFoundError("Policy not found")
    return policy


@router.get("", response_model=ApiResponse)
async def list_policies(
    policy_type: PolicyType | None = None,
    status: PolicyStatus | None = None,
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """List the policies visible to the caller, newest first."""
    policies, total = await policy_repository.list_policies(
        db,
        scope_for(current_user, Resource.POLICY),
        policy_type=policy_type,
        status=status,
        offset=params.offset,
        limit=params.limit,
    )
    return paginated("policies", [PolicyOut.model_validate(p) for p in policies], params, total)


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_policy(
    payload: PolicyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    """
    Create a policy together with its first premium.

    Agents always become the servicing agent of the policies they create.
    """
    holder = await user_repository.get_active_user_by_id(db, payload.user_id)
    if holder is None:
        raise NotFoundError("Policyholder not found")

    agent_id = current_user.id if current_user.role == UserRole.AGENT else payload.agent_id
    if agent_id is not None and agent_id != current_user.id:
        agent = await user_repository.get_active_user_by_id(db, agent_id)
        if agent is None or agent.role != UserRole.AGENT:
            raise DomainRuleError("Assigned agent must be an active agent")

    policy, premium = await policy_repository.create_policy_with_first_premium(
        db,
        user_id=holder.id,
        agent_id=agent_id,
        policy_type=payload.policy_type,
        coverage_amount=payload.coverage_amount,
        premium_amount=payload.premium_amount,
        premium_frequency=payload.premium_frequency,
        start_date=payload.start_date,
        end_date=payload.end_date,
        beneficiaries=[b.model_dump() for b in payload.beneficiaries],
        documents=[d.model_dump(mode="json") for d in payload.documents],
        notes=payload.notes,
    )
    logger.info("Policy created", policy_id=policy.id, policy_number=policy.policy_number, by=current_user.id)

    dispatch_after_commit(
        db,
        "policy_created",
        holder.email,
        {
            "first_name": holder.first_name,
            "policy_number": policy.policy_number,
            "policy_type": policy.policy_type,
            "coverage_amount": policy.coverage_amount,
            "premium_amount": policy.premium_amount,
            "start_date": policy.start_date.isoformat(),
            "end_date": policy.end_date.isoformat(),
        },
    )
    return success(
        {"policy": PolicyOut.model_validate(policy), "first_premium": PremiumOut.model_validate(premium)},
        "Policy created successfully",
    )


@router.get("/expiring", response_model=ApiResponse)
async def expiring_policies(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    """Active policies ending within `days`, soonest first."""
    policies = await policy_repository.list_expiring(db, scope_for(current_user, Resource.POLICY), days=days)
    return success(
        {"policies": [PolicyOut.model_validate(p) for p in policies], "count": len(policies), "days": days}
    )


@router.get("/{policy_id}", response_model=ApiResponse)
async def get_policy(
    policy_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    policy = await _load_scoped(db, policy_id, current_user)
    return success({"policy": PolicyOut.model_validate(policy)})


@router.put("/{policy_id}", response_model=ApiResponse)
async def update_policy(
    policy_id: int,
    payload: PolicyUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    policy = await _load_scoped(db, policy_id, current_user)

    fields = payload.model_dump(exclude_unset=True)
    if "end_date" in fields and fields["end_date"] is not None and fields["end_date"] <= policy.start_date:
        raise DomainRuleError("End date must be after start date")

    policy = await policy_repository.update_policy(db, policy, **fields)
    logger.info("Policy updated", policy_id=policy.id, fields=sorted(fields), by=current_user.id)
    return success({"policy": PolicyOut.model_validate(policy)}, "Policy updated successfully")


@router.patch("/{policy_id}/cancel", response_model=ApiResponse)
async def cancel_policy(
    policy_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    """Cancel a policy and every pending premium in one transaction."""
    policy = await _load_scoped(db, policy_id, current_user)
    if policy.status == PolicyStatus.CANCELLED:
        raise DomainRuleError("Policy is already cancelled")

    cancelled = await policy_repository.cancel_policy(db, policy)
    logger.info("Policy cancelled", policy_id=policy.id, premiums_cancelled=cancelled, by=current_user.id)
    return success(
        {"policy": PolicyOut.model_validate(policy), "premiums_cancelled": cancelled},
        "Policy cancelled successfully",
    )


@router.patch("/{policy_id}/renew", response_model=ApiResponse)
async def renew_policy(
    policy_id: int,
    payload: PolicyRenew,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    policy = await _load_scoped(db, policy_id, current_user)
    if payload.new_end_date <= policy.start_date:
        raise DomainRuleError("New end date must be after start date")

    policy = await policy_repository.renew_policy(
        db,
        policy,
        new_end_date=payload.new_end_date,
        new_premium_amount=payload.new_premium_amount,
    )
    logger.info("Policy renewed", policy_id=policy.id, end_date=policy.end_date.isoformat(), by=current_user.id)
    return success({"policy": PolicyOut.model_validate(policy)}, "Policy renewed successfully")
