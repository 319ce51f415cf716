"""Claim endpoints: filing, review workflow and payout."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db, require_roles, scope_for
from app.api.schemas.claims import ClaimCreate, ClaimOut, ClaimPay, ClaimReview
from app.api.schemas.common import ApiResponse, PageParams, paginated, success
from app.core.constants import ClaimStatus, ClaimType, PolicyStatus, Resource, UserRole
from app.core.errors import DomainRuleError, NotFoundError, PermissionDeniedError
from app.core.logging import get_logger
from app.db.models.claim import Claim
from app.db.models.user import User
from app.repositories import claims as claim_repository
from app.repositories import policies as policy_repository
from app.services.email import dispatch_after_commit

router = APIRouter(prefix="/claims", tags=["Claims"])
logger = get_logger(__name__)

staff_only = require_roles(UserRole.ADMIN, UserRole.AGENT)


async def _load_scoped(db: AsyncSession, claim_id: int, current_user: User) -> Claim:
    claim = await claim_repository.get_claim(db, claim_id, scope_for(current_user, Resource.CLAIM))
    if claim is None:
        raise NotFoundError("Claim not found")
    return claim


def _notify_review(db: AsyncSession, claim: Claim) -> None:
    claimant = claim.claimant
    if claim.status == ClaimStatus.APPROVED:
        dispatch_after_commit(
            db,
            "claim_approved",
            claimant.email,
            {
                "first_name": claimant.first_name,
                "claim_number": claim.claim_number,
                "approved_amount": claim.approved_amount,
                "review_date": claim.review_date.date().isoformat(),
            },
        )
    else:
        dispatch_after_commit(
            db,
            "claim_rejected",
            claimant.email,
            {
                "first_name": claimant.first_name,
                "claim_number": claim.claim_number,
                "status": claim.status,
                "rejection_reason": claim.rejection_reason,
                "review_date": claim.review_date.date().isoformat(),
            },
        )


@router.get("", response_model=ApiResponse)
async def list_claims(
    status: ClaimStatus | None = None,
    claim_type: ClaimType | None = None,
    params: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    claims, total = await claim_repository.list_claims(
        db,
        scope_for(current_user, Resource.CLAIM),
        status=status,
        claim_type=claim_type,
        offset=params.offset,
        limit=params.limit,
    )
    return paginated("claims", [ClaimOut.model_validate(c) for c in claims], params, total)


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_claim(
    payload: ClaimCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    """File a claim against an active policy, up to its coverage amount."""
    policy = await policy_repository.get_policy(db, payload.policy_id)
    if policy is None:
        raise NotFoundError("Policy not found")
    # Claimants file only against their own policies; staff may file for anyone
    if not scope_for(current_user, Resource.CLAIM).allows(policy):
        raise PermissionDeniedError()
    if policy.status != PolicyStatus.ACTIVE:
        raise DomainRuleError("Cannot create claim for inactive policy")
    if payload.claim_amount > policy.coverage_amount:
        raise DomainRuleError("Claim amount exceeds policy coverage amount")

    claim = await claim_repository.create_claim(
        db,
        policy_id=policy.id,
        user_id=policy.user_id,
        claim_type=payload.claim_type,
        claim_amount=payload.claim_amount,
        incident_date=payload.incident_date,
        description=payload.description,
        documents=[d.model_dump(mode="json") for d in payload.documents],
    )
    logger.info("Claim submitted", claim_id=claim.id, policy_id=policy.id, amount=claim.claim_amount)

    dispatch_after_commit(
        db,
        "claim_submitted",
        claim.claimant.email,
        {
            "first_name": claim.claimant.first_name,
            "claim_number": claim.claim_number,
            "claim_type": claim.claim_type,
            "claim_amount": claim.claim_amount,
            "incident_date": claim.incident_date.isoformat(),
            "status": claim.status,
        },
    )
    return success({"claim": ClaimOut.model_validate(claim)}, "Claim submitted successfully")


@router.get("/statistics", response_model=ApiResponse)
async def claim_statistics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    stats = await claim_repository.statistics(db, scope_for(current_user, Resource.CLAIM))
    return success(stats)


@router.get("/{claim_id}", response_model=ApiResponse)
async def get_claim(
    claim_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ApiResponse:
    claim = await _load_scoped(db, claim_id, current_user)
    return success({"claim": ClaimOut.model_validate(claim)})


@router.patch("/{claim_id}/start-review", response_model=ApiResponse)
async def start_review(
    claim_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    claim = await _load_scoped(db, claim_id, current_user)
    claim.start_review()
    claim = await claim_repository.save(db, claim)
    logger.info("Claim moved under review", claim_id=claim.id, by=current_user.id)
    return success({"claim": ClaimOut.model_validate(claim)}, "Claim is now under review")


@router.patch("/{claim_id}/review", response_model=ApiResponse)
async def review_claim(
    claim_id: int,
    payload: ClaimReview,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(staff_only),
) -> ApiResponse:
    """Approve or reject a submitted / under-review claim."""
    claim = await _load_scoped(db, claim_id, current_user)
    claim.review(
        reviewer_id=current_user.id,
        approve=payload.status == ClaimStatus.APPROVED,
        approved_amount=payload.approved_amount,
        review_notes=payload.review_notes,
        rejection_reason=payload.rejection_reason,
    )
    claim = await claim_repository.save(db, claim)
    logger.info("Claim reviewed", claim_id=claim.id, status=claim.status, by=current_user.id)

    _notify_review(db, claim)
    return success({"claim": ClaimOut.model_validate(claim)}, f"Claim {claim.status} successfully")


@router.patch("/{claim_id}/pay", response_model=ApiResponse)
async def pay_claim(
    claim_id: int,
    payload: ClaimPay | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> ApiResponse:
    claim = await _load_scoped(db, claim_id, current_user)
    claim.pay(payment_reference=payload.payment_reference if payload else None)
    claim = await claim_repository.save(db, claim)
    logger.info("Claim paid", claim_id=claim.id, amount=claim.approved_amount, by=current_user.id)
    return success({"claim": ClaimOut.model_validate(claim)}, "Claim marked as paid")
