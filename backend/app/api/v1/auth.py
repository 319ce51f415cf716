"""Authentication endpoints: registration, login, tokens and password reset."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db
from app.api.schemas.auth import (
    AuthPayload,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserOut,
)
from app.api.schemas.common import ApiResponse, success
from app.core.config import settings
from app.core.errors import AccountLockedError, AuthenticationError, DomainRuleError, NotFoundError
from app.core.logging import get_logger
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    generate_reset_token,
    hash_reset_token,
    verify_password,
)
from app.db.models.user import User
from app.repositories import users as user_repository
from app.services.email import dispatch_after_commit

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = get_logger(__name__)


def issue_tokens(user: User) -> AuthPayload:
    access_token = create_access_token(
        {
            "sub": str(user.id),
            "role": user.role,
            "email": user.email,
        }
    )
    return AuthPayload(
        user=UserOut.model_validate(user),
        token=access_token,
        refresh_token=create_refresh_token(str(user.id)),
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse:
    """Create a policyholder account and sign it in."""
    if await user_repository.get_user_by_email(db, payload.email) is not None:
        raise DomainRuleError("User already exists with this email")

    user = await user_repository.create_user(
        db,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        date_of_birth=payload.date_of_birth,
        address=payload.address.model_dump() if payload.address else None,
    )
    logger.info("User registered", user_id=user.id)

    dispatch_after_commit(db, "welcome", user.email, {"first_name": user.first_name})
    return success(issue_tokens(user), "User registered successfully")


@router.post("/login", response_model=ApiResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse:
    """Authenticate a user and issue access and refresh tokens."""
    user = await user_repository.get_user_by_email(db, payload.email)
    if user is None:
        raise AuthenticationError("Invalid email or password")

    if user.is_locked():
        raise AccountLockedError(
            "Account temporarily locked due to too many failed login attempts. Please try again later."
        )

    if not user.is_active:
        raise AuthenticationError("Account is deactivated. Please contact support.")

    if not verify_password(payload.password, user.hashed_password):
        await user_repository.register_failed_login(db, user)
        # The failed attempt must persist even though the request errors out
        await db.commit()
        logger.warning("Failed login", user_id=user.id, attempts=user.login_attempts)
        raise AuthenticationError("Invalid email or password")

    await user_repository.record_login(db, user.id)
    await db.refresh(user)
    return success(issue_tokens(user), "Login successful")


@router.post("/refresh", response_model=ApiResponse)
async def refresh(payload: RefreshRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse:
    """Exchange a refresh token for a new access token."""
    claims = decode_refresh_token(payload.refresh_token)
    if claims is None:
        raise AuthenticationError("Invalid refresh token")

    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid refresh token") from None

    user = await user_repository.get_active_user_by_id(db, user_id)
    if user is None:
        raise AuthenticationError("Invalid refresh token")

    token = create_access_token({"sub": str(user.id), "role": user.role, "email": user.email})
    return success({"token": token, "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60})


@router.get("/me", response_model=ApiResponse)
async def read_current_user(current_user: User = Depends(get_current_user)) -> ApiResponse:
    """Return the currently authenticated active user."""
    return success({"user": UserOut.model_validate(current_user)})


@router.post("/logout", response_model=ApiResponse)
async def logout(current_user: User = Depends(get_current_user)) -> ApiResponse:
    """Tokens are stateless; the client discards them."""
    logger.info("User logged out", user_id=current_user.id)
    return success(message="Logged out successfully")


@router.post("/forgot-password", response_model=ApiResponse)
async def forgot_password(payload: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse:
    """Store a hashed reset token and email the raw token to the user."""
    user = await user_repository.get_user_by_email(db, payload.email)
    if user is None:
        raise NotFoundError("No user found with this email")

    raw_token, token_hash = generate_reset_token()
    await user_repository.set_reset_token(db, user, token_hash)

    dispatch_after_commit(
        db,
        "password_reset",
        user.email,
        {"first_name": user.first_name, "reset_token": raw_token},
    )

    data = {"reset_token": raw_token} if settings.APP_ENV == "development" else None
    return success(data, "Password reset token sent to email")


@router.post("/reset-password", response_model=ApiResponse)
async def reset_password(payload: ResetPasswordRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse:
    """Set a new password using a valid, unexpired reset token."""
    user = await user_repository.get_user_by_reset_token(db, hash_reset_token(payload.token))
    if user is None:
        raise DomainRuleError("Invalid or expired reset token")

    await user_repository.update_password(db, user, payload.password)
    logger.info("Password reset", user_id=user.id)

    token = create_access_token({"sub": str(user.id), "role": user.role, "email": user.email})
    return success({"token": token}, "Password reset successful")
