from datetime import timedelta, datetime, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import get_db
from app.core.config import settings
from app.core.security import verify_password, create_access_token
from app.core.rate_limit import check_rate_limit
from app.models.user import User
from app.models.tenant import TenantMember
from app.schemas.user import Token, MeResponse, MembershipResponse, UserResponse
from app.api.v1.deps import CurrentUser

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/token", response_model=Token)
async def login(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Login with e-mail and password (OAuth2 password form) and get an access token."""
    await check_rate_limit("login", request)

    result = await db.execute(select(User).where(User.email == form_data.username.strip().lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_CREDENTIALS", "message": "Incorrect email or password"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=400,
            detail={"code": "INACTIVE_USER", "message": "Inactive user"},
        )

    # Update last login time
    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    access_token = create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

    logger.info(
        "User logged in",
        extra={
            "event": "user_login",
            "user_id": str(user.id),
        }
    )

    return Token(access_token=access_token)


@router.get("/me", response_model=MeResponse)
async def get_me(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get current user info with tenant memberships"""
    result = await db.execute(
        select(TenantMember)
        .options(selectinload(TenantMember.tenant))
        .where(TenantMember.user_id == current_user.id)
        .order_by(TenantMember.created_at)
    )
    memberships = [
        MembershipResponse(
            tenant_id=m.tenant_id,
            tenant_name=m.tenant.name,
            role=m.role.value,
        )
        for m in result.scalars().all()
    ]
    return MeResponse(user=UserResponse.model_validate(current_user), memberships=memberships)
