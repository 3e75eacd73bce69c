from dataclasses import dataclass
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import get_db
from app.core.security import oauth2_scheme, decode_token
from app.core.roles import MemberRole, TENANT_ADMIN_ROLES
from app.models.user import User
from app.models.tenant import Tenant, TenantMember


# =============================================================================
# Authentication: Get current user from token
# =============================================================================

async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Extract and validate the current user from the JWT token.

    Raises:
        HTTP 401: If token is invalid or user not found
        HTTP 400: If user is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "NOT_AUTHENTICATED", "message": "Could not validate credentials"},
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if payload is None:
        raise credentials_exception

    try:
        user_id = UUID(payload.get("sub"))
    except (TypeError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=400,
            detail={"code": "INACTIVE_USER", "message": "Inactive user"},
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


# =============================================================================
# Tenant context
# =============================================================================

@dataclass
class TenantContext:
    """Tenant the request operates on, resolved from the caller's membership."""
    tenant: Tenant
    user: User
    role: MemberRole

    @property
    def tenant_id(self) -> UUID:
        return self.tenant.id

    @property
    def is_admin(self) -> bool:
        return self.role in TENANT_ADMIN_ROLES


async def get_tenant_context(
    current_user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    x_tenant_id: Annotated[Optional[str], Header()] = None,
) -> TenantContext:
    """
    Resolve the tenant of the request.

    Uses the X-Tenant-ID header when given (the user must be a member),
    otherwise the user's oldest active membership.

    Raises:
        HTTP 403: NO_TENANT if the user has no (matching) active membership
    """
    query = (
        select(TenantMember)
        .options(selectinload(TenantMember.tenant))
        .join(Tenant, Tenant.id == TenantMember.tenant_id)
        .where(
            TenantMember.user_id == current_user.id,
            Tenant.is_active.is_(True),
        )
        .order_by(TenantMember.created_at)
    )
    if x_tenant_id:
        try:
            query = query.where(TenantMember.tenant_id == UUID(x_tenant_id))
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail={"code": "INVALID_TENANT_ID", "message": "X-Tenant-ID is not a valid id"},
            )

    result = await db.execute(query.limit(1))
    membership = result.scalar_one_or_none()
    if membership is None:
        raise HTTPException(
            status_code=403,
            detail={"code": "NO_TENANT", "message": "No tenant found for this user"},
        )

    return TenantContext(tenant=membership.tenant, user=current_user, role=membership.role)


Tenancy = Annotated[TenantContext, Depends(get_tenant_context)]


def require_tenant_admin(ctx: TenantContext) -> None:
    """
    Guard: tenant OWNER or ADMIN only.

    Raises:
        HTTP 403: If the member role is not an admin role
    """
    if not ctx.is_admin:
        raise HTTPException(
            status_code=403,
            detail={"code": "FORBIDDEN_ROLE", "message": "This action requires a tenant owner or admin"},
        )
