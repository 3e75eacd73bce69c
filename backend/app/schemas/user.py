from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base schema for user data - shared between create and response."""
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)


class UserResponse(UserBase):
    id: UUID
    is_active: bool
    role: str = Field(default="user")
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MembershipResponse(BaseModel):
    tenant_id: UUID
    tenant_name: str
    role: str


class MeResponse(BaseModel):
    """Current user with the tenants they belong to."""
    user: UserResponse
    memberships: List[MembershipResponse] = []


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[str] = None
