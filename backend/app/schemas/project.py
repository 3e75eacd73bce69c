"""
Project Board Schemas
"""
from datetime import date, datetime
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, Field, EmailStr


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    color: Optional[str] = Field(None, max_length=20)
    client_id: Optional[UUID] = None
    # Default columns created with the board
    columns: List[str] = Field(default_factory=lambda: ["To do", "In progress", "Done"])


class ColumnCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    color: Optional[str] = Field(None, max_length=20)


class CardCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    priority: str = Field("medium", pattern=r'^(low|medium|high|urgent)$')
    due_date: Optional[date] = None


class CardResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    position: int
    priority: str
    due_date: Optional[date] = None
    is_completed: bool

    class Config:
        from_attributes = True


class ColumnResponse(BaseModel):
    id: UUID
    name: str
    color: Optional[str] = None
    position: int
    cards: List[CardResponse] = []

    class Config:
        from_attributes = True


class ProjectBoardResponse(BaseModel):
    """Board with its columns and cards. Also used for the public shared view."""
    id: UUID
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    columns: List[ColumnResponse] = []

    class Config:
        from_attributes = True


class ProjectResponse(ProjectBoardResponse):
    client_id: Optional[UUID] = None
    share_enabled: bool
    created_at: datetime


class GuestInvite(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)


class GuestResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    last_seen_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ShareStatusResponse(BaseModel):
    share_enabled: bool
    share_token: Optional[str] = None
    share_url: Optional[str] = None
    guests: List[GuestResponse] = []


class ShareAction(BaseModel):
    action: str = Field(..., pattern=r'^(enable|disable|regenerate)$')
